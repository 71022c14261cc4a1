"""
Login gate.

A plain credential check against ten default admin accounts or a stored user
list, with two flags in storage marking the session. Not a security mechanism.
"""
from typing import List, Optional

from pydantic import ValidationError

from database import AUTH_FLAG_KEY, CURRENT_USER_KEY, USERS_KEY, KeyValueStorage
from logger import get_logger
from schemas import UserCredential
from stores import load_json, save_json

logger = get_logger(__name__)

DEFAULT_USERS: List[UserCredential] = [
    UserCredential(user=f"admin{i}", password=f"admin{i}") for i in range(1, 11)
]


class AuthGate:
    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def users(self) -> List[UserCredential]:
        data = load_json(self.storage, USERS_KEY, lambda: None)
        if data is None:
            return list(DEFAULT_USERS)
        try:
            return [UserCredential.model_validate(u) for u in data]
        except (TypeError, ValidationError):
            logger.warning("Stored user list is invalid, falling back to defaults")
            return list(DEFAULT_USERS)

    def login(self, username: str, password: str) -> bool:
        valid = any(u.user == username and u.password == password for u in self.users())
        if not valid:
            logger.info("Rejected login for %r", username)
            return False
        save_json(self.storage, AUTH_FLAG_KEY, True)
        save_json(self.storage, CURRENT_USER_KEY, username)
        logger.info("User %s logged in", username)
        return True

    def logout(self) -> None:
        self.storage.delete(AUTH_FLAG_KEY)
        self.storage.delete(CURRENT_USER_KEY)

    def is_authenticated(self) -> bool:
        return load_json(self.storage, AUTH_FLAG_KEY, lambda: False) is True

    def current_user(self) -> Optional[str]:
        if not self.is_authenticated():
            return None
        user = load_json(self.storage, CURRENT_USER_KEY, lambda: None)
        return user if isinstance(user, str) else None
