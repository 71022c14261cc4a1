"""
Shared fixtures: every test runs against in-memory storage.
"""
import os

os.environ["STORAGE_BACKEND"] = "memory"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import main
from database import MemoryStorage
from exceptions import ImageUploadError
from schemas import ProductIn
from stores import CatalogStore


class FakeUploader:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploaded = []
        self.deleted = []

    def upload(self, data, filename, content_type):
        if self.fail:
            raise ImageUploadError("bucket unavailable")
        self.uploaded.append((filename, content_type, len(data)))
        return f"https://cdn.example.com/product-images/products/{len(self.uploaded)}.png"

    def delete(self, url):
        self.deleted.append(url)
        return True


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def catalog(storage):
    return CatalogStore(storage)


@pytest.fixture
def make_product(catalog):
    def _make(name="Bolt", unit_price="0.50", unit_type="piece", category=None):
        return catalog.add(ProductIn(
            name=name, unit_price=Decimal(unit_price), unit_type=unit_type, category=category
        ))
    return _make


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(storage, uploader):
    main.app.dependency_overrides[main.get_storage] = lambda: storage
    main.app.dependency_overrides[main.get_uploader] = lambda: uploader
    main.app.dependency_overrides[main.get_logo_loader] = lambda: (lambda ref: None)
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client):
    response = client.post("/auth/login", json={"username": "admin1", "password": "admin1"})
    assert response.status_code == 200
    return client
