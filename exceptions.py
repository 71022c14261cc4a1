class QuoteProError(Exception):
    """Base exception for the QuotePro backend."""
    pass


class StorageError(QuoteProError):
    """Raised when the key-value backend cannot be reached."""
    pass


class ImageValidationError(QuoteProError):
    """Raised when an image is rejected before upload."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ImageUploadError(QuoteProError):
    """Raised when the image storage collaborator fails."""
    pass


class DocumentRenderError(QuoteProError):
    """Raised when the PDF library rejects a document."""
    pass
