class CatalogError(Exception):
    """Base error. Converted to the ``{"success": false, "error": ...}`` envelope in main.py."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(CatalogError):
    status_code = 400


class AuthenticationError(CatalogError):
    status_code = 401


class NotFoundError(CatalogError):
    status_code = 404


class ConflictError(CatalogError):
    """Another request modified the same row first. The client may retry."""

    status_code = 409


class RateLimitError(CatalogError):
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class StorageError(CatalogError):
    status_code = 500
