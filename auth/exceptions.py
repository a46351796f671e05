"""Auth exceptions."""


class AuthException(Exception):
    """Base auth exception with HTTP status."""

    def __init__(self, message: str, status_code: int = 400, data: dict | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data or {}


class ProviderError(Exception):
    """Failure reported by the verification provider, carrying its error code."""

    def __init__(self, code: str | None, message: str = ""):
        super().__init__(message or code or "provider error")
        self.code = code
        self.message = message
