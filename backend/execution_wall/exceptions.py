"""
Domain exceptions for the application.

Services raise these instead of fastapi.HTTPException to avoid coupling
the service layer to the web framework. A global exception handler in
main.py translates them into HTTP responses.
"""


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Input validation failure (400)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class InvalidTransitionError(AppError):
    """State change not allowed from the record's current status (409)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class SymbolLockedError(AppError):
    """Another signal for the same ticker is mid-flight (409)."""

    def __init__(self, ticker: str, kind: str):
        self.ticker = ticker
        self.kind = kind
        super().__init__(
            f"Signal for {ticker} ({kind}) is already being processed - retry shortly",
            status_code=409,
        )
