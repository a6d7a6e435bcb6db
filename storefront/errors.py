# storefront/errors.py

from typing import Dict, Optional


class AppError(Exception):
    """Error that maps to an HTTP status and a JSON ``{"error": ...}`` body."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    # Row lookups that come back empty are answered with 400, like any other
    # failed query against the backend.
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class OwnershipError(AppError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class UpstreamError(AppError):
    status_code = 502


class RateLimitError(AppError):
    status_code = 429

    def __init__(self, limit: int, remaining: int, reset: int):
        super().__init__("Too many requests. Please try again later.")
        self.limit = limit
        self.remaining = remaining
        self.reset = reset

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class PrintfulApiError(AppError):
    def __init__(self, message: str, status: int, code: str = "unknown"):
        super().__init__(message, status_code=status)
        self.code = code


# ---- upstream generation errors (not HTTP-mapped on their own)

class GenerationTimeoutError(Exception):
    def __init__(self, seconds: float):
        super().__init__(f"Upstream call timed out after {seconds:g}s")
        self.seconds = seconds


class HttpError(Exception):
    def __init__(self, status_code: int, body: str = ""):
        message = f"Upstream HTTP {status_code}"
        if body:
            message = f"{message}: {body[:300]}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class EmptyResultError(Exception):
    def __init__(self, message: str = "Upstream returned no images"):
        super().__init__(message)


class GenerationExhaustedError(Exception):
    def __init__(self, last_error: Optional[BaseException], attempts: int):
        super().__init__(f"Generation failed after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts
