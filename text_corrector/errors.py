from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from text_corrector.correction.retry import RetryClass


class CorrectionError(Exception):
    """Base exception for correction errors."""

    def __init__(self, message: str):
        super().__init__(message)


class AuthError(CorrectionError):
    """Missing or rejected provider credentials. Never retried."""


class ParseError(CorrectionError):
    """The provider answered with something that is not a usable payload. Never retried."""


class BackendError(CorrectionError):
    """The provider answered with an explicit error code. Never retried."""

    def __init__(self, message: str, error_code: Optional[int] = None):
        super().__init__(message)
        self.error_code = error_code


class TransientNetworkError(CorrectionError):
    """A network failure worth retrying; retry_class decides the backoff."""

    def __init__(self, message: str, retry_class: "RetryClass"):
        super().__init__(message)
        self.retry_class = retry_class


class RetryExhaustedError(CorrectionError):
    """Raised when every attempt allowed by the retry policy has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Giving up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ChunkProcessingError(CorrectionError):
    """One chunk of a multi-chunk call failed, so the whole call failed."""

    def __init__(self, chunk_index: int, chunk_count: int, cause: BaseException):
        super().__init__(f"Error processing chunk {chunk_index + 1}/{chunk_count}: {cause}")
        self.chunk_index = chunk_index
        self.chunk_count = chunk_count
        self.cause = cause
