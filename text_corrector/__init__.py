from text_corrector.core.config import CorrectorConfig
from text_corrector.core.service import CorrectionService, build_provider
from text_corrector.errors import (
    AuthError,
    BackendError,
    ChunkProcessingError,
    CorrectionError,
    ParseError,
    RetryExhaustedError,
    TransientNetworkError,
)
from text_corrector.providers.config import ProviderConfig
from text_corrector.types import Correction, CorrectionResult, ReplaceRule, Span
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("text-corrector")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "CorrectionService",
    "CorrectorConfig",
    "ProviderConfig",
    "build_provider",
    "Correction",
    "CorrectionResult",
    "ReplaceRule",
    "Span",
    "CorrectionError",
    "AuthError",
    "BackendError",
    "ParseError",
    "TransientNetworkError",
    "RetryExhaustedError",
    "ChunkProcessingError",
]
