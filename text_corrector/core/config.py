import os
from dataclasses import dataclass

from text_corrector.correction.retry import RetryPolicy


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass(frozen=True)
class CorrectorConfig:
    """Configuration for the correction pipeline."""

    provider: str = "deepseek"

    max_chunk_size: int = 3000
    large_text_threshold: int = 3000

    max_retries: int = 3
    timeout_backoff_ms: int = 2000
    reset_backoff_ms: int = 3000
    io_backoff_ms: int = 2000

    token_timeout_seconds: float = 5.0
    token_expiry_margin_seconds: int = 300
    # Used for the current call when a token cannot be fetched; never cached
    fallback_token: str = "best-effort-token"

    async_workers: int = 2

    @staticmethod
    def from_env() -> "CorrectorConfig":
        return CorrectorConfig(
            provider=os.getenv("TEXT_CORRECTOR_PROVIDER", "deepseek").lower(),
            max_chunk_size=_env_int("TEXT_CORRECTOR_MAX_CHUNK_SIZE", 3000),
            large_text_threshold=_env_int("TEXT_CORRECTOR_LARGE_TEXT_THRESHOLD", 3000),
            max_retries=_env_int("TEXT_CORRECTOR_MAX_RETRIES", 3),
            token_timeout_seconds=_env_float("TEXT_CORRECTOR_TOKEN_TIMEOUT", 5.0),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            timeout_backoff_ms=self.timeout_backoff_ms,
            reset_backoff_ms=self.reset_backoff_ms,
            io_backoff_ms=self.io_backoff_ms,
        )
