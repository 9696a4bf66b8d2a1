import logging
import threading
import time
from typing import Callable, Optional

from text_corrector.providers.base import AccessToken


class TokenCache:
    """Process-local cached credential shared by every call of one service.

    All reads and refreshes go through a lock, so concurrent callers that find
    the cache empty trigger a single fetch.
    """

    def __init__(
        self,
        expiry_margin_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.expiry_margin_seconds = expiry_margin_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[str] = None
        self._expires_at: Optional[float] = None

    def get(self) -> Optional[str]:
        """Return the cached token if present and not expired."""
        with self._lock:
            return self._current()

    def get_or_refresh(self, loader: Callable[[], AccessToken]) -> str:
        """Return the cached token, calling loader (under the lock) when there is none."""
        with self._lock:
            cached = self._current()
            if cached is not None:
                return cached
            token = loader()
            self._store(token)
            return token.value

    def set(self, token: AccessToken) -> None:
        with self._lock:
            self._store(token)

    def invalidate(self) -> None:
        with self._lock:
            if self._value is not None:
                self.logger.info("Discarding cached access token")
            self._value = None
            self._expires_at = None

    def _current(self) -> Optional[str]:
        if self._value is None:
            return None
        if self._expires_at is not None and self._clock() >= self._expires_at:
            self.logger.info("Cached access token expired")
            self._value = None
            self._expires_at = None
            return None
        return self._value

    def _store(self, token: AccessToken) -> None:
        self._value = token.value
        if token.expires_in:
            lifetime = max(0, token.expires_in - self.expiry_margin_seconds)
            self._expires_at = self._clock() + lifetime
        else:
            self._expires_at = None
