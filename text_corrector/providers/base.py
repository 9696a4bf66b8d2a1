from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

from text_corrector.correction.retry import RetryClass
from text_corrector.errors import AuthError, BackendError, ParseError, TransientNetworkError
from text_corrector.providers.config import ProviderConfig


@dataclass(frozen=True)
class AccessToken:
    """Opaque provider credential; expires_in is in seconds when the provider reports it."""

    value: str
    expires_in: Optional[int] = None


def mask_secret(secret: Optional[str], visible: int = 4) -> str:
    """Shorten a credential for log output."""
    if not secret:
        return "<empty>"
    if len(secret) <= visible * 2:
        return secret[:1] + "..."
    return f"{secret[:visible]}...{secret[-visible:]}"


def _is_connection_reset(error: BaseException) -> bool:
    """Search the exception, its causes and wrapped args for a transport reset."""
    stack = [error]
    seen = set()
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, (ConnectionResetError, requests.exceptions.ChunkedEncodingError)):
            return True
        stack.append(current.__cause__)
        stack.append(current.__context__)
        stack.extend(arg for arg in getattr(current, "args", ()) if isinstance(arg, BaseException))
    return False


def translate_transport_error(error: Exception) -> TransientNetworkError:
    """Wrap a requests/socket failure in a TransientNetworkError with its RetryClass."""
    if isinstance(error, requests.exceptions.Timeout):
        retry_class = RetryClass.TIMEOUT
    elif _is_connection_reset(error):
        retry_class = RetryClass.CONNECTION_RESET
    else:
        retry_class = RetryClass.GENERIC_IO
    transient = TransientNetworkError(f"{type(error).__name__}: {error}", retry_class=retry_class)
    transient.__cause__ = error
    return transient


class BaseCorrectionProvider(ABC):
    """Base class for external correction providers.

    A provider only knows how to obtain a credential and how to send one piece
    of text; retries, chunking and normalization happen in the caller.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or ProviderConfig.from_env()
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.logger.debug(f"Initialized {self.__class__.__name__}")

    @abstractmethod
    def get_name(self) -> str:
        """Return the name of this correction provider."""
        pass  # pragma: no cover

    @abstractmethod
    def get_token(self) -> AccessToken:
        """Return a credential usable by invoke(); may perform a network call."""
        pass  # pragma: no cover

    @abstractmethod
    def invoke(self, text: str, token: str) -> Dict[str, Any]:
        """Send text to the provider once and return the parsed JSON response.

        Raises:
            TransientNetworkError: Timeouts, connection resets and other I/O failures
            AuthError: The provider rejected the credential
            BackendError: The provider answered with an HTTP error status
            ParseError: The response body is not JSON
        """
        pass  # pragma: no cover

    def _post_json(
        self,
        url: str,
        timeout: Tuple[float, float],
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST and decode a JSON object, translating failures into correction errors."""
        try:
            response = self.session.post(url, params=params, json=json_body, data=data, headers=headers, timeout=timeout)
        except (requests.exceptions.RequestException, OSError) as e:
            transient = translate_transport_error(e)
            self.logger.warning(f"{self.get_name()} request failed ({transient.retry_class.value}): {e}")
            raise transient

        self.logger.debug(f"{self.get_name()} response: {response.status_code} - {response.text[:500]}")
        if response.status_code in (401, 403):
            raise AuthError(f"{self.get_name()} rejected credentials (HTTP {response.status_code})")
        if not response.ok:
            raise BackendError(
                f"{self.get_name()} request failed with status {response.status_code}", error_code=response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ParseError(f"{self.get_name()} returned a non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise ParseError(f"{self.get_name()} returned {type(body).__name__} instead of a JSON object")
        return body
