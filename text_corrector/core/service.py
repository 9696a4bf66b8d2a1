from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from text_corrector.core.config import CorrectorConfig
from text_corrector.core.token_cache import TokenCache
from text_corrector.correction.chunker import TextChunker, reassemble
from text_corrector.correction.normalizer import ResponseNormalizer
from text_corrector.correction.replace import apply_replace_rules
from text_corrector.correction.retry import RetryClass, RetryOrchestrator
from text_corrector.errors import AuthError, ChunkProcessingError, ParseError, TransientNetworkError
from text_corrector.providers.base import AccessToken, BaseCorrectionProvider, mask_secret
from text_corrector.providers.baidu import BaiduProvider
from text_corrector.providers.config import ProviderConfig
from text_corrector.providers.deepseek import DeepSeekProvider
from text_corrector.types import Chunk, CorrectionResult, ReplaceRule

SuccessCallback = Callable[[CorrectionResult], None]
FailureCallback = Callable[[BaseException], None]


def build_provider(
    name: str, config: Optional[ProviderConfig] = None, logger: Optional[logging.Logger] = None
) -> BaseCorrectionProvider:
    """Create the provider registered under name ("baidu" or "deepseek")."""
    providers = {"baidu": BaiduProvider, "deepseek": DeepSeekProvider}
    try:
        provider_class = providers[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown correction provider: {name}. Choose from: {', '.join(sorted(providers))}")
    return provider_class(config=config, logger=logger)


class CorrectionService:
    """
    Facade that corrects text through one provider:
    1. Reuse the cached access token, or fetch one (bounded by a short timeout)
    2. Call the provider through the RetryOrchestrator
    3. Normalize the response, rebuilding the corrected text when needed
    4. For long input, split into chunks, correct them in order and reassemble
    """

    def __init__(
        self,
        provider: BaseCorrectionProvider,
        config: Optional[CorrectorConfig] = None,
        logger: Optional[logging.Logger] = None,
        orchestrator: Optional[RetryOrchestrator] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        chunker: Optional[TextChunker] = None,
        token_cache: Optional[TokenCache] = None,
        executor: Optional[Executor] = None,
    ):
        self.config = config or CorrectorConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.provider = provider
        self.orchestrator = orchestrator or RetryOrchestrator(self.config.retry_policy(), logger=self.logger)
        self.normalizer = normalizer or ResponseNormalizer(logger=self.logger)
        self.chunker = chunker or TextChunker(self.config.max_chunk_size, logger=self.logger)
        self.token_cache = token_cache or TokenCache(self.config.token_expiry_margin_seconds, logger=self.logger)

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.async_workers, thread_name_prefix="text-corrector"
        )

        self.logger.debug(f"CorrectionService initialized with provider {self.provider.get_name()}")

    def __enter__(self) -> "CorrectionService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Release worker threads; pending async work is not waited for."""
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def correct(self, text: str) -> CorrectionResult:
        """Correct text with a single provider call, blocking until it resolves.

        Args:
            text: Text to correct

        Returns:
            CorrectionResult with the corrected text and the corrections found

        Raises:
            CorrectionError: Any classified failure that retries could not absorb
        """
        if self._is_blank(text):
            return CorrectionResult.unchanged(text or "")

        self.logger.info(f"Starting correction of {len(text)} characters with {self.provider.get_name()}")
        start_time = time.time()
        result = self._correct_piece(text, self._resolve_token())
        self.logger.info(
            f"Correction finished in {time.time() - start_time:.2f}s: "
            f"{len(result.corrections)} corrections, {len(text)} -> {len(result.corrected_text)} characters"
        )
        return result

    def correct_safe(self, text: str) -> CorrectionResult:
        """Like correct(), but a malformed provider response yields the text unchanged."""
        try:
            return self.correct(text)
        except ParseError as e:
            self.logger.warning(f"Provider response could not be parsed, returning text unchanged: {e}")
            return CorrectionResult.unchanged(text or "")

    def correct_large_text(self, text: str) -> CorrectionResult:
        """Correct text of any length, splitting it into chunks when it exceeds the threshold.

        Chunks are corrected strictly one after another. If any chunk fails the
        whole call fails with ChunkProcessingError and no partial result is returned.
        """
        if self._is_blank(text):
            return CorrectionResult.unchanged(text or "")
        if len(text) <= self.config.large_text_threshold:
            return self.correct(text)

        chunks = self.chunker.split(text)
        self.logger.info(f"Correcting {len(text)} characters in {len(chunks)} chunks")
        chunk_results: List[Tuple[Chunk, CorrectionResult]] = []
        for index, chunk in enumerate(chunks):
            try:
                if self._is_blank(chunk.text):
                    result = CorrectionResult.unchanged(chunk.text)
                else:
                    result = self._correct_piece(chunk.text, self._resolve_token())
            except Exception as e:
                self.logger.error(f"Error processing chunk {index + 1}/{len(chunks)}: {e}")
                raise ChunkProcessingError(index, len(chunks), e) from e
            chunk_results.append((chunk, result))

        return reassemble(chunk_results, logger=self.logger)

    def correct_async(self, text: str, on_success: SuccessCallback, on_failure: FailureCallback) -> None:
        """Correct text without blocking the caller; the outcome arrives through a callback.

        Dispatches like correct_large_text(). Retry delays are scheduled
        continuations rather than sleeps, and each chunk starts only after the
        previous one resolved. Blank input calls on_success immediately.
        """
        if self._is_blank(text):
            _deliver(self.logger, on_success, CorrectionResult.unchanged(text or ""))
            return
        self._executor.submit(self._start_async, text, on_success, on_failure)

    def apply_replace_rules(self, text: str, rules: Sequence[ReplaceRule]) -> CorrectionResult:
        """Apply user replacement rules locally; no provider is involved."""
        return apply_replace_rules(text, rules, logger=self.logger)

    def preload_token(self) -> threading.Thread:
        """Fetch and cache a token in the background; failures are only logged."""

        def _preload() -> None:
            try:
                token = self.token_cache.get_or_refresh(self._fetch_token_bounded)
                self.logger.info(f"Preloaded access token {mask_secret(token)}")
            except Exception as e:
                self.logger.warning(f"Token preload failed, a token will be fetched when needed: {e}")

        thread = threading.Thread(target=_preload, name="token-preload", daemon=True)
        thread.start()
        return thread

    def _start_async(self, text: str, on_success: SuccessCallback, on_failure: FailureCallback) -> None:
        if len(text) > self.config.large_text_threshold:
            try:
                chunks = self.chunker.split(text)
            except Exception as e:
                _deliver(self.logger, on_failure, e)
                return
        else:
            chunks = [Chunk(text=text, start_offset=0)]
        self.logger.info(f"Starting async correction of {len(text)} characters in {len(chunks)} chunk(s)")
        _AsyncChunkRun(self, chunks, on_success, on_failure).run_next()

    def _correct_piece(self, text: str, token: str) -> CorrectionResult:
        raw = self.orchestrator.call(lambda: self._invoke(text, token), description=self._call_description())
        return self._normalize(raw, text)

    def _call_description(self) -> str:
        return f"{self.provider.get_name()} correction"

    def _invoke(self, text: str, token: str) -> Dict[str, Any]:
        try:
            return self.provider.invoke(text, token)
        except AuthError:
            self.token_cache.invalidate()
            raise

    def _normalize(self, raw: Dict[str, Any], text: str) -> CorrectionResult:
        try:
            return self.normalizer.normalize(raw, text)
        except AuthError:
            self.token_cache.invalidate()
            raise

    def _resolve_token(self) -> str:
        """Return the cached token, fetching one if needed.

        A missing or rejected credential (AuthError) is fatal. Any other fetch
        failure falls back to the configured best-effort token, which is used
        for this call only and never cached.
        """
        try:
            return self.token_cache.get_or_refresh(self._fetch_token_bounded)
        except AuthError:
            raise
        except Exception as e:
            self.logger.warning(f"Could not obtain access token ({e}); continuing with best-effort token")
            return self.config.fallback_token

    def _fetch_token_bounded(self) -> AccessToken:
        """Run provider.get_token on its own daemon thread and wait at most token_timeout_seconds.

        A fetch that hangs is abandoned with its thread, so it never delays later fetches.
        """
        future: Future = Future()

        def _fetch() -> None:
            try:
                future.set_result(self.provider.get_token())
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=_fetch, name="token-fetch", daemon=True).start()
        try:
            return future.result(timeout=self.config.token_timeout_seconds)
        except FuturesTimeoutError as e:
            raise TransientNetworkError(
                f"Timed out after {self.config.token_timeout_seconds}s fetching access token", RetryClass.TIMEOUT
            ) from e

    @staticmethod
    def _is_blank(text: Optional[str]) -> bool:
        return not text or not text.strip()


def _deliver(logger: logging.Logger, callback: Callable[[Any], None], value: Any) -> None:
    """Invoke a caller-supplied callback; its own exceptions are logged, not propagated into the pipeline."""
    try:
        callback(value)
    except Exception:
        logger.exception("Correction callback raised an exception")


class _AsyncChunkRun:
    """Drives the chunks of one async call, one at a time, in order."""

    def __init__(
        self,
        service: CorrectionService,
        chunks: List[Chunk],
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ):
        self._service = service
        self._chunks = chunks
        self._on_success = on_success
        self._on_failure = on_failure
        self._results: List[Tuple[Chunk, CorrectionResult]] = []
        self._index = 0

    def run_next(self) -> None:
        if self._index >= len(self._chunks):
            self._finish()
            return

        chunk = self._chunks[self._index]
        if CorrectionService._is_blank(chunk.text):
            self._chunk_done(CorrectionResult.unchanged(chunk.text))
            return

        try:
            token = self._service._resolve_token()
        except Exception as e:
            self._fail(e)
            return

        self._service.orchestrator.call_async(
            lambda: self._service._invoke(chunk.text, token),
            on_success=self._on_response,
            on_failure=self._fail,
            description=self._service._call_description(),
        )

    def _on_response(self, raw: Dict[str, Any]) -> None:
        chunk = self._chunks[self._index]
        try:
            result = self._service._normalize(raw, chunk.text)
        except Exception as e:
            self._fail(e)
            return
        self._chunk_done(result)

    def _chunk_done(self, result: CorrectionResult) -> None:
        self._results.append((self._chunks[self._index], result))
        self._index += 1
        if self._index >= len(self._chunks):
            self._finish()
        else:
            # Hand the next chunk back to the worker pool instead of nesting deeper
            try:
                self._service._executor.submit(self.run_next)
            except RuntimeError as e:
                # The pool was shut down by close() while this call was in flight
                self._fail(e)

    def _finish(self) -> None:
        if len(self._chunks) == 1:
            result = self._results[0][1]
        else:
            result = reassemble(self._results, logger=self._service.logger)
        self._service.logger.info(f"Async correction finished: {len(result.corrections)} corrections")
        _deliver(self._service.logger, self._on_success, result)

    def _fail(self, error: BaseException) -> None:
        if len(self._chunks) > 1:
            wrapped = ChunkProcessingError(self._index, len(self._chunks), error)
            wrapped.__cause__ = error
            error = wrapped
        self._service.logger.error(f"Async correction failed: {error}")
        _deliver(self._service.logger, self._on_failure, error)
