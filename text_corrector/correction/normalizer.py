from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from text_corrector.correction.reconstructor import TextReconstructor
from text_corrector.correction.schemas import ChatCompletionEnvelope
from text_corrector.errors import AuthError, BackendError, ParseError
from text_corrector.types import Correction, CorrectionResult, Span

RawResponse = Union[str, bytes, Dict[str, Any]]

SENTENCE_PREFIX_LENGTH = 20
MIN_KEYWORD_LENGTH = 4
# Baidu: 110 = invalid access token, 111 = access token expired
TOKEN_ERROR_CODES = frozenset({110, 111})

WORD_PATTERN = re.compile(r"\w+")


def extract_json_object(content: str) -> Optional[str]:
    """Return the first balanced {...} block in content, or None.

    Braces inside JSON string literals (including escaped quotes) are ignored.
    """
    start = content.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(content)):
        char = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return content[start : i + 1]
    return None


def find_sentence_offset(source_text: str, sentence: str, search_from: int = 0) -> int:
    """Locate a provider-reported sentence in the source text.

    Tries an exact match (from search_from, then from the start), then the
    sentence's first 20 characters, then its first word longer than 3
    characters. Falls back to 0; never raises.
    """
    if not sentence:
        return 0

    index = source_text.find(sentence, search_from)
    if index == -1 and search_from:
        index = source_text.find(sentence)
    if index != -1:
        return index

    prefix = sentence[:SENTENCE_PREFIX_LENGTH]
    if len(prefix) < len(sentence):
        index = source_text.find(prefix)
        if index != -1:
            return index

    for word in WORD_PATTERN.findall(sentence):
        if len(word) >= MIN_KEYWORD_LENGTH:
            index = source_text.find(word)
            if index != -1:
                return max(0, index - sentence.find(word))
            break

    return 0


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _first_present(data: Dict[str, Any], keys: tuple) -> str:
    for key in keys:
        if key in data:
            return _as_str(data[key])
    return ""


class ResponseNormalizer:
    """Turns a provider's raw JSON into a canonical CorrectionResult.

    Corrected text and fragments are each taken from the first extractor in a
    priority list that recognizes the payload; later extractors are fallbacks
    and their output is never merged with an earlier match.

    Corrected text:
        1. a flat root ``text`` field
        2. ``item.correct_query``
        3. ``item.text``, consulted only when 1 and 2 give nothing but the source text

    Fragments:
        4. ``item.details[].vec_fragment[]`` with sentence-local positions
        5. a generic ``items[]`` array using alias field names

    Payloads wrapped in a chat-completion envelope are unwrapped first.
    """

    def __init__(self, reconstructor: Optional[TextReconstructor] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.reconstructor = reconstructor or TextReconstructor(logger=self.logger)
        self.text_extractors: List[Callable[[Dict[str, Any]], Optional[str]]] = [
            self._extract_flat_text,
            self._extract_correct_query,
        ]
        self.text_fallbacks: List[Callable[[Dict[str, Any]], Optional[str]]] = [self._extract_item_text]
        self.fragment_extractors: List[Callable[[Dict[str, Any], str], Optional[List[Correction]]]] = [
            self._extract_sentence_fragments,
            self._extract_items,
        ]

    def normalize(self, raw: RawResponse, source_text: str) -> CorrectionResult:
        """Normalize one provider response for source_text.

        Raises:
            ParseError: The response is not JSON or not a recognizable payload
            AuthError: The provider rejected the access token
            BackendError: The provider reported an explicit error code
        """
        payload = self._load(raw)
        self._check_backend_error(payload)
        if "choices" in payload:
            payload = self._unwrap_envelope(payload)
            self._check_backend_error(payload)

        corrected_text = self._first_match(extractor(payload) for extractor in self.text_extractors)
        if corrected_text is None or corrected_text == source_text:
            fallback = self._first_match(extractor(payload) for extractor in self.text_fallbacks)
            if fallback is not None:
                corrected_text = fallback
        corrections = self._first_match(extractor(payload, source_text) for extractor in self.fragment_extractors) or []

        if corrections and (corrected_text is None or corrected_text == source_text):
            self.logger.debug("Provider did not supply corrected text, rebuilding it from fragments")
            corrected_text = self.reconstructor.reconstruct(source_text, corrections)
        elif corrected_text is None:
            corrected_text = source_text

        if corrections:
            self.logger.info(f"Normalized response: {len(corrections)} corrections")
        else:
            self.logger.info("Normalized response: no corrections found")
        return CorrectionResult(corrected_text=corrected_text, corrections=corrections)

    @staticmethod
    def _first_match(candidates):
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return None

    def _load(self, raw: RawResponse) -> Dict[str, Any]:
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                self.logger.error(f"Provider response is not valid JSON: {e}")
                raise ParseError(f"Malformed provider response: {e}") from e
        if not isinstance(raw, dict):
            raise ParseError(f"Expected a JSON object from provider, got {type(raw).__name__}")
        return raw

    def _check_backend_error(self, payload: Dict[str, Any]) -> None:
        if "error_code" in payload:
            code = _as_int(payload.get("error_code"), None)
            if code != 0:
                message = _as_str(payload.get("error_msg")) or "unknown error"
                self.logger.error(f"Provider returned error {payload.get('error_code')}: {message}")
                if code in TOKEN_ERROR_CODES:
                    raise AuthError(f"Provider rejected access token ({code}): {message}")
                raise BackendError(f"Provider error {payload.get('error_code')}: {message}", error_code=code)

        error = payload.get("error")
        if isinstance(error, dict):
            message = _as_str(error.get("message")) or "unknown error"
            raise BackendError(f"Provider error: {message}", error_code=_as_int(error.get("code"), None))
        if isinstance(error, str) and error:
            raise BackendError(f"Provider error: {error}")

    def _unwrap_envelope(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            envelope = ChatCompletionEnvelope.model_validate(payload)
        except ValidationError as e:
            raise ParseError(f"Unexpected chat completion envelope: {e}") from e

        content = envelope.choices[0].message.content
        if not content:
            raise ParseError("Chat completion envelope has no message content")

        blob = extract_json_object(content)
        if blob is None:
            self.logger.error(f"No JSON object found in message content: {content[:200]}")
            raise ParseError("No JSON object found in chat completion content")
        self.logger.debug(f"Extracted {len(blob)} characters of JSON from chat completion content")
        return self._load(blob)

    def _extract_flat_text(self, payload: Dict[str, Any]) -> Optional[str]:
        text = payload.get("text")
        return text if isinstance(text, str) else None

    def _extract_correct_query(self, payload: Dict[str, Any]) -> Optional[str]:
        item = payload.get("item")
        if isinstance(item, dict) and isinstance(item.get("correct_query"), str):
            return item["correct_query"]
        return None

    def _extract_item_text(self, payload: Dict[str, Any]) -> Optional[str]:
        item = payload.get("item")
        if isinstance(item, dict) and isinstance(item.get("text"), str):
            return item["text"]
        return None

    def _extract_sentence_fragments(self, payload: Dict[str, Any], source_text: str) -> Optional[List[Correction]]:
        item = payload.get("item")
        if not isinstance(item, dict) or not isinstance(item.get("details"), list):
            return None

        corrections: List[Correction] = []
        cursor = 0
        for detail in item["details"]:
            if not isinstance(detail, dict):
                continue
            sentence = detail.get("sentence")
            if isinstance(sentence, str) and sentence:
                offset = find_sentence_offset(source_text, sentence, cursor)
                cursor = offset + len(sentence)
            else:
                offset = _as_int(detail.get("begin_sentence_offset"), 0)

            for fragment in detail.get("vec_fragment") or []:
                if not isinstance(fragment, dict):
                    continue
                original = _as_str(fragment.get("ori_frag"))
                begin = _as_int(fragment.get("begin_pos"), 0)
                end = _as_int(fragment.get("end_pos"), None)
                if end is None:
                    end = begin + len(original)
                self._keep(
                    corrections,
                    Correction(
                        original=original,
                        corrected=_as_str(fragment.get("correct_frag")),
                        span=Span(offset + begin, offset + end),
                        error_type=fragment.get("explain") or fragment.get("label") or None,
                    ),
                )
        return corrections

    def _extract_items(self, payload: Dict[str, Any], source_text: str) -> Optional[List[Correction]]:
        items = payload.get("items")
        if not isinstance(items, list):
            items = payload.get("item") if isinstance(payload.get("item"), list) else None
        if items is None:
            return None

        corrections: List[Correction] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            original = _first_present(item, ("ori_text", "ori"))
            corrected = _first_present(item, ("corr_text", "correct"))

            loc = item.get("loc")
            if "begin_pos" in item and "end_pos" in item:
                begin = _as_int(item["begin_pos"], 0)
                end = _as_int(item["end_pos"], begin + len(original))
            elif isinstance(loc, dict) and "offset" in loc:
                begin = _as_int(loc["offset"], 0)
                end = begin + _as_int(loc.get("length"), len(original))
            else:
                begin = source_text.find(original) if original else -1
                if begin == -1:
                    self.logger.debug(f"Dropping item without position: {item}")
                    continue
                end = begin + len(original)

            error_type = item.get("type") or item.get("error_type") or None
            self._keep(corrections, Correction(original, corrected, Span(begin, end), _as_str(error_type) or None))
        return corrections

    def _keep(self, corrections: List[Correction], correction: Correction) -> None:
        if correction.is_noop:
            return
        try:
            correction.validate()
        except ValueError as e:
            self.logger.debug(f"Dropping fragment {correction.original!r} -> {correction.corrected!r}: {e}")
            return
        self.logger.debug(
            f"Correction: {correction.original!r} -> {correction.corrected!r} at "
            f"{correction.span.start}-{correction.span.end}"
        )
        corrections.append(correction)
