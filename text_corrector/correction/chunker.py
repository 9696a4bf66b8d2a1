import logging
import re
from typing import List, Optional, Sequence, Tuple

from text_corrector.types import Chunk, CorrectionResult

DEFAULT_MAX_CHUNK_SIZE = 3000

# A run of sentence terminators, ASCII or full-width, or newlines
SENTENCE_END_PATTERN = re.compile(r"[.!?。！？\n]+")
SOFT_BOUNDARY_CHARS = frozenset(",.;:!?，。；：！？")


class TextChunker:
    """Splits long text into provider-sized chunks, preferring sentence boundaries.

    The chunks always partition the input exactly: joining their texts gives
    back the original string, with no gap and no overlap.
    """

    def __init__(self, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE, logger: Optional[logging.Logger] = None):
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be at least 1")
        self.max_chunk_size = max_chunk_size
        self.logger = logger or logging.getLogger(__name__)

    def split(self, text: str) -> List[Chunk]:
        """Split text into ordered chunks of at most max_chunk_size characters.

        Args:
            text: Text to split

        Returns:
            List of Chunk objects whose start_offset is the sum of the lengths
            of all previous chunks
        """
        if len(text) <= self.max_chunk_size:
            return [Chunk(text=text, start_offset=0)]

        chunks = []
        start = 0
        while start < len(text):
            end = min(start + self.max_chunk_size, len(text))
            if end < len(text):
                split_at = self._find_sentence_end(text, start, end)
                if split_at is None:
                    split_at = self._find_soft_boundary(text, start, end)
                if split_at is None:
                    self.logger.debug(f"No boundary found in window {start}-{end}, cutting hard")
                    split_at = end
                end = split_at
            chunks.append(Chunk(text=text[start:end], start_offset=start))
            start = end

        self.logger.info(f"Split {len(text)} characters into {len(chunks)} chunks (max {self.max_chunk_size})")
        return chunks

    def _find_sentence_end(self, text: str, start: int, end: int) -> Optional[int]:
        """Return the end of the last terminator run that finishes inside (start, end]."""
        # Look a little past the window so a run straddling the edge is not mistaken for a shorter one
        search_end = min(len(text), end + self.max_chunk_size)
        last_end = None
        for match in SENTENCE_END_PATTERN.finditer(text, start, search_end):
            if match.end() > end:
                break
            last_end = match.end()
        return last_end

    def _find_soft_boundary(self, text: str, start: int, end: int) -> Optional[int]:
        """Scan backward from the window's far edge for whitespace or punctuation."""
        for i in range(end - 1, start - 1, -1):
            char = text[i]
            if char.isspace() or char in SOFT_BOUNDARY_CHARS:
                return i + 1
        return None


def reassemble(
    chunk_results: Sequence[Tuple[Chunk, CorrectionResult]], logger: Optional[logging.Logger] = None
) -> CorrectionResult:
    """Merge per-chunk results back into one result for the whole text.

    Each chunk's corrections are shifted by that chunk's start offset in the
    original text. When a chunk's corrected text is longer or shorter than its
    original text, positions reported for later chunks no longer line up with
    the corrected text; they stay relative to the original text and are not
    adjusted.
    """
    logger = logger or logging.getLogger(__name__)
    corrected_parts = []
    corrections = []
    for chunk, result in chunk_results:
        corrected_parts.append(result.corrected_text)
        corrections.extend(c.shifted(chunk.start_offset) for c in result.corrections)
        if len(result.corrected_text) != len(chunk.text):
            logger.debug(
                f"Chunk at offset {chunk.start_offset} changed length "
                f"({len(chunk.text)} -> {len(result.corrected_text)}); later positions refer to the original text"
            )
    return CorrectionResult(corrected_text="".join(corrected_parts), corrections=corrections)
