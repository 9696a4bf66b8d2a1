import logging
from typing import Optional, Sequence

from text_corrector.types import Correction


class TextReconstructor:
    """Rebuilds corrected text from the original text and a list of corrections.

    Corrections are applied right to left (descending span.start) so the
    indices of spans not yet applied stay valid while earlier edits change the
    text length. Overlapping spans are not resolved: whichever is applied last
    wins.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def reconstruct(self, text: str, corrections: Sequence[Correction]) -> str:
        if not corrections:
            return text

        result = text
        applied = 0
        for correction in sorted(corrections, key=lambda c: c.span.start, reverse=True):
            start, end = correction.span.start, correction.span.end
            if start < 0 or end > len(result) or start >= end:
                self.logger.debug(f"Skipping correction with unusable span {start}-{end} (text length {len(result)})")
                continue
            result = result[:start] + correction.corrected + result[end:]
            applied += 1

        self.logger.debug(f"Applied {applied}/{len(corrections)} corrections while rebuilding text")
        return result
