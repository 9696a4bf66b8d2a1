import logging
import re
from typing import List, Optional, Sequence

from text_corrector.types import Correction, CorrectionResult, ReplaceRule, Span


def apply_replace_rules(
    text: str, rules: Sequence[ReplaceRule], logger: Optional[logging.Logger] = None
) -> CorrectionResult:
    """Apply user replacement rules in order and record every replacement made.

    Args:
        text: Text to rewrite
        rules: Rules applied one after another, each on the output of the previous one

    Returns:
        CorrectionResult whose corrections carry positions in the text as it
        stood when the producing rule ran
    """
    logger = logger or logging.getLogger(__name__)
    if not text or not rules:
        return CorrectionResult.unchanged(text)

    logger.info(f"Applying {len(rules)} replace rules to {len(text)} characters")
    replacements: List[Correction] = []
    for rule in rules:
        if not rule.pattern:
            continue
        try:
            pattern = re.compile(rule.pattern)
        except re.error as e:
            logger.warning(f"Invalid regular expression {rule.pattern!r} ({e}), replacing it as plain text")
            pattern = re.compile(re.escape(rule.pattern))
        text = _replace_with_pattern(text, pattern, rule.replacement, replacements)

    logger.info(f"Replace rules made {len(replacements)} replacements")
    return CorrectionResult(corrected_text=text, corrections=replacements)


def _replace_with_pattern(text: str, pattern: "re.Pattern[str]", replacement: str, replacements: List[Correction]) -> str:
    def substitute(match: "re.Match[str]") -> str:
        matched = match.group(0)
        if not matched or matched == replacement:
            return matched
        replacements.append(Correction(original=matched, corrected=replacement, span=Span(match.start(), match.end())))
        return replacement

    return pattern.sub(substitute, text)
