from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Span:
    """Half-open character range [start, end) in a piece of text."""

    start: int
    end: int

    def is_valid(self) -> bool:
        return self.start >= 0 and self.end >= self.start

    def shifted(self, offset: int) -> "Span":
        return Span(start=self.start + offset, end=self.end + offset)

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Span":
        return cls(start=int(data["start"]), end=int(data["end"]))


@dataclass(frozen=True)
class Correction:
    """A single edited span: the original substring, its replacement and where it sits."""

    original: str
    corrected: str
    span: Span
    error_type: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.original == self.corrected

    def validate(self) -> None:
        if not self.original:
            raise ValueError("original must be a non-empty string")
        if not self.span.is_valid():
            raise ValueError(f"invalid span {self.span.start}-{self.span.end}")

    def shifted(self, offset: int) -> "Correction":
        """Return a copy whose span is moved by offset characters."""
        return replace(self, span=self.span.shifted(offset))

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "original": self.original,
            "corrected": self.corrected,
            "position": self.span.to_dict(),
        }
        # errorType is optional in the output contract
        if self.error_type is not None:
            d["errorType"] = self.error_type
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Correction":
        return cls(
            original=data["original"],
            corrected=data["corrected"],
            span=Span.from_dict(data["position"]),
            error_type=data.get("errorType"),
        )


@dataclass
class CorrectionResult:
    """Canonical output of every correction call.

    Corrections are kept in discovery order, which is not guaranteed to be
    sorted by position.
    """

    corrected_text: str
    corrections: List[Correction] = field(default_factory=list)

    @classmethod
    def unchanged(cls, text: str) -> "CorrectionResult":
        return cls(corrected_text=text, corrections=[])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correctedText": self.corrected_text,
            "corrections": [c.to_dict() for c in self.corrections],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrectionResult":
        return cls(
            corrected_text=data["correctedText"],
            corrections=[Correction.from_dict(c) for c in data.get("corrections", [])],
        )


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of the input text sent to a provider on its own."""

    text: str
    start_offset: int

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.text)


@dataclass(frozen=True)
class ReplaceRule:
    """A user-defined replacement; pattern is tried as a regex, then as a literal."""

    pattern: str
    replacement: str
