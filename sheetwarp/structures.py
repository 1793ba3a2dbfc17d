"""Core data structures for the Sheetwarp translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence


TextSetter = Callable[[str], None]


class ExtractionRule(Enum):
    """The kinds of text-bearing nodes recognised inside a workbook."""

    SHARED_STRING = "shared_string"
    INLINE_STRING = "inline_string"
    DRAWING_TEXT = "drawing_text"
    CHART_TEXT = "chart_text"
    SHEET_NAME = "sheet_name"


@dataclass
class TextOccurrence:
    """A single matched text node inside a part."""

    part_name: str
    rule: ExtractionRule
    node: Any
    text: str
    setter: TextSetter


@dataclass
class Batch:
    """A contiguous slice of unique strings sent in one provider request."""

    index: int
    total: int
    strings: List[str]


class ProgressStatus(str, Enum):
    """Phases reported while a workbook is processed."""

    PARSING = "parsing"
    TRANSLATING = "translating"
    REBUILDING = "rebuilding"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressState:
    """Immutable progress snapshot delivered to progress callbacks."""

    status: ProgressStatus
    current_batch: int = 0
    total_batches: int = 0
    message: str = ""
    error: Optional[str] = None


ProgressCallback = Callable[[ProgressState], None]


class TranslationMap:
    """Original to translated string associations, grown batch by batch.

    Entries are only ever added. Re-committing a key that already exists is
    ignored so that the first translation wins and the map never shrinks.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def commit(self, originals: Sequence[str], translations: Sequence[str]) -> int:
        """Record translations by position and return the number of new keys."""

        if len(originals) != len(translations):
            raise ValueError(
                f"Cannot commit {len(translations)} translations "
                f"for {len(originals)} originals."
            )
        added = 0
        for original, translated in zip(originals, translations):
            if original in self._entries:
                continue
            self._entries[original] = translated
            added += 1
        return added

    def get(self, original: str) -> Optional[str]:
        return self._entries.get(original)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def __contains__(self, original: object) -> bool:
        return original in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"TranslationMap({len(self._entries)} entries)"
