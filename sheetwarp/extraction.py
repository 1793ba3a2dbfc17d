"""Collect the unique strings of a workbook that need translation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .batching import contains_japanese
from .documents import PartHandler, default_handlers, iter_parts
from .package import ArchivePackage

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Ordered unique strings plus counters describing the scan."""

    strings: List[str] = field(default_factory=list)
    occurrences: int = 0
    candidates: int = 0
    parts_scanned: int = 0


class TextExtractor:
    """Scans recognised parts and keeps the strings that need translation."""

    def __init__(
        self,
        handlers: Optional[Sequence[PartHandler]] = None,
        *,
        predicate: Callable[[str], bool] = contains_japanese,
    ) -> None:
        self.handlers = list(handlers) if handlers is not None else default_handlers()
        self.predicate = predicate

    def extract(self, package: ArchivePackage) -> ExtractionResult:
        result = ExtractionResult()
        # dict keeps first-seen order and deduplicates
        unique: Dict[str, None] = {}

        for part_name, _root, occurrences in iter_parts(package, self.handlers):
            result.parts_scanned += 1
            for occurrence in occurrences:
                result.occurrences += 1
                if not self.predicate(occurrence.text):
                    continue
                result.candidates += 1
                unique.setdefault(occurrence.text, None)
            logger.debug("Scanned %s: %d text nodes.", part_name, len(occurrences))

        result.strings = list(unique)
        logger.info(
            "Extracted %d unique strings from %d text nodes in %d parts.",
            len(result.strings),
            result.occurrences,
            result.parts_scanned,
        )
        return result
