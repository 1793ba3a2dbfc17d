"""Write translations back into the text nodes of a workbook package."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .documents import PartHandler, default_handlers, iter_parts, serialise_part
from .package import ArchivePackage
from .structures import TranslationMap

logger = logging.getLogger(__name__)


class Rehydrator:
    """Applies a translation map to every recognised text node.

    Nodes whose text has no translation keep their original bytes, and parts
    without a single replacement are not re-serialised at all.
    """

    def __init__(self, handlers: Optional[Sequence[PartHandler]] = None) -> None:
        self.handlers = list(handlers) if handlers is not None else default_handlers()

    def rehydrate(
        self,
        package: ArchivePackage,
        translation_map: TranslationMap,
    ) -> ArchivePackage:
        """Return a copy of ``package`` with translated text nodes."""

        output = package.copy()
        replaced_total = 0
        for part_name, root, occurrences in iter_parts(package, self.handlers):
            replaced = 0
            for occurrence in occurrences:
                translated = translation_map.get(occurrence.text)
                if translated is None:
                    continue
                occurrence.setter(translated)
                replaced += 1
            if replaced:
                output.set_part(part_name, serialise_part(root))
                replaced_total += replaced
                logger.debug("Rewrote %d text nodes in %s.", replaced, part_name)

        logger.info("Applied translations to %d text nodes.", replaced_total)
        return output
