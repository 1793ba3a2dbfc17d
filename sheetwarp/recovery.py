"""Best-effort partial output when a run cannot finish."""

from __future__ import annotations

import logging
import pathlib
from typing import Optional

from .package import ArchivePackage
from .rehydration import Rehydrator
from .structures import TranslationMap

logger = logging.getLogger(__name__)


def partial_output_path(input_path: pathlib.Path) -> pathlib.Path:
    """Return the default location of the partial artifact for an input."""

    return input_path.with_name(f"partial_{input_path.stem}.xlsx")


class RecoveryPath:
    """Writes whatever has been translated so far.

    Recovery never raises: a failure here is logged and the caller keeps
    reporting the error that triggered recovery in the first place.
    """

    def __init__(self, rehydrator: Optional[Rehydrator] = None) -> None:
        self.rehydrator = rehydrator or Rehydrator()

    def recover(
        self,
        package: Optional[ArchivePackage],
        translation_map: TranslationMap,
        destination: pathlib.Path,
    ) -> Optional[pathlib.Path]:
        if package is None or not len(translation_map):
            return None
        try:
            partial = self.rehydrator.rehydrate(package, translation_map)
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(partial.serialize())
        except Exception:
            logger.exception("Failed to generate partial file %s.", destination)
            return None

        logger.info(
            "Saved partial translation (%d strings) to %s.",
            len(translation_map),
            destination,
        )
        return destination
