"""Sequential batch translation of extracted strings."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from .batching import partition
from .errors import SheetwarpError, UnknownError
from .providers import TranslationProvider
from .structures import (
    Batch,
    ProgressCallback,
    ProgressState,
    ProgressStatus,
    TranslationMap,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_BATCH_DELAY = 10.0
NOTHING_TO_TRANSLATE = "No Japanese text found."


class BatchTranslationOrchestrator:
    """Sends batches to a provider one at a time and records the results.

    Translations are committed to the map as soon as a batch succeeds, so an
    abort leaves every earlier batch available for recovery.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay: float = DEFAULT_BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("Batch size must be a positive integer.")
        self.provider = provider
        self.batch_size = batch_size
        self.inter_batch_delay = max(0.0, inter_batch_delay)
        self.sleep = sleep
        self.on_progress = on_progress

    def run(self, strings: Sequence[str], translation_map: TranslationMap) -> int:
        """Translate ``strings`` into ``translation_map``; return batches done."""

        batches = partition(strings, self.batch_size)
        if not batches:
            self._emit(
                ProgressState(
                    status=ProgressStatus.REBUILDING,
                    message=NOTHING_TO_TRANSLATE,
                )
            )
            return 0

        completed = 0
        for batch in batches:
            self._emit(
                ProgressState(
                    status=ProgressStatus.TRANSLATING,
                    current_batch=batch.index,
                    total_batches=batch.total,
                    message=f"Translating batch {batch.index} of {batch.total}...",
                )
            )
            self._translate_batch(batch, translation_map)
            completed += 1

            if batch.index < batch.total and self.inter_batch_delay:
                self.sleep(self.inter_batch_delay)

        return completed

    def _translate_batch(self, batch: Batch, translation_map: TranslationMap) -> None:
        try:
            translated = self.provider.translate(batch.strings)
        except SheetwarpError as exc:
            logger.error("Batch %d of %d failed: %s", batch.index, batch.total, exc)
            raise
        except Exception as exc:
            logger.error(
                "Batch %d of %d failed unexpectedly: %s", batch.index, batch.total, exc
            )
            raise UnknownError(
                f"Batch {batch.index} of {batch.total} failed unexpectedly: {exc}"
            ) from exc

        if len(translated) != len(batch.strings):
            logger.warning(
                "Batch %d of %d returned %d translations for %d strings; "
                "keeping the original text where none was returned.",
                batch.index,
                batch.total,
                len(translated),
                len(batch.strings),
            )
            translated = list(translated[: len(batch.strings)])
            translated.extend(batch.strings[len(translated) :])

        added = translation_map.commit(batch.strings, translated)
        logger.info(
            "Processed batch %d of %d (%d strings, %d new translations).",
            batch.index,
            batch.total,
            len(batch.strings),
            added,
        )

    def _emit(self, state: ProgressState) -> None:
        if self.on_progress is not None:
            self.on_progress(state)
