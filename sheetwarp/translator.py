"""High-level orchestration for workbook translation."""

from __future__ import annotations

import logging
import pathlib
import re
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .batching import contains_japanese
from .errors import (
    OverwriteRefusedError,
    SheetwarpError,
    describe_failure,
)
from .extraction import TextExtractor
from .orchestrator import (
    DEFAULT_BATCH_DELAY,
    DEFAULT_BATCH_SIZE,
    BatchTranslationOrchestrator,
)
from .package import ArchivePackage
from .providers import TranslationProvider
from .recovery import RecoveryPath, partial_output_path
from .rehydration import Rehydrator
from .structures import (
    ProgressCallback,
    ProgressState,
    ProgressStatus,
    TranslationMap,
)

logger = logging.getLogger(__name__)

WORKBOOK_SUFFIX = ".xlsx"
FILENAME_HOSTILE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


@dataclass
class TranslationSummary:
    """Report returned after processing a workbook."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    provider_name: str
    model: str | None
    target_language: str
    total_text_nodes: int
    total_strings: int
    total_batches: int
    translated_strings: int
    fallback_strings: int
    elapsed_seconds: float
    notes: List[str] = field(default_factory=list)


def default_output_path(input_path: pathlib.Path) -> pathlib.Path:
    return input_path.with_name(f"translated_{input_path.name}")


def sanitise_filename(name: str) -> str:
    """Turn a translated file name into a safe ``.xlsx`` file name."""

    cleaned = FILENAME_HOSTILE_CHARS.sub("_", name).strip().strip(".")
    if not cleaned:
        return ""
    if cleaned.lower().endswith(WORKBOOK_SUFFIX):
        return cleaned
    stem, dot, _ = cleaned.rpartition(".")
    if dot and stem:
        cleaned = stem
    return cleaned + WORKBOOK_SUFFIX


def translate_filename(provider: TranslationProvider, input_path: pathlib.Path) -> str | None:
    """Translate the workbook's file name, or return None when not needed."""

    if not contains_japanese(input_path.stem):
        return None
    [translated] = provider.translate([input_path.name])
    candidate = sanitise_filename(translated)
    return candidate or None


class TranslationRunner:
    """Coordinates loading, extraction, translation, and rebuilding."""

    def __init__(
        self,
        *,
        input_path: pathlib.Path,
        output_path: pathlib.Path | None,
        provider: TranslationProvider,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay: float = DEFAULT_BATCH_DELAY,
        translate_output_name: bool = False,
        force_overwrite: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.provider = provider
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.translate_output_name = translate_output_name
        self.force_overwrite = force_overwrite
        self.on_progress = on_progress
        self.sleep = sleep

        self.partial_output_path: pathlib.Path | None = None

    def run(self) -> TranslationSummary:
        start_time = time.time()
        fallbacks_before = self.provider.fallback_count
        self.partial_output_path = None
        self._emit(ProgressStatus.PARSING, "Reading workbook...")

        package: ArchivePackage | None = None
        translation_map = TranslationMap()
        try:
            package = ArchivePackage.load(self.input_path.read_bytes())

            self._emit(
                ProgressStatus.PARSING,
                "Extracting text (cells, text boxes, charts, sheet names)...",
            )
            extraction = TextExtractor().extract(package)

            orchestrator = BatchTranslationOrchestrator(
                self.provider,
                batch_size=self.batch_size,
                inter_batch_delay=self.inter_batch_delay,
                sleep=self.sleep,
                on_progress=self.on_progress,
            )
            total_batches = orchestrator.run(extraction.strings, translation_map)

            output_path = self._resolve_output_path()

            self._emit(
                ProgressStatus.REBUILDING,
                "Applying translations and preserving styles...",
            )
            rebuilt = Rehydrator().rehydrate(package, translation_map)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(rebuilt.serialize())
        except Exception as exc:
            self.partial_output_path = RecoveryPath().recover(
                package,
                translation_map,
                partial_output_path(self.input_path),
            )
            headline, detail = describe_failure(exc)
            self._emit(ProgressStatus.ERROR, headline, error=detail)
            raise

        self._emit(ProgressStatus.COMPLETE, "Done!")

        fallback_strings = self.provider.fallback_count - fallbacks_before
        notes: List[str] = []
        if fallback_strings:
            notes.append(
                f"{fallback_strings} strings kept their original text "
                "because the translation service returned no usable result."
            )

        return TranslationSummary(
            input_path=self.input_path,
            output_path=output_path,
            provider_name=self.provider.name,
            model=self.provider.model,
            target_language=self.provider.target_language,
            total_text_nodes=extraction.occurrences,
            total_strings=len(extraction.strings),
            total_batches=total_batches,
            translated_strings=len(translation_map),
            fallback_strings=fallback_strings,
            elapsed_seconds=time.time() - start_time,
            notes=notes,
        )

    def _resolve_output_path(self) -> pathlib.Path:
        if self.output_path is not None:
            return self.output_path

        fallback = default_output_path(self.input_path)
        if not self.translate_output_name:
            return fallback

        self._emit(ProgressStatus.TRANSLATING, "Translating filename...")
        try:
            translated = translate_filename(self.provider, self.input_path)
        except SheetwarpError as exc:
            logger.warning("Filename translation failed, falling back to prefix. (%s)", exc)
            return fallback
        if not translated:
            return fallback

        candidate = self.input_path.with_name(translated)
        if candidate.resolve() == self.input_path.resolve():
            return fallback
        if candidate.exists() and not self.force_overwrite:
            logger.warning("%s already exists, falling back to prefix.", candidate.name)
            return fallback
        return candidate

    def _emit(
        self,
        status: ProgressStatus,
        message: str,
        *,
        error: str | None = None,
    ) -> None:
        if self.on_progress is None:
            return
        self.on_progress(ProgressState(status=status, message=message, error=error))


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .xlsx workbook."
        )
    if not input_path.is_file():
        raise SheetwarpError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input workbook. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )
