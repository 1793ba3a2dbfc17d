"""Command line interface for the Sheetwarp translator."""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Iterable, Optional

from .configuration import (
    SheetwarpConfig,
    export_credentials,
    get_settings,
    validate_provider_settings,
)
from .errors import (
    OverwriteRefusedError,
    SheetwarpError,
    TranslationProviderConfigurationError,
    describe_failure,
    is_quota_error,
)
from .orchestrator import DEFAULT_BATCH_DELAY, DEFAULT_BATCH_SIZE
from .policy import RetryPolicy
from .providers import DEFAULT_TARGET_LANGUAGE, build_provider
from .structures import ProgressState, ProgressStatus
from .translator import (
    TranslationRunner,
    TranslationSummary,
    default_output_path,
    validate_paths,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 2
EXIT_QUOTA = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetwarp",
        description=(
            "Translate the Japanese text of Excel (.xlsx) workbooks while "
            "preserving layout and styles."
        ),
    )
    parser.add_argument(
        "input_file",
        help="Path to the .xlsx workbook to translate.",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to translated_<input name> next to the input.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        default=DEFAULT_TARGET_LANGUAGE,
        help=f"Destination language (default: {DEFAULT_TARGET_LANGUAGE}).",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider: openai, azure_openai, legacy-openai, gemini, or echo.",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "-b",
        "--batch-size",
        type=int,
        help=f"Unique strings per translation request (default: {DEFAULT_BATCH_SIZE}).",
    )
    parser.add_argument(
        "--batch-delay",
        type=float,
        help=f"Seconds to wait between batches (default: {DEFAULT_BATCH_DELAY:g}).",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        help="Retries for rate-limited or overloaded requests (default: 5).",
    )
    parser.add_argument(
        "--translate-filename",
        action="store_true",
        help="Name the output after the translated input file name.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def print_progress(state: ProgressState) -> None:
    """Render a progress snapshot as a single console line."""

    if state.status is ProgressStatus.TRANSLATING and state.total_batches:
        print(f"[{state.current_batch}/{state.total_batches}] {state.message}")
    elif state.status is ProgressStatus.ERROR:
        print(f"{state.message}: {state.error}" if state.error else state.message)
    else:
        print(state.message)


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    target_language: str = DEFAULT_TARGET_LANGUAGE,
    provider: str | None = None,
    model: str | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    batch_delay: float = DEFAULT_BATCH_DELAY,
    max_retries: int = 5,
    retry_base_delay: float = 5.0,
    translate_filename: bool = False,
    force_overwrite: bool = False,
    verbose: bool = False,
    provider_debug: bool = False,
) -> tuple[int, TranslationSummary | None, str | None]:
    """Execute a translation run and return the exit code, summary, and message."""

    if batch_size < 1:
        return EXIT_FAILURE, None, "The batch size must be at least 1."

    input_path = pathlib.Path(input_file).expanduser().resolve()
    explicit_output = (
        pathlib.Path(output_file).expanduser().resolve() if output_file else None
    )

    try:
        validate_paths(
            input_path,
            explicit_output or default_output_path(input_path),
            force_overwrite=force_overwrite,
        )
    except FileNotFoundError as exc:
        return EXIT_FAILURE, None, str(exc)
    except OverwriteRefusedError as exc:
        return EXIT_FAILURE, None, str(exc)
    except SheetwarpError as exc:
        return EXIT_FAILURE, None, str(exc)

    try:
        translation_provider = build_provider(
            provider,
            retry_policy=RetryPolicy(
                max_attempts=max(0, max_retries) + 1,
                base_delay=retry_base_delay,
            ),
            target_language=target_language,
            model=model,
            debug=provider_debug,
        )
    except TranslationProviderConfigurationError as exc:
        return EXIT_FAILURE, None, str(exc)

    runner = TranslationRunner(
        input_path=input_path,
        output_path=explicit_output,
        provider=translation_provider,
        batch_size=batch_size,
        inter_batch_delay=batch_delay,
        translate_output_name=translate_filename,
        force_overwrite=force_overwrite,
        on_progress=print_progress if verbose else None,
    )

    try:
        summary = runner.run()
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED, None, "Translation interrupted by user."
    except Exception as exc:
        headline, detail = describe_failure(exc)
        message = f"{headline}: {detail}"
        if runner.partial_output_path is not None:
            message += (
                f"\nPartial translation saved to {runner.partial_output_path}"
            )
        if is_quota_error(exc):
            return EXIT_QUOTA, None, message
        if not isinstance(exc, SheetwarpError):
            message += (
                "\nAn unexpected error occurred. "
                "Please rerun with --verbose for more details."
            )
        return EXIT_FAILURE, None, message

    return EXIT_OK, summary, None


def print_summary(summary: TranslationSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    print(f"  Input file:      {summary.input_path}")
    print(f"  Output file:     {summary.output_path}")
    print(
        "  Strings:         "
        f"{summary.translated_strings} translated / {summary.total_strings} unique "
        f"({summary.total_text_nodes} text nodes scanned)"
    )
    print(f"  Batches:         {summary.total_batches}")
    print(
        f"  Provider:        {summary.provider_name}"
        + (f" ({summary.model})" if summary.model else "")
    )
    print(f"  Target language: {summary.target_language}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.notes:
        print("  Notes:")
        for message in summary.notes:
            print(f"    - {message}")


def _load_settings(provider: str | None) -> SheetwarpConfig:
    settings = get_settings()
    if (provider or settings.LLM_PROVIDER) != "echo":
        validate_provider_settings(settings, provider)
    export_credentials(settings)
    return settings


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    try:
        settings = _load_settings(args.provider)
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return EXIT_FAILURE

    exit_code, summary, message = execute_translation(
        input_file=args.input_file,
        output_file=args.output,
        target_language=args.target_language,
        provider=args.provider or settings.LLM_PROVIDER,
        model=args.model,
        batch_size=(
            args.batch_size
            if args.batch_size is not None
            else settings.SHEETWARP_BATCH_SIZE
        ),
        batch_delay=(
            args.batch_delay
            if args.batch_delay is not None
            else settings.SHEETWARP_BATCH_DELAY
        ),
        max_retries=(
            args.max_retries
            if args.max_retries is not None
            else settings.SHEETWARP_MAX_RETRIES
        ),
        retry_base_delay=settings.SHEETWARP_RETRY_BASE_DELAY,
        translate_filename=args.translate_filename,
        force_overwrite=args.force,
        verbose=args.verbose,
        provider_debug=bool(args.debug_provider or settings.SHEETWARP_PROVIDER_DEBUG),
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
