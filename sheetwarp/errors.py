"""Error definitions for the Sheetwarp translator."""

from __future__ import annotations


class SheetwarpError(Exception):
    """Base exception for all custom errors."""


class ArchiveLoadError(SheetwarpError):
    """Raised when the input is not a readable workbook package."""


class OverwriteRefusedError(SheetwarpError):
    """Raised when attempting to overwrite an output without consent."""


class TranslationProviderConfigurationError(SheetwarpError):
    """Raised when the translation provider is misconfigured."""


class TranslationProviderError(SheetwarpError):
    """Raised when the translation provider fails permanently."""


class QuotaExhaustedError(TranslationProviderError):
    """Raised when the upstream service reports an exhausted quota."""


class TransientServiceError(TranslationProviderError):
    """Raised for rate limits and overloads that may succeed on retry."""


class MalformedResponseError(TranslationProviderError):
    """Raised when a provider response cannot be parsed."""


class UnknownError(SheetwarpError):
    """Wraps an unexpected failure raised during translation."""


def is_quota_error(exc: BaseException) -> bool:
    """Return True when the error should be reported as a quota problem."""

    return isinstance(exc, QuotaExhaustedError)


def describe_failure(exc: BaseException) -> tuple[str, str]:
    """Return a short headline and a user-facing explanation for a failure."""

    if is_quota_error(exc):
        return (
            "API Limit Exceeded",
            "The translation API daily quota has been exceeded. "
            "Batches translated so far are kept in the partial file, if one "
            "was produced. Please try again tomorrow.",
        )
    if isinstance(exc, TransientServiceError):
        return (
            "Processing Error",
            f"The translation service stayed busy after several retries: {exc}",
        )
    if isinstance(exc, ArchiveLoadError):
        return ("Processing Error", str(exc))
    return (
        "Processing Error",
        str(exc) or "An error occurred during processing. Please try again.",
    )
