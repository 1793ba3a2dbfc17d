"""Translation provider abstractions."""

from __future__ import annotations

import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from .errors import (
    MalformedResponseError,
    QuotaExhaustedError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
    TransientServiceError,
)
from .policy import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_LANGUAGE = "Japanese"
DEFAULT_TARGET_LANGUAGE = "English"

TRANSIENT_STATUS_CODES = {429, 503}
TRANSIENT_ERROR_NAMES = {
    "APIConnectionError",
    "APITimeoutError",
    "ConnectError",
    "ConnectTimeout",
    "ReadTimeout",
}


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_service_error(exc: BaseException) -> TranslationProviderError:
    """Map an SDK exception onto the quota / transient / terminal taxonomy."""

    if isinstance(exc, TranslationProviderError):
        return exc

    status = _status_code(exc)
    code = getattr(exc, "code", None)
    status_text = str(getattr(exc, "status", "") or "")
    message = str(exc)
    lowered = message.lower()

    quota_exhausted = (
        code == "insufficient_quota"
        or "insufficient_quota" in lowered
        or status_text == "RESOURCE_EXHAUSTED"
        or "RESOURCE_EXHAUSTED" in message
    )
    if quota_exhausted:
        return QuotaExhaustedError(
            f"API daily quota exceeded. Please try again tomorrow. ({message})"
        )

    if status in TRANSIENT_STATUS_CODES:
        return TransientServiceError(
            f"Translation service rate limited or overloaded (status {status}): {message}"
        )
    if type(exc).__name__ in TRANSIENT_ERROR_NAMES or isinstance(
        exc, (ConnectionError, TimeoutError)
    ):
        return TransientServiceError(
            f"Translation service temporarily unavailable: {message}"
        )

    return TranslationProviderError(f"Translation service request failed: {message}")


class TranslationProvider(ABC):
    """Abstract adapter for translation providers.

    ``translate`` always returns a list with one entry per input string.
    Transient failures are retried according to ``retry_policy``; entries the
    service leaves out are filled with the original text and counted in
    ``fallback_count``.
    """

    name = "provider"

    def __init__(
        self,
        *,
        retry_policy: RetryPolicy | None = None,
        source_language: str = DEFAULT_SOURCE_LANGUAGE,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        model: str | None = None,
    ) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.source_language = source_language
        self.target_language = target_language
        self.model = model
        self.fallback_count = 0

    def translate(self, texts: Sequence[str]) -> List[str]:
        """Translate the provided strings, preserving their order."""

        originals = list(texts)
        if not originals:
            return []

        try:
            mapping = self.retry_policy.run(
                lambda: self._request(originals),
                description=f"{self.name} translation request",
            )
        except MalformedResponseError as exc:
            logger.warning(
                "Unusable response for %d strings; keeping the original text. (%s)",
                len(originals),
                exc,
            )
            self.fallback_count += len(originals)
            return originals

        return self._reconcile(originals, mapping)

    @abstractmethod
    def _request(self, texts: List[str]) -> Dict[str, str]:
        """Send one request and return translations keyed by batch index."""

    def _reconcile(self, originals: List[str], mapping: Dict[str, str]) -> List[str]:
        results: List[str] = []
        missing = 0
        for index, original in enumerate(originals):
            translated = mapping.get(str(index))
            if not isinstance(translated, str) or not translated:
                missing += 1
                translated = original
            results.append(translated)
        if missing:
            logger.warning(
                "Translation missing for %d of %d strings; keeping the original text.",
                missing,
                len(originals),
            )
            self.fallback_count += missing
        return results


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def _request(self, texts: List[str]) -> Dict[str, str]:
        return {str(index): text for index, text in enumerate(texts)}


SYSTEM_PROMPT = (
    "You are a professional technical translator specialising in {source} "
    "software design documents kept in spreadsheets. "
    "Translate the 'text' field of every item into {target}. "
    "Maintain the technical context and IT terminology. "
    "Keep translations concise so they fit similar cell constraints. "
    "If a string is already in {target}, or is a symbol or number that needs no "
    "translation, return it unchanged. "
    "Return only JSON shaped as "
    '{{"translations": [{{"id": "...", "translated": "..."}}]}} '
    "with one entry per input id. "
    "Do not add commentary. Do not wrap the JSON in markdown code fences."
)


class JsonTranslationProvider(TranslationProvider):
    """Shared prompt building and response parsing for LLM-backed providers."""

    DEFAULT_MODEL = ""

    def __init__(self, *, debug: bool = False, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.debug = debug

    def _request(self, texts: List[str]) -> Dict[str, str]:
        system_prompt = SYSTEM_PROMPT.format(
            source=self.source_language,
            target=self.target_language,
        )
        user_payload = {
            "source_language": self.source_language,
            "target_language": self.target_language,
            "segments": [
                {"id": str(index), "text": text} for index, text in enumerate(texts)
            ],
        }
        self._log_debug("provider.request.system_prompt", system_prompt)
        self._log_debug("provider.request.payload", user_payload)

        items = self._invoke_model(
            system_prompt=system_prompt,
            user_payload=user_payload,
            model=self.model or self.DEFAULT_MODEL,
        )
        self._log_debug("provider.response.items", items)

        mapping: Dict[str, str] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            item_id = item.get("id")
            translated = item.get("translated", item.get("translatedText"))
            if item_id is None or not isinstance(translated, str):
                continue
            mapping[str(item_id)] = translated

        self._log_debug("provider.response.mapping", mapping)
        return mapping

    @abstractmethod
    def _invoke_model(
        self,
        *,
        system_prompt: str,
        user_payload: dict,
        model: str,
    ) -> list[Any]:
        """Call the backing model and return the raw translation items."""

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not getattr(self, "debug", False):
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        print(f"[sheetwarp][provider-debug] {label}:\n{message}", file=sys.stderr)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()

    def _normalise_translations(self, payload: Any) -> list[Any]:
        """Normalise raw payloads into a list of translation dictionaries."""

        if hasattr(payload, "value"):
            payload = payload.value

        if isinstance(payload, str):
            payload = self._strip_code_fence(payload)
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise MalformedResponseError(
                    f"Translation provider returned invalid JSON: {exc}"
                ) from exc

        if isinstance(payload, dict):
            translations = payload.get("translations")
            if isinstance(translations, list):
                return translations

        if isinstance(payload, list):
            return payload

        raise MalformedResponseError(
            "Translation provider response malformed: could not find translations list."
        )


class OpenAITranslationProvider(JsonTranslationProvider):
    """Translation provider that uses OpenAI models through the Responses API."""

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"

    def __init__(self, *, kind: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        provider_value = kind or os.getenv("LLM_PROVIDER", "openai") or "openai"
        normalized = provider_value.strip().lower()
        if normalized in {"azure_open_ai", "azure-openai"}:
            normalized = "azure_openai"
        if normalized not in {"openai", "azure_openai"}:
            normalized = "openai"

        self.provider_kind = normalized
        self._client, self._default_model = self._build_client()
        self.model = self.model or self._default_model

    def _build_client(self) -> tuple[Any, str]:
        if self.provider_kind == "azure_openai":
            return self._build_azure_client()

        return self._build_openai_client()

    def _build_openai_client(self) -> tuple[Any, str]:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        # Retries are handled by the retry policy, not the SDK.
        return OpenAI(api_key=api_key, max_retries=0), self.DEFAULT_MODEL

    def _build_azure_client(self) -> tuple[Any, str]:
        api_key = os.getenv("AZURE_OPENAI_API_KEY")
        endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        api_version = os.getenv("AZURE_OPENAI_API_VERSION")
        deployment_name = os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME")

        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": api_key,
                "AZURE_OPENAI_ENDPOINT": endpoint,
                "AZURE_OPENAI_API_VERSION": api_version,
                "AZURE_OPENAI_DEPLOYMENT_NAME": deployment_name,
            }.items()
            if not value
        ]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        try:
            from openai import AzureOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        client = AzureOpenAI(
            api_key=api_key,
            api_version=api_version,
            azure_endpoint=endpoint,
            max_retries=0,
        )
        return client, deployment_name  # type: ignore[return-value]

    def _invoke_model(
        self,
        *,
        system_prompt: str,
        user_payload: dict,
        model: str,
    ) -> list[Any]:
        """Call the OpenAI Responses API and return structured JSON data."""

        try:
            response = self._client.responses.create(
                model=model,
                input=[
                    {
                        "role": "system",
                        "content": [
                            {"type": "input_text", "text": system_prompt},
                        ],
                    },
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "input_text",
                                "text": json.dumps(user_payload, ensure_ascii=False),
                            }
                        ],
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise classify_service_error(exc) from exc
        return self._extract_translations(response)

    def _extract_translations(self, response: Any) -> list[Any]:
        """Extract the structured translation list from a Responses API result."""

        output_text = getattr(response, "output_text", None)
        if hasattr(output_text, "value"):
            output_text = output_text.value
        if output_text:
            return self._normalise_translations(str(output_text))

        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text_value = getattr(part, "text", None)
                if hasattr(text_value, "value"):
                    text_value = text_value.value
                if text_value:
                    return self._normalise_translations(str(text_value))

        raise MalformedResponseError(
            "Translation provider response empty or unrecognised."
        )


class LegacyOpenAITranslationProvider(OpenAITranslationProvider):
    """Translation provider that uses the Chat Completions API for compatibility."""

    name = "legacy-openai"

    def _invoke_model(
        self,
        *,
        system_prompt: str,
        user_payload: dict,
        model: str,
    ) -> list[Any]:
        """Call the Chat Completions API and return structured JSON data."""

        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=0,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": json.dumps(user_payload, ensure_ascii=False),
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise classify_service_error(exc) from exc

        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None)
            if content:
                return self._normalise_translations(str(content))

        raise MalformedResponseError(
            "Translation provider response empty or unrecognised."
        )


class GeminiTranslationProvider(JsonTranslationProvider):
    """Translation provider backed by Google Gemini through google-genai."""

    name = "gemini"
    DEFAULT_MODEL = "gemini-2.0-flash"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise TranslationProviderConfigurationError(
                "Gemini configuration missing. Set GEMINI_API_KEY or choose a "
                "different provider."
            )
        try:
            from google import genai  # type: ignore
            from google.genai import types  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "google-genai not installed. Install with `pip install google-genai`."
            ) from exc

        self._client = genai.Client(api_key=api_key)
        self._types = types
        self.model = self.model or self.DEFAULT_MODEL

    def _invoke_model(
        self,
        *,
        system_prompt: str,
        user_payload: dict,
        model: str,
    ) -> list[Any]:
        """Call generate_content with a JSON response and return its items."""

        try:
            response = self._client.models.generate_content(
                model=model,
                contents=json.dumps(user_payload, ensure_ascii=False),
                config=self._types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    response_mime_type="application/json",
                    temperature=0,
                ),
            )
        except Exception as exc:  # pragma: no cover - network call
            raise classify_service_error(exc) from exc

        response_text = getattr(response, "text", None)
        if not response_text:
            raise MalformedResponseError("Empty response from Gemini.")
        return self._normalise_translations(response_text)


def build_provider(
    name: str | None,
    *,
    retry_policy: RetryPolicy | None = None,
    target_language: str = DEFAULT_TARGET_LANGUAGE,
    model: str | None = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name."""

    normalized = (name or os.getenv("LLM_PROVIDER") or "openai").strip().lower()
    common: Dict[str, Any] = {
        "retry_policy": retry_policy,
        "target_language": target_language,
        "model": model,
    }
    if normalized in {"azure_openai", "azure-openai", "azure"}:
        return OpenAITranslationProvider(kind="azure_openai", debug=debug, **common)
    if normalized in {"openai", "gpt", "default"}:
        return OpenAITranslationProvider(debug=debug, **common)
    if normalized in {"legacy-openai", "legacy_openai", "legacy", "openai-legacy"}:
        return LegacyOpenAITranslationProvider(debug=debug, **common)
    if normalized in {"gemini", "google", "google-genai"}:
        return GeminiTranslationProvider(debug=debug, **common)
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider(**common)
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )
