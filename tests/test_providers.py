from __future__ import annotations

from typing import Any, List

import pytest

from sheetwarp.errors import (
    MalformedResponseError,
    QuotaExhaustedError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
    TransientServiceError,
)
from sheetwarp.policy import RetryPolicy
from sheetwarp.providers import (
    EchoTranslationProvider,
    JsonTranslationProvider,
    build_provider,
    classify_service_error,
)
from tests.workbooks import ScriptedProvider


class FakeStatusError(Exception):
    """Mimics the attributes SDK errors expose."""

    def __init__(self, message: str, *, status_code: Any = None, code: Any = None, status: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.status = status


class APIConnectionError(Exception):
    pass


class CannedJsonProvider(JsonTranslationProvider):
    name = "canned"

    def __init__(self, payload: Any, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.payload = payload
        self.requests: List[dict] = []

    def _invoke_model(self, *, system_prompt: str, user_payload: dict, model: str) -> list[Any]:
        self.requests.append(user_payload)
        return self._normalise_translations(self.payload)


def _no_sleep_policy(**kwargs: Any) -> RetryPolicy:
    return RetryPolicy(sleep=lambda _: None, max_jitter=0.0, **kwargs)


def test_echo_provider_returns_input() -> None:
    provider = EchoTranslationProvider()

    assert provider.translate(["一", "二"]) == ["一", "二"]
    assert provider.translate([]) == []
    assert provider.fallback_count == 0


def test_results_follow_positions_not_values() -> None:
    provider = ScriptedProvider({"甲": "A", "乙": "B"}, retry_policy=_no_sleep_policy())

    assert provider.translate(["乙", "甲", "乙"]) == ["B", "A", "B"]


def test_json_provider_parses_translations_by_id() -> None:
    provider = CannedJsonProvider(
        '```json\n{"translations": [{"id": "1", "translated": "B"}, {"id": "0", "translated": "A"}]}\n```',
        retry_policy=_no_sleep_policy(),
    )

    assert provider.translate(["甲", "乙"]) == ["A", "B"]
    segments = provider.requests[0]["segments"]
    assert segments == [{"id": "0", "text": "甲"}, {"id": "1", "text": "乙"}]


def test_json_provider_accepts_bare_list_with_translated_text_key() -> None:
    provider = CannedJsonProvider(
        [{"id": "0", "translatedText": "A"}],
        retry_policy=_no_sleep_policy(),
    )

    assert provider.translate(["甲"]) == ["A"]


def test_missing_entries_fall_back_to_original_text() -> None:
    provider = CannedJsonProvider(
        {"translations": [{"id": "0", "translated": "A"}, {"id": "2", "translated": ""}, "junk"]},
        retry_policy=_no_sleep_policy(),
    )

    assert provider.translate(["甲", "乙", "丙"]) == ["A", "乙", "丙"]
    assert provider.fallback_count == 2


def test_invalid_json_echoes_the_whole_batch() -> None:
    provider = CannedJsonProvider("this is not json", retry_policy=_no_sleep_policy())

    assert provider.translate(["甲", "乙"]) == ["甲", "乙"]
    assert provider.fallback_count == 2


def test_unexpected_json_shape_echoes_the_whole_batch() -> None:
    provider = CannedJsonProvider({"result": "nope"}, retry_policy=_no_sleep_policy())

    assert provider.translate(["甲"]) == ["甲"]


def test_transient_errors_are_retried_inside_the_provider() -> None:
    sleeps: List[float] = []
    provider = ScriptedProvider(
        failures={1: TransientServiceError("429"), 2: TransientServiceError("503")},
        retry_policy=RetryPolicy(sleep=sleeps.append, max_jitter=0.0, base_delay=5.0),
    )

    assert provider.translate(["甲"]) == ["EN[甲]"]
    assert len(provider.calls) == 3
    assert sleeps == [5.0, 10.0]


def test_quota_errors_are_not_retried() -> None:
    provider = ScriptedProvider(
        failures={1: QuotaExhaustedError("daily quota")},
        retry_policy=_no_sleep_policy(),
    )

    with pytest.raises(QuotaExhaustedError):
        provider.translate(["甲"])
    assert len(provider.calls) == 1


def test_malformed_error_raised_by_request_is_recovered_locally() -> None:
    provider = ScriptedProvider(
        failures={1: MalformedResponseError("garbage")},
        retry_policy=_no_sleep_policy(),
    )

    assert provider.translate(["甲"]) == ["甲"]
    assert provider.fallback_count == 1


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (FakeStatusError("You exceeded your current quota", status_code=429, code="insufficient_quota"), QuotaExhaustedError),
        (
            FakeStatusError(
                "Quota exceeded for metric generate_content_free_tier_requests, GenerateRequestsPerDayPerProject",
                code=429,
                status="RESOURCE_EXHAUSTED",
            ),
            QuotaExhaustedError,
        ),
        (
            FakeStatusError("Quota exceeded: GenerateRequestsPerMinutePerProject", code=429, status="RESOURCE_EXHAUSTED"),
            QuotaExhaustedError,
        ),
        (FakeStatusError("429 Too Many Requests", code=429, status="RESOURCE_EXHAUSTED"), QuotaExhaustedError),
        (FakeStatusError("Rate limit reached", status_code=429, code="rate_limit_exceeded"), TransientServiceError),
        (FakeStatusError("The model is overloaded", code=503, status="UNAVAILABLE"), TransientServiceError),
        (APIConnectionError("Connection error."), TransientServiceError),
        (TimeoutError("timed out"), TransientServiceError),
        (FakeStatusError("Invalid API key", status_code=401), TranslationProviderError),
    ],
)
def test_classify_service_error(error: Exception, expected: type) -> None:
    classified = classify_service_error(error)

    assert type(classified) is expected


def test_classify_passes_through_known_errors() -> None:
    error = QuotaExhaustedError("already classified")

    assert classify_service_error(error) is error


def test_build_provider_creates_echo_provider() -> None:
    provider = build_provider("echo", target_language="German")

    assert isinstance(provider, EchoTranslationProvider)
    assert provider.target_language == "German"


def test_build_provider_rejects_unknown_names() -> None:
    with pytest.raises(TranslationProviderConfigurationError):
        build_provider("carrier-pigeon")


def test_openai_provider_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("LLM_PROVIDER", raising=False)

    with pytest.raises(TranslationProviderConfigurationError):
        build_provider("openai")


def test_gemini_provider_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    with pytest.raises(TranslationProviderConfigurationError):
        build_provider("gemini")
