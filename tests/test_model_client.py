import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from jobs.analyze.model_client import (
    GeminiClient,
    ModelClientError,
    ModelResponseError,
    OllamaClient,
    RateLimitError,
    build_model_client,
)


def _response(status: int, body=None, raw: bytes = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r.encoding = "utf-8"
    r.url = "http://model.test"
    if raw is not None:
        r._content = raw
    else:
        r._content = json.dumps(body if body is not None else {}).encode("utf-8")
    return r


def _session(*responses) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.post.side_effect = list(responses)
    return session


def _gemini(session, api_key="test-key"):
    return GeminiClient(api_key=api_key, model="gemini-test", base_url="https://gemini.test/v1beta/", session=session)


def test_ollama_returns_response_field():
    session = _session(_response(200, {"response": '[{"mentionId": "csv-row-1"}]', "done": True}))
    client = OllamaClient(model="mistral:7b-instruct", base_url="http://ollama.test:11434/", session=session)

    assert client.generate("classify") == '[{"mentionId": "csv-row-1"}]'

    url = session.post.call_args.args[0]
    payload = session.post.call_args.kwargs["json"]
    assert url == "http://ollama.test:11434/api/generate"
    assert payload == {"model": "mistral:7b-instruct", "prompt": "classify", "stream": False}


def test_gemini_joins_candidate_parts():
    body = {
        "candidates": [
            {"content": {"parts": [{"text": '[{"mentionId": '}, {"text": '"csv-row-1"}]'}]}},
            {"content": {"parts": [{"text": "ignored"}]}},
        ]
    }
    session = _session(_response(200, body))

    assert _gemini(session).generate("classify") == '[{"mentionId": "csv-row-1"}]'

    call = session.post.call_args
    assert call.args[0] == "https://gemini.test/v1beta/models/gemini-test:generateContent"
    assert call.kwargs["headers"] == {"x-goog-api-key": "test-key"}
    assert call.kwargs["json"]["contents"][0]["parts"][0]["text"] == "classify"


def test_gemini_without_candidates_is_a_response_error():
    session = _session(_response(200, {"promptFeedback": {"blockReason": "SAFETY"}}))
    with pytest.raises(ModelResponseError, match="no candidates"):
        _gemini(session).generate("classify")


def test_gemini_without_api_key_fails_before_calling_out():
    session = _session()
    with pytest.raises(ModelClientError, match="GEMINI_API_KEY"):
        _gemini(session, api_key="").generate("classify")
    session.post.assert_not_called()


@pytest.mark.parametrize("make_client", [
    lambda s: OllamaClient(session=s),
    lambda s: _gemini(s),
])
def test_http_429_raises_rate_limit(make_client):
    session = _session(_response(429, {"error": {"status": "RESOURCE_EXHAUSTED"}}))
    with pytest.raises(RateLimitError):
        make_client(session).generate("classify")


def test_http_500_raises_response_error_not_rate_limit():
    session = _session(_response(500, {"error": "model crashed"}))
    with pytest.raises(ModelResponseError, match="500") as exc:
        OllamaClient(session=session).generate("classify")
    assert not isinstance(exc.value, RateLimitError)


def test_transport_failure_raises_response_error():
    session = MagicMock(spec=requests.Session)
    session.post.side_effect = requests.ConnectionError("connection refused")
    with pytest.raises(ModelResponseError, match="connection refused"):
        OllamaClient(session=session).generate("classify")


def test_non_json_envelope_raises_response_error():
    session = _session(_response(200, raw=b"<html>bad gateway</html>"))
    with pytest.raises(ModelResponseError, match="non-JSON"):
        _gemini(session).generate("classify")


def _settings(**overrides):
    values = dict(
        llm_provider="gemini",
        gemini_api_key="k",
        gemini_model="gemini-2.5-flash",
        gemini_base_url="https://generativelanguage.googleapis.com/v1beta",
        ollama_model="mistral:7b-instruct",
        ollama_base_url="http://127.0.0.1:11434",
        llm_timeout_seconds=30,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_build_model_client_picks_provider():
    gemini = build_model_client(_settings(llm_provider=" Gemini "))
    ollama = build_model_client(_settings(llm_provider="ollama"))
    try:
        assert isinstance(gemini, GeminiClient)
        assert gemini.timeout == 30
        assert isinstance(ollama, OllamaClient)
        assert ollama.model == "mistral:7b-instruct"
    finally:
        gemini.close()
        ollama.close()


def test_build_model_client_rejects_unknown_provider():
    with pytest.raises(ValueError, match="openai"):
        build_model_client(_settings(llm_provider="openai"))
