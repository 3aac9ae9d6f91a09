from __future__ import annotations

import io
import json
import urllib.error
from dataclasses import dataclass
from unittest.mock import patch

import pytest

from htmltr.llm import (
    BackendError,
    MockCompletionBackend,
    OllamaChatClient,
    OpenAIChatCompletionsClient,
    build_completion_backend,
    build_document_system_prompt,
    build_segment_system_prompt,
    describe_language,
    strip_code_fence,
)


@dataclass
class _FakeResponse:
    body: str

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def read(self) -> bytes:
        return self.body.encode("utf-8")


def _http_error(req, code: int) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        url=req.full_url,
        code=code,
        msg="error",
        hdrs=None,
        fp=io.BytesIO(b'{"error":{"message":"quota"}}'),
    )


def test_build_completion_backend_supports_expected_providers():
    mock = build_completion_backend("mock", "irrelevant", 0.1, 10.0, 100)
    assert isinstance(mock, MockCompletionBackend)

    openai = build_completion_backend("OpenAI", "gpt-4o-mini", 0.1, 10.0, 100, api_keys=("k1",))
    assert isinstance(openai, OpenAIChatCompletionsClient)
    assert openai.api_keys == ("k1",)

    ollama = build_completion_backend("ollama", "qwen2.5:7b", 0.1, 10.0, 100, base_url="http://gpu:11434")
    assert isinstance(ollama, OllamaChatClient)
    assert ollama.base_url == "http://gpu:11434"

    with pytest.raises(ValueError):
        build_completion_backend("google", "x", 0.1, 10.0, 100)


def test_mock_backend_echoes_and_reports_estimated_usage():
    completion = MockCompletionBackend().complete("abcd" * 3, "Hello world")
    assert completion.text == "Hello world"
    assert completion.usage.prompt_tokens == 3 + 3
    assert completion.usage.completion_tokens == 3


def test_openai_client_parses_content_and_usage():
    captured: dict = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["auth"] = req.get_header("Authorization")
        captured["payload"] = json.loads(req.data.decode("utf-8"))
        return _FakeResponse(
            json.dumps(
                {
                    "model": "gpt-4o-mini-2024",
                    "choices": [{"message": {"content": "<p>Hola</p>"}}],
                    "usage": {"prompt_tokens": 42, "completion_tokens": 7, "total_tokens": 49},
                }
            )
        )

    client = OpenAIChatCompletionsClient(model="gpt-4o-mini", base_url="https://llm.local/", api_keys=("k1",))
    with patch("htmltr.llm.urllib.request.urlopen", side_effect=fake_urlopen):
        completion = client.complete("system prompt", "<p>Hello</p>")

    assert captured["url"] == "https://llm.local/v1/chat/completions"
    assert captured["auth"] == "Bearer k1"
    assert captured["payload"]["messages"][1] == {"role": "user", "content": "<p>Hello</p>"}
    assert completion.text == "<p>Hola</p>"
    assert completion.usage.prompt_tokens == 42
    assert completion.usage.completion_tokens == 7
    assert completion.model == "gpt-4o-mini-2024"


def test_openai_client_rotates_key_on_quota_error():
    seen_keys: list[str] = []

    def fake_urlopen(req, timeout):
        seen_keys.append(req.get_header("Authorization"))
        if req.get_header("Authorization") == "Bearer k1":
            raise _http_error(req, 429)
        return _FakeResponse('{"choices":[{"message":{"content":"ok"}}]}')

    client = OpenAIChatCompletionsClient(model="gpt-4o-mini", api_keys=("k1", "k2"))
    with patch("htmltr.llm.urllib.request.urlopen", side_effect=fake_urlopen):
        assert client.complete("s", "u").text == "ok"
        assert client.complete("s", "u").text == "ok"

    # The exhausted key is not retried by later calls.
    assert seen_keys == ["Bearer k1", "Bearer k2", "Bearer k2"]


def test_openai_client_raises_backend_error_on_last_key_failure():
    def fake_urlopen(req, timeout):
        raise _http_error(req, 500)

    client = OpenAIChatCompletionsClient(model="gpt-4o-mini", api_keys=("k1",))
    with patch("htmltr.llm.urllib.request.urlopen", side_effect=fake_urlopen):
        with pytest.raises(BackendError) as excinfo:
            client.complete("s", "u")
    assert excinfo.value.status == 500


def test_openai_client_requires_api_key():
    client = OpenAIChatCompletionsClient(model="gpt-4o-mini")
    with patch.dict("os.environ", {"OPENAI_API_KEY": "", "OPENAI_API_KEYS": ""}):
        with pytest.raises(BackendError):
            client.complete("s", "u")


def test_openai_client_reads_comma_separated_env_keys():
    def fake_urlopen(req, timeout):
        return _FakeResponse(json.dumps({"choices": [{"message": {"content": req.get_header("Authorization")}}]}))

    client = OpenAIChatCompletionsClient(model="gpt-4o-mini")
    with patch.dict("os.environ", {"OPENAI_API_KEYS": " a1 , a2 "}), patch(
        "htmltr.llm.urllib.request.urlopen", side_effect=fake_urlopen
    ):
        assert client.complete("s", "u").text == "Bearer a1"


def test_openai_client_rejects_unexpected_schema():
    client = OpenAIChatCompletionsClient(model="gpt-4o-mini", api_keys=("k1",))
    with patch("htmltr.llm.urllib.request.urlopen", return_value=_FakeResponse('{"error": "nope"}')):
        with pytest.raises(BackendError):
            client.complete("s", "u")


def test_ollama_client_reads_eval_counts_as_usage():
    def fake_urlopen(req, timeout):
        assert req.full_url == "http://localhost:11434/api/chat"
        payload = json.loads(req.data.decode("utf-8"))
        assert payload["stream"] is False
        return _FakeResponse(
            json.dumps({"message": {"content": "Hallo"}, "prompt_eval_count": 30, "eval_count": 4})
        )

    client = OllamaChatClient(model="qwen2.5:7b")
    with patch("htmltr.llm.urllib.request.urlopen", side_effect=fake_urlopen):
        completion = client.complete("s", "Hello")

    assert completion.text == "Hallo"
    assert completion.usage.prompt_tokens == 30
    assert completion.usage.completion_tokens == 4


def test_strip_code_fence_unwraps_single_fence_only():
    assert strip_code_fence("```html\n<p>Hi</p>\n```") == "<p>Hi</p>"
    assert strip_code_fence("```\nplain\n```") == "plain"
    assert strip_code_fence("<p>No fence</p>") == "<p>No fence</p>"


def test_system_prompts_name_target_language():
    assert describe_language("es") == "Spanish (es)"
    assert "Spanish (es)" in build_segment_system_prompt("es")
    assert "Spanish (es)" in build_document_system_prompt("es")
    assert "xx" in describe_language("xx")
