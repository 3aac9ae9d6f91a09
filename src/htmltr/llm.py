from __future__ import annotations

import json
import math
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Protocol

from .usage import TokenUsage


class BackendError(RuntimeError):
    """Completion backend call failed (transport, HTTP status or response schema)."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class Completion:
    text: str
    usage: TokenUsage = TokenUsage()
    model: str = ""


class CompletionBackend(Protocol):
    provider: str
    model: str

    def complete(self, system: str, user: str, *, model: str | None = None) -> Completion: ...


LANGUAGE_NAMES: dict[str, str] = {
    "ar": "Arabic",
    "de": "German",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "hi": "Hindi",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "nl": "Dutch",
    "pl": "Polish",
    "pt": "Portuguese",
    "ru": "Russian",
    "tr": "Turkish",
    "zh": "Chinese",
}


def describe_language(code: str) -> str:
    norm = str(code or "").strip()
    name = LANGUAGE_NAMES.get(norm.split("-")[0].lower())
    return f"{name} ({norm})" if name else norm


SEGMENT_SYSTEM_PROMPT_TEMPLATE = """You are a professional translator. Translate the USER content into {language}.

CRITICAL RULES:
- Translate EVERY WORD including proper nouns, technical terms, and all text
- Preserve markdown and inline formatting markers (**, -, numbers, etc.) exactly
- Keep punctuation and structure identical
- Do NOT keep any source-language words unless they are URLs or code
- Output ONLY the translation, no explanations"""


DOCUMENT_SYSTEM_PROMPT_TEMPLATE = """You are a professional translator. The USER content is an HTML fragment.
Translate all human-readable text in it into {language}.

CRITICAL RULES:
- Keep every HTML tag, attribute name, attribute value and their order EXACTLY as given
- Do NOT add, remove, merge or reorder tags; do NOT wrap the output in code fences
- Inside <script type="application/ld+json"> blocks translate only the values of
  headline, description, text, name, articleSection and keywords; keep keys, URLs and "@" values unchanged
- The fragment may be one piece of a longer document: do not close or open tags to "fix" it
- Translate EVERY WORD of visible text and do NOT keep source-language words unless they are URLs or code
- Output ONLY the translated HTML, no explanations"""


def build_segment_system_prompt(target_lang: str) -> str:
    return SEGMENT_SYSTEM_PROMPT_TEMPLATE.format(language=describe_language(target_lang))


def build_document_system_prompt(target_lang: str) -> str:
    return DOCUMENT_SYSTEM_PROMPT_TEMPLATE.format(language=describe_language(target_lang))


_CODE_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*\n(.*?)\n?```\s*$", flags=re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Unwrap a reply that the model wrapped in a single Markdown code fence."""
    m = _CODE_FENCE_RE.match(text)
    return m.group(1) if m else text


def rough_token_estimate(text: str) -> int:
    return math.ceil(len(text) / 4) if text else 0


def _usage_from_openai(data: dict[str, Any]) -> TokenUsage:
    usage = data.get("usage") or {}
    return TokenUsage(
        prompt_tokens=int(usage.get("prompt_tokens") or 0),
        completion_tokens=int(usage.get("completion_tokens") or 0),
    )


@dataclass(frozen=True)
class MockCompletionBackend:
    """Deterministic mock for tests and offline runs: echoes the user text."""

    provider: str = "mock"
    model: str = "mock"

    def complete(self, system: str, user: str, *, model: str | None = None) -> Completion:
        return Completion(
            text=user,
            usage=TokenUsage(
                prompt_tokens=rough_token_estimate(system) + rough_token_estimate(user),
                completion_tokens=rough_token_estimate(user),
            ),
            model=model or self.model,
        )


def _split_api_keys(raw: str | None) -> list[str]:
    return [k.strip() for k in (raw or "").split(",") if k.strip()]


_ROTATE_STATUSES = {401, 403, 429}


@dataclass
class OpenAIChatCompletionsClient:
    """OpenAI-compatible Chat Completions client.

    Requires env:
      - OPENAI_API_KEY, or OPENAI_API_KEYS (comma-separated; rotated on 401/403/429)
    Optional:
      - OPENAI_BASE_URL (default https://api.openai.com)
    """

    model: str
    temperature: float = 0.3
    timeout_s: float = 120.0
    max_output_tokens: int = 4000
    base_url: str | None = None
    api_keys: tuple[str, ...] = ()
    provider: str = "openai"
    _key_index: int = field(default=0, repr=False)

    def _keys(self) -> list[str]:
        if self.api_keys:
            return list(self.api_keys)
        keys = _split_api_keys(os.environ.get("OPENAI_API_KEYS"))
        if not keys and os.environ.get("OPENAI_API_KEY"):
            keys = [os.environ["OPENAI_API_KEY"]]
        return keys

    def _post(self, api_key: str, payload: dict[str, Any]) -> dict[str, Any]:
        base = (self.base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com")).rstrip("/")
        req = urllib.request.Request(
            url=f"{base}/v1/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
            raise BackendError(f"OpenAI API error ({e.code}): {body[:400]}", status=e.code) from e
        except Exception as e:
            raise BackendError(f"OpenAI request failed: {e}") from e

    def complete(self, system: str, user: str, *, model: str | None = None) -> Completion:
        keys = self._keys()
        if not keys:
            raise BackendError("OPENAI_API_KEY is not set")
        payload = {
            "model": model or self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        while True:
            idx = min(self._key_index, len(keys) - 1)
            try:
                data = self._post(keys[idx], payload)
                break
            except BackendError as e:
                # Quota/auth errors move to the next key for the rest of this client's life.
                if e.status in _ROTATE_STATUSES and idx < len(keys) - 1:
                    self._key_index = idx + 1
                    continue
                raise

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except Exception as e:
            raise BackendError(f"Unexpected OpenAI response schema: {str(data)[:400]}") from e
        return Completion(text=content, usage=_usage_from_openai(data), model=str(data.get("model") or payload["model"]))


@dataclass(frozen=True)
class OllamaChatClient:
    """Local Ollama chat client."""

    model: str
    temperature: float = 0.3
    timeout_s: float = 120.0
    max_output_tokens: int = 4000
    base_url: str = "http://localhost:11434"
    provider: str = "ollama"

    def complete(self, system: str, user: str, *, model: str | None = None) -> Completion:
        payload = {
            "model": model or self.model,
            "stream": False,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "options": {"num_predict": self.max_output_tokens, "temperature": self.temperature},
        }
        req = urllib.request.Request(
            url=f"{self.base_url.rstrip('/')}/api/chat",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                data = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
            raise BackendError(f"Ollama HTTPError {e.code}: {body[:400]}", status=e.code) from e
        except Exception as e:
            raise BackendError(f"Ollama request failed: {e}") from e

        try:
            content = data["message"]["content"] or ""
        except Exception as e:
            raise BackendError(f"Unexpected Ollama response schema: {str(data)[:400]}") from e
        usage = TokenUsage(
            prompt_tokens=int(data.get("prompt_eval_count") or 0),
            completion_tokens=int(data.get("eval_count") or 0),
        )
        return Completion(text=content, usage=usage, model=str(data.get("model") or payload["model"]))


def build_completion_backend(
    provider: str,
    model: str,
    temperature: float,
    timeout_s: float,
    max_output_tokens: int,
    *,
    base_url: str | None = None,
    api_keys: tuple[str, ...] = (),
) -> CompletionBackend:
    provider_norm = provider.strip().lower()
    if provider_norm == "mock":
        return MockCompletionBackend(model=model or "mock")
    if provider_norm == "openai":
        return OpenAIChatCompletionsClient(
            model=model,
            temperature=temperature,
            timeout_s=timeout_s,
            max_output_tokens=max_output_tokens,
            base_url=base_url,
            api_keys=tuple(api_keys),
        )
    if provider_norm == "ollama":
        return OllamaChatClient(
            model=model,
            temperature=temperature,
            timeout_s=timeout_s,
            max_output_tokens=max_output_tokens,
            base_url=base_url or os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434"),
        )
    raise ValueError(f"Unknown LLM provider: {provider}")
