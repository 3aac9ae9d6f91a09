from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .chunking import DEFAULT_CHARS_PER_TOKEN, DEFAULT_SINGLE_CALL_TOKENS, normalize_max_chunks
from .skip_rules import PatternRule, _compile_rule

DEFAULT_CHUNK_COUNT_ENV = "TRANSLATION_DEFAULT_CHUNK_COUNT"


@dataclass(frozen=True)
class LLMConfig:
    provider: str = "mock"  # 'mock' | 'openai' | 'ollama'
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    temperature: float = 0.3
    max_output_tokens: int = 4000
    timeout_s: float = 120.0
    # Optional explicit key list; otherwise OPENAI_API_KEY(S) from the environment.
    api_keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class TranslationConfig:
    target_lang: str = "en"
    # 0 = automatic (token estimate decides), 1..10 = fixed chunk count.
    default_chunk_count: int = 0
    single_call_token_threshold: int = DEFAULT_SINGLE_CALL_TOKENS
    chars_per_token: float = DEFAULT_CHARS_PER_TOKEN
    concurrency: int = 4
    # JSON-LD strings shorter than this stay untouched.
    min_structured_value_len: int = 3
    # What to do when a whole-document call fails: 'raise' | 'granular'.
    on_chunk_failure: str = "raise"
    show_progress: bool = False


@dataclass(frozen=True)
class TranslatorConfig:
    llm: LLMConfig = LLMConfig()
    translation: TranslationConfig = TranslationConfig()
    skip_rules: tuple[PatternRule, ...] = ()
    log_path: str | None = None


def _normalize_choice(value: Any, *, field_name: str, allowed: set[str], default: str) -> str:
    raw = str(default if value is None else value).strip().lower()
    if raw not in allowed:
        allowed_list = ", ".join(sorted(allowed))
        raise ValueError(f"Invalid value for {field_name}: {raw!r}. Allowed: {allowed_list}")
    return raw


def _chunk_count(value: Any, *, field_name: str) -> int:
    try:
        n = normalize_max_chunks(int(value))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {field_name}: {value!r}. Expected 0 (auto) or 1-10.") from e
    return n or 0


def _resolve_optional_path(base_dir: Path, value: Any) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    path = Path(raw)
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def config_from_mapping(
    data: Mapping[str, Any],
    *,
    base_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> TranslatorConfig:
    env = os.environ if environ is None else environ
    llm_data = data.get("llm", {}) or {}
    tr_data = data.get("translation", {}) or {}
    skip_data = data.get("skip", {}) or {}

    raw_keys = llm_data.get("api_keys") or ()
    if isinstance(raw_keys, str):
        raw_keys = raw_keys.split(",")
    llm = LLMConfig(
        provider=_normalize_choice(
            llm_data.get("provider", "mock"),
            field_name="llm.provider",
            allowed={"mock", "openai", "ollama"},
            default="mock",
        ),
        model=str(llm_data.get("model", "gpt-4o-mini")),
        base_url=(str(llm_data["base_url"]) if llm_data.get("base_url") is not None else None),
        temperature=float(llm_data.get("temperature", 0.3)),
        max_output_tokens=int(llm_data.get("max_output_tokens", 4000)),
        timeout_s=float(llm_data.get("timeout_s", 120.0)),
        api_keys=tuple(str(k).strip() for k in raw_keys if str(k).strip()),
    )

    # Environment wins over the file so deployments can switch chunking without editing YAML.
    chunk_raw = env.get(DEFAULT_CHUNK_COUNT_ENV)
    if chunk_raw is None or not str(chunk_raw).strip():
        chunk_raw = tr_data.get("default_chunk_count", 0)
        chunk_field = "translation.default_chunk_count"
    else:
        chunk_field = DEFAULT_CHUNK_COUNT_ENV

    threshold = int(tr_data.get("single_call_token_threshold", DEFAULT_SINGLE_CALL_TOKENS))
    if threshold <= 0:
        raise ValueError(f"translation.single_call_token_threshold must be positive, got {threshold}")
    chars_per_token = float(tr_data.get("chars_per_token", DEFAULT_CHARS_PER_TOKEN))
    if chars_per_token <= 0:
        raise ValueError(f"translation.chars_per_token must be positive, got {chars_per_token}")

    translation = TranslationConfig(
        target_lang=str(tr_data.get("target_lang", "en")).strip() or "en",
        default_chunk_count=_chunk_count(chunk_raw, field_name=chunk_field),
        single_call_token_threshold=threshold,
        chars_per_token=chars_per_token,
        concurrency=max(1, int(tr_data.get("concurrency", 4))),
        min_structured_value_len=max(1, int(tr_data.get("min_structured_value_len", 3))),
        on_chunk_failure=_normalize_choice(
            tr_data.get("on_chunk_failure", "raise"),
            field_name="translation.on_chunk_failure",
            allowed={"raise", "granular"},
            default="raise",
        ),
        show_progress=bool(tr_data.get("show_progress", False)),
    )

    rules: list[PatternRule] = []
    for rd in skip_data.get("rules", []) or []:
        rule = PatternRule(
            name=str(rd["name"]),
            pattern=str(rd["pattern"]),
            flags=str(rd.get("flags", "")),
            description=str(rd.get("description", "")),
        )
        try:
            _compile_rule(rule)
        except re.error as e:
            raise ValueError(f"Invalid skip rule {rule.name!r}: {e}") from e
        rules.append(rule)

    return TranslatorConfig(
        llm=llm,
        translation=translation,
        skip_rules=tuple(rules),
        log_path=_resolve_optional_path(base_dir or Path.cwd(), data.get("log_path")),
    )


def load_config(path: str | Path, *, environ: Mapping[str, str] | None = None) -> TranslatorConfig:
    cfg_path = Path(path)
    data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config must contain a mapping: {cfg_path}")
    return config_from_mapping(data, base_dir=cfg_path.parent, environ=environ)
