from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .chunking import normalize_max_chunks
from .models import Issue
from .usage import TokenUsage, UsageRecord, UsageTotals


@dataclass
class TranslationSession:
    """Caller-owned state for one translation request.

    Create one per request and drop it afterwards: the cache and the token
    counters are never shared between sessions and never reset on their own.
    """

    target_lang: str
    max_chunks: int | None = None
    # normalized (trimmed) source text -> translated text
    cache: dict[str, str] = field(default_factory=dict)
    usage: UsageTotals = field(default_factory=UsageTotals)
    issues: list[Issue] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.target_lang = str(self.target_lang or "").strip()
        if not self.target_lang:
            raise ValueError("target_lang is required")
        self.max_chunks = normalize_max_chunks(self.max_chunks)

    def record_usage(
        self,
        usage: TokenUsage,
        *,
        provider: str,
        model: str,
        phase: str,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.usage.add(UsageRecord.from_usage(usage, provider=provider, model=model, phase=phase, extra=extra))

    def get_usage(self) -> dict[str, int]:
        return self.usage.totals()
