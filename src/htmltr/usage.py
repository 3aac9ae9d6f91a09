from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class TokenUsage:
    """Usage reported by a single backend reply."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class UsageRecord:
    provider: str
    model: str
    phase: str  # 'segment' | 'structured_data' | 'document' | 'metadata'
    input_tokens: int
    output_tokens: int
    total_tokens: int
    ts: str = field(default_factory=_utc_now_iso)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_usage(
        cls,
        usage: TokenUsage,
        *,
        provider: str,
        model: str,
        phase: str,
        extra: dict[str, Any] | None = None,
    ) -> "UsageRecord":
        return cls(
            provider=provider,
            model=model,
            phase=phase,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            extra=dict(extra or {}),
        )


class UsageTotals:
    """Running token totals for one translation session. Never resets itself."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: list[UsageRecord] = []
        self._input_tokens = 0
        self._output_tokens = 0
        self._total_tokens = 0
        self._by_phase: dict[str, dict[str, int]] = {}

    @staticmethod
    def _phase_key(phase: str) -> str:
        key = str(phase or "").strip().lower()
        return key if key else "unknown"

    def add(self, record: UsageRecord) -> None:
        with self._lock:
            self._records.append(record)
            in_tokens = max(0, int(record.input_tokens))
            out_tokens = max(0, int(record.output_tokens))
            total_tokens = max(0, int(record.total_tokens))

            self._input_tokens += in_tokens
            self._output_tokens += out_tokens
            self._total_tokens += total_tokens

            bucket = self._by_phase.setdefault(
                self._phase_key(record.phase),
                {"requests": 0, "input_tokens": 0, "output_tokens": 0, "total_tokens": 0},
            )
            bucket["requests"] += 1
            bucket["input_tokens"] += in_tokens
            bucket["output_tokens"] += out_tokens
            bucket["total_tokens"] += total_tokens

    @property
    def requests(self) -> int:
        with self._lock:
            return len(self._records)

    def totals(self) -> dict[str, int]:
        """Caller-facing accessor: {'input': prompt tokens, 'output': completion tokens}."""
        with self._lock:
            return {"input": self._input_tokens, "output": self._output_tokens}

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "requests": len(self._records),
                "input_tokens": self._input_tokens,
                "output_tokens": self._output_tokens,
                "total_tokens": self._total_tokens,
                "by_phase": {phase: dict(bucket) for phase, bucket in self._by_phase.items()},
            }

    def records(self) -> list[UsageRecord]:
        with self._lock:
            return list(self._records)
