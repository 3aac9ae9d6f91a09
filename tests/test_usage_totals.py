from __future__ import annotations

from htmltr.usage import TokenUsage, UsageRecord, UsageTotals


def test_usage_totals_snapshot_includes_phase_breakdown():
    totals = UsageTotals()
    totals.add(
        UsageRecord(
            provider="openai",
            model="gpt-4o-mini",
            phase="segment",
            input_tokens=120,
            output_tokens=55,
            total_tokens=175,
        )
    )
    totals.add(
        UsageRecord(
            provider="openai",
            model="gpt-4o-mini",
            phase="structured_data",
            input_tokens=40,
            output_tokens=12,
            total_tokens=52,
        )
    )

    snapshot = totals.snapshot()

    assert snapshot["requests"] == 2
    assert snapshot["input_tokens"] == 160
    assert snapshot["output_tokens"] == 67
    assert snapshot["total_tokens"] == 227

    by_phase = snapshot["by_phase"]
    assert by_phase["segment"] == {"requests": 1, "input_tokens": 120, "output_tokens": 55, "total_tokens": 175}
    assert by_phase["structured_data"] == {"requests": 1, "input_tokens": 40, "output_tokens": 12, "total_tokens": 52}
    assert totals.totals() == {"input": 160, "output": 67}


def test_usage_totals_uses_unknown_phase_for_empty_phase_name():
    totals = UsageTotals()
    totals.add(
        UsageRecord(
            provider="ollama",
            model="qwen2.5:7b",
            phase="",
            input_tokens=10,
            output_tokens=5,
            total_tokens=15,
        )
    )

    by_phase = totals.snapshot()["by_phase"]
    assert "unknown" in by_phase
    assert by_phase["unknown"]["requests"] == 1


def test_usage_record_from_token_usage():
    record = UsageRecord.from_usage(
        TokenUsage(prompt_tokens=7, completion_tokens=3),
        provider="mock",
        model="mock",
        phase="document",
        extra={"piece": 0},
    )
    assert (record.input_tokens, record.output_tokens, record.total_tokens) == (7, 3, 10)
    assert record.extra == {"piece": 0}


def test_usage_totals_starts_empty():
    totals = UsageTotals()
    assert totals.requests == 0
    assert totals.totals() == {"input": 0, "output": 0}
    assert totals.records() == []
