from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

MAX_MANUAL_CHUNKS = 10

# Rough average for English prose mixed with markup. This is an estimate for
# budgeting only; the backend's own tokenizer decides the real count.
DEFAULT_CHARS_PER_TOKEN = 4.0
DEFAULT_SINGLE_CALL_TOKENS = 3000


class Strategy(str, Enum):
    SINGLE = "single"
    TWO_PART = "two_part"
    FIXED_CHUNKS = "fixed_chunks"
    GRANULAR = "granular"


@dataclass(frozen=True)
class StrategyPlan:
    strategy: Strategy
    pieces: int  # 0 for granular mode
    estimated_tokens: int
    threshold: int


def estimate_tokens(text: str, chars_per_token: float = DEFAULT_CHARS_PER_TOKEN) -> int:
    """Approximate backend token cost from character length (not a tokenizer)."""
    if not text:
        return 0
    ratio = float(chars_per_token) if chars_per_token and chars_per_token > 0 else DEFAULT_CHARS_PER_TOKEN
    return math.ceil(len(text) / ratio)


def normalize_max_chunks(value: int | None) -> int | None:
    """Map a manual chunk-count override to 1..10, or None for automatic mode."""
    if value is None:
        return None
    n = int(value)
    if n == 0:
        return None
    if n < 0 or n > MAX_MANUAL_CHUNKS:
        raise ValueError(f"max_chunks must be 0 (automatic) or 1-{MAX_MANUAL_CHUNKS}, got {value!r}")
    return n


def select_strategy(
    html: str,
    *,
    max_chunks: int | None = None,
    threshold: int = DEFAULT_SINGLE_CALL_TOKENS,
    chars_per_token: float = DEFAULT_CHARS_PER_TOKEN,
) -> StrategyPlan:
    estimated = estimate_tokens(html, chars_per_token)
    manual = normalize_max_chunks(max_chunks)
    if manual == 1:
        return StrategyPlan(Strategy.SINGLE, 1, estimated, threshold)
    if manual is not None:
        return StrategyPlan(Strategy.FIXED_CHUNKS, manual, estimated, threshold)

    if estimated <= threshold:
        return StrategyPlan(Strategy.SINGLE, 1, estimated, threshold)
    if estimated <= 2 * threshold:
        return StrategyPlan(Strategy.TWO_PART, 2, estimated, threshold)
    return StrategyPlan(Strategy.GRANULAR, 0, estimated, threshold)


def split_fixed_chunks(text: str, count: int) -> list[str]:
    """Split `text` into `count` contiguous pieces cut right after a '>' boundary.

    Each cut is searched forward from the evenly spaced offset. When no '>' is left
    the offset itself is used, which may split a tag. Pieces can be empty for short
    inputs; "".join(result) == text always holds.
    """
    n = max(1, int(count))
    if n == 1 or not text:
        return [text] + [""] * (n - 1)

    length = len(text)
    cuts: list[int] = []
    prev = 0
    for i in range(1, n):
        target = max(prev, round(i * length / n))
        if target > 0 and text[target - 1] == ">":
            cut = target
        else:
            boundary = text.find(">", target)
            cut = boundary + 1 if boundary != -1 else target
        cut = min(max(cut, prev), length)
        cuts.append(cut)
        prev = cut

    pieces: list[str] = []
    start = 0
    for cut in cuts:
        pieces.append(text[start:cut])
        start = cut
    pieces.append(text[start:])
    return pieces
