from __future__ import annotations

import re

from .models import Segment, SegmentKind

# Order matters: whole script/style blocks and comments are taken before single tags,
# so markup-looking text inside them is never split out.
_MARKUP_RE = re.compile(
    r"(<script\b[^>]*>[\s\S]*?</script\s*>"
    r"|<style\b[^>]*>[\s\S]*?</style\s*>"
    r"|<!--[\s\S]*?-->"
    r"|<[^>]*>)",
    flags=re.IGNORECASE,
)
_SCRIPT_OPEN_RE = re.compile(r"^<script\b", flags=re.IGNORECASE)


def parse_segments(html: str) -> list[Segment]:
    """Split markup into ordered TEXT / TAG / STRUCTURED segments.

    Each run of text between two tags becomes exactly one TEXT segment; text is
    never split into sentences so the backend sees a whole paragraph at once.
    Whitespace-only runs are kept so that joining all segments is lossless.
    """
    segments: list[Segment] = []
    pos = 0

    def _add(kind: SegmentKind, content: str) -> None:
        segments.append(Segment(index=len(segments), kind=kind, content=content))

    for m in _MARKUP_RE.finditer(html):
        if m.start() > pos:
            _add(SegmentKind.TEXT, html[pos : m.start()])
        raw = m.group(0)
        if _SCRIPT_OPEN_RE.match(raw):
            _add(SegmentKind.STRUCTURED, raw)
        else:
            _add(SegmentKind.TAG, raw)
        pos = m.end()
    if pos < len(html):
        _add(SegmentKind.TEXT, html[pos:])
    return segments


def join_segments(segments: list[Segment]) -> str:
    return "".join(seg.final for seg in sorted(segments, key=lambda s: s.index))


def split_whitespace(text: str) -> tuple[str, str, str]:
    """Return (leading whitespace, core, trailing whitespace)."""
    core = text.strip()
    if not core:
        return text, "", ""
    start = text.find(core)
    return text[:start], core, text[start + len(core) :]
