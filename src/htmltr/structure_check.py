from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path

from .models import SegmentKind
from .segmenter import parse_segments

_TAG_NAME_RE = re.compile(r"^<\s*(/?)\s*([A-Za-z][A-Za-z0-9:-]*)")
_ATTR_RE = re.compile(r"""([A-Za-z_:][-A-Za-z0-9_:.]*)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s"'>]+))?""")


@dataclass(frozen=True)
class TagInfo:
    name: str  # lower-case; closing tags are prefixed with '/'
    attrs: tuple[tuple[str, str], ...]


def _parse_tag(raw: str) -> TagInfo:
    m = _TAG_NAME_RE.match(raw)
    if not m:
        # Comments, doctype and processing instructions are compared verbatim.
        return TagInfo(name=raw.strip(), attrs=())
    slash, name = m.group(1), m.group(2).lower()
    rest = raw[m.end() :].rstrip(">").rstrip("/")
    attrs: list[tuple[str, str]] = []
    for am in _ATTR_RE.finditer(rest):
        value = am.group(2) or ""
        if value[:1] in {'"', "'"}:
            value = value[1:-1]
        attrs.append((am.group(1).lower(), value))
    return TagInfo(name=f"{slash}{name}", attrs=tuple(attrs))


def tag_signature(markup: str) -> list[TagInfo]:
    """Ordered list of tags with attributes. Script/style payloads are not part of it."""
    out: list[TagInfo] = []
    for seg in parse_segments(markup):
        if seg.kind == SegmentKind.TEXT:
            continue
        if seg.kind == SegmentKind.STRUCTURED or seg.content[:6].lower() == "<style":
            close_at = seg.content.rfind("</")
            open_end = seg.content.find(">") + 1
            for raw in (seg.content[:open_end], seg.content[close_at:]):
                out.append(_parse_tag(raw))
            continue
        out.append(_parse_tag(seg.content))
    return out


def compare_markup_structure(source: str, translated: str, *, max_mismatches: int = 20) -> dict:
    """Compare tag sequences between the source and translated documents."""
    src_tags = tag_signature(source)
    out_tags = tag_signature(translated)
    mismatches: list[dict] = []
    for i, (a, b) in enumerate(zip(src_tags, out_tags)):
        if a != b:
            mismatches.append({"index": i, "source": a.__dict__, "output": b.__dict__})
            if len(mismatches) >= max_mismatches:
                break

    def _blocks(markup: str) -> int:
        return sum(1 for s in parse_segments(markup) if s.kind == SegmentKind.STRUCTURED)

    return {
        "source_tags": len(src_tags),
        "output_tags": len(out_tags),
        "tag_count_diff": len(out_tags) - len(src_tags),
        "structured_blocks": {"source": _blocks(source), "output": _blocks(translated)},
        "mismatches": mismatches,
        "identical": len(src_tags) == len(out_tags) and not mismatches,
    }


def write_structure_report(report: dict, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
