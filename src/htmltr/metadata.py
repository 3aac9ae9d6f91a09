from __future__ import annotations

import html
import re
from typing import Callable

from .models import MetadataField, SegmentKind
from .segmenter import parse_segments
from .structured_data import parse_structured_block

_H1_RE = re.compile(r"(<h1\b[^>]*>)([\s\S]*?)(</h1\s*>)", flags=re.IGNORECASE)
_META_TAG_RE = re.compile(r"<meta\b[^>]*>", flags=re.IGNORECASE)
_ATTR_RE = re.compile(r"""([A-Za-z_:][-A-Za-z0-9_:.]*)\s*=\s*("[^"]*"|'[^']*')""")

SLOTS_BY_FIELD: dict[str, tuple[str, ...]] = {
    "title": ("h1", "json_ld_headline"),
    "description": ("meta_description",),
}


def build_metadata_fields(
    translate: Callable[[str], str],
    *,
    original_title: str | None = None,
    original_description: str | None = None,
) -> list[MetadataField]:
    """Translate the supplied metadata strings and bind each one to its slots."""
    fields: list[MetadataField] = []
    for name, original in (("title", original_title), ("description", original_description)):
        if not original or not original.strip():
            continue
        translated = translate(original)
        for slot in SLOTS_BY_FIELD[name]:
            fields.append(MetadataField(name=name, slot=slot, original=original, translated=translated))
    return fields


def _same_text(markup_text: str, original: str) -> bool:
    return html.unescape(markup_text).strip() == original.strip()


def _patch_h1(markup: str, fld: MetadataField) -> str:
    def _repl(m: re.Match[str]) -> str:
        if not _same_text(m.group(2), fld.original):
            return m.group(0)
        return f"{m.group(1)}{html.escape(fld.translated.strip(), quote=False)}{m.group(3)}"

    return _H1_RE.sub(_repl, markup)


def _patch_meta_description(markup: str, fld: MetadataField) -> str:
    def _repl(m: re.Match[str]) -> str:
        tag = m.group(0)
        attrs = {a.group(1).lower(): a for a in _ATTR_RE.finditer(tag)}
        name_attr = attrs.get("name")
        content_attr = attrs.get("content")
        if name_attr is None or content_attr is None:
            return tag
        if name_attr.group(2)[1:-1].strip().lower() != "description":
            return tag
        if not _same_text(content_attr.group(2)[1:-1], fld.original):
            return tag
        quote = content_attr.group(2)[0]
        value = html.escape(fld.translated.strip(), quote=True)
        start, end = content_attr.span(2)
        # Only the content value changes; attribute order and other attributes stay.
        return f"{tag[:start]}{quote}{value}{quote}{tag[end:]}"

    return _META_TAG_RE.sub(_repl, markup)


def _patch_json_ld_headline(markup: str, fld: MetadataField) -> str:
    out: list[str] = []
    for seg in parse_segments(markup):
        if seg.kind != SegmentKind.STRUCTURED:
            out.append(seg.content)
            continue
        block = parse_structured_block(seg.content)
        if block is None:
            out.append(seg.content)
            continue
        changed = _replace_headline(block.data, fld.original, fld.translated.strip())
        out.append(block.render() if changed else seg.content)
    return "".join(out)


def _replace_headline(node: object, original: str, translated: str) -> bool:
    changed = False
    if isinstance(node, list):
        for item in node:
            changed = _replace_headline(item, original, translated) or changed
    elif isinstance(node, dict):
        for key, value in node.items():
            if key == "headline" and isinstance(value, str) and value == original:
                node[key] = translated
                changed = True
            elif isinstance(value, (dict, list)):
                changed = _replace_headline(value, original, translated) or changed
    return changed


_PATCHERS: dict[str, Callable[[str, MetadataField], str]] = {
    "h1": _patch_h1,
    "meta_description": _patch_meta_description,
    "json_ld_headline": _patch_json_ld_headline,
}


def apply_metadata_fields(markup: str, fields: list[MetadataField]) -> str:
    result = markup
    for fld in fields:
        if fld.translated.strip() == fld.original.strip():
            continue
        patcher = _PATCHERS.get(fld.slot)
        if patcher is None:
            raise ValueError(f"Unknown metadata slot: {fld.slot}")
        result = patcher(result, fld)
    return result
