from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterator

# Only string values under these keys are human-readable; everything else in
# JSON-LD (types, ids, dates, URLs) must stay byte-identical.
TRANSLATABLE_KEYS = frozenset({"headline", "description", "text", "name", "articleSection", "keywords"})

_SCRIPT_PARTS_RE = re.compile(r"^(<script\b[^>]*>)([\s\S]*?)(</script\s*>)$", flags=re.IGNORECASE)
_URL_LIKE_RE = re.compile(r"^(?:[a-z][a-z0-9+.\-]*:)?//|^https?:|^www\.|^mailto:", flags=re.IGNORECASE)

# (container, key-or-index, current value)
StringSlot = tuple[Any, Any, str]


@dataclass
class StructuredBlock:
    open_tag: str
    payload: str
    close_tag: str
    data: Any

    def render(self) -> str:
        """Re-serialise `data` into the original wrapper, keeping payload padding."""
        stripped = self.payload.strip()
        start = self.payload.find(stripped) if stripped else 0
        lead = self.payload[:start]
        trail = self.payload[start + len(stripped) :]
        body = json.dumps(self.data, ensure_ascii=False, separators=(",", ":"))
        # A literal "</script>" inside a string would close the tag early.
        body = body.replace("</", "<\\/")
        return f"{self.open_tag}{lead}{body}{trail}{self.close_tag}"


def parse_structured_block(raw: str) -> StructuredBlock | None:
    """Parse a <script> block holding JSON. Returns None when there is nothing to walk."""
    m = _SCRIPT_PARTS_RE.match(raw)
    if not m:
        return None
    payload = m.group(2)
    if not payload.strip():
        return None
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    return StructuredBlock(open_tag=m.group(1), payload=payload, close_tag=m.group(3), data=data)


def is_translatable_value(value: str, *, min_len: int = 3) -> bool:
    trimmed = value.strip()
    if len(trimmed) < min_len:
        return False
    if trimmed.startswith("@"):
        return False
    return _URL_LIKE_RE.match(trimmed) is None


def iter_string_slots(node: Any, *, min_len: int = 3, parent_key: str | None = None) -> Iterator[StringSlot]:
    """Yield writable slots for whitelisted string values, in document order.

    Array elements inherit the key of the array, so `"keywords": ["a", "b"]` is
    walked element by element while `"sameAs": ["https://..."]` is not.
    """
    if isinstance(node, list):
        for i, item in enumerate(node):
            if isinstance(item, str):
                if parent_key in TRANSLATABLE_KEYS and is_translatable_value(item, min_len=min_len):
                    yield node, i, item
            else:
                yield from iter_string_slots(item, min_len=min_len, parent_key=parent_key)
    elif isinstance(node, dict):
        for key, value in node.items():
            if isinstance(value, str):
                if key in TRANSLATABLE_KEYS and is_translatable_value(value, min_len=min_len):
                    yield node, key, value
            else:
                yield from iter_string_slots(value, min_len=min_len, parent_key=key)

