from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


class SegmentKind(str, Enum):
    TEXT = "text"
    TAG = "tag"
    STRUCTURED = "structured"


@dataclass
class Issue:
    code: str
    severity: Severity
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class Segment:
    """One ordered unit of a parsed HTML document.

    TAG segments are written back verbatim. TEXT and STRUCTURED segments get
    `translated` filled in by the pipeline; `final` falls back to the source.
    """

    index: int
    kind: SegmentKind
    content: str
    translated: str | None = None

    @property
    def final(self) -> str:
        if self.kind == SegmentKind.TAG or self.translated is None:
            return self.content
        return self.translated


@dataclass(frozen=True)
class MetadataField:
    """Explicit metadata substitution: which slot gets which translated value."""

    name: str  # 'title' | 'description'
    slot: str  # 'h1' | 'meta_description' | 'json_ld_headline'
    original: str
    translated: str
