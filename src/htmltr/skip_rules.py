from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Pattern


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: str
    flags: str = ""  # e.g. "I" for IGNORECASE
    description: str = ""


@dataclass(frozen=True)
class CompiledRule:
    name: str
    regex: Pattern[str]
    description: str = ""


# Whole-text matches only: a rule never skips text it matches partially.
DEFAULT_SKIP_RULES: tuple[PatternRule, ...] = (
    PatternRule("numeric", r"[0-9\s\-.,/:;()]*", description="Only numbers and punctuation"),
    PatternRule("url", r"https?://\S+", description="Bare URL"),
    PatternRule("json_like", r"\s*[\{\[].+[\}\]]\s*", description="Bracket-delimited JSON-looking text"),
    PatternRule("constant", r"[A-Z_][A-Z0-9_]*", description="Constants like API_KEY"),
    PatternRule("function_call", r"[a-z_][a-z0-9_]*\([^)]*\)", description="Bare function call"),
    PatternRule("placeholder", r"\$[0-9]+", description="Positional placeholder like $1"),
    PatternRule("code_fence", r"```[\s\S]*```", description="Fenced code block"),
)


def _compile_rule(rule: PatternRule) -> CompiledRule:
    flags = 0
    if "I" in rule.flags.upper():
        flags |= re.IGNORECASE
    if "M" in rule.flags.upper():
        flags |= re.MULTILINE
    if "S" in rule.flags.upper():
        flags |= re.DOTALL
    return CompiledRule(name=rule.name, regex=re.compile(rule.pattern, flags=flags), description=rule.description)


class SkipClassifier:
    """Decides whether a text run needs translation at all."""

    def __init__(self, extra_rules: Iterable[PatternRule] = ()) -> None:
        rules = list(DEFAULT_SKIP_RULES) + list(extra_rules)
        self.rules: tuple[CompiledRule, ...] = tuple(_compile_rule(r) for r in rules)

    def matching_rule(self, text: str) -> str | None:
        """Return the name of the rule that makes `text` skippable, if any."""
        trimmed = text.strip()
        if not trimmed:
            return "blank"
        for rule in self.rules:
            if rule.regex.fullmatch(trimmed):
                return rule.name
        return None

    def should_skip(self, text: str) -> bool:
        return self.matching_rule(text) is not None

