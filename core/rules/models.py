"""Data models for extraction and replace rules."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class SourceKind(str, Enum):
    """Document text a rule is matched against."""

    HTML = "html"
    TEXT = "text"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, token: str) -> SourceKind:
        normalized = token.strip().lower()
        if normalized == cls.HTML.value:
            return cls.HTML
        if normalized == cls.TEXT.value:
            return cls.TEXT
        return cls.UNKNOWN


@dataclass(frozen=True)
class ExtractRule:
    """Field-to-pattern binding; matched text is copied into the field."""

    field: str
    source: SourceKind
    pattern: re.Pattern[str]
    raw_source: str = ""


@dataclass(frozen=True)
class ReplaceRule(ExtractRule):
    """Extract rule whose capture groups are rewritten by positional terms."""

    terms: tuple[str, ...] = ()


def _frozen(mapping: Mapping | None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class RuleTables:
    """Read-only rule tables shared by all filter calls."""

    extract_rules: Mapping[str, ExtractRule] = field(default_factory=lambda: _frozen(None))
    replace_rules: Mapping[str, ReplaceRule] = field(default_factory=lambda: _frozen(None))
    replace_terms: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: _frozen(None))

    @classmethod
    def build(
        cls,
        extract_rules: Mapping[str, ExtractRule] | None = None,
        replace_rules: Mapping[str, ReplaceRule] | None = None,
        replace_terms: Mapping[str, tuple[str, ...]] | None = None,
    ) -> RuleTables:
        return cls(
            extract_rules=_frozen(extract_rules),
            replace_rules=_frozen(replace_rules),
            replace_terms=_frozen(replace_terms),
        )

    def is_empty(self) -> bool:
        return not self.extract_rules and not self.replace_rules

    def to_payload(self) -> dict[str, list[dict[str, object]]]:
        """Serializable listing of both tables in definition order."""

        return {
            "extract_rules": [
                {"field": name, "source": rule.source.value, "pattern": rule.pattern.pattern}
                for name, rule in self.extract_rules.items()
            ],
            "replace_rules": [
                {
                    "field": name,
                    "source": rule.source.value,
                    "pattern": rule.pattern.pattern,
                    "terms": list(rule.terms),
                }
                for name, rule in self.replace_rules.items()
            ],
        }
