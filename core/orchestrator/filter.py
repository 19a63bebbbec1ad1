"""Apply loaded extraction and replace rules to one parsed document."""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass

from core.extract.matcher import extract_matches
from core.rules.models import ExtractRule, SourceKind
from core.rules.store import RuleStore

logger = logging.getLogger("parsefilter.filter")


@dataclass(frozen=True)
class ParsedDocument:
    """Raw markup and extracted plain text of one fetched document."""

    url: str
    content: str
    text: str

    @classmethod
    def from_bytes(
        cls, url: str, raw: bytes, text: str, encoding: str = "utf-8"
    ) -> ParsedDocument:
        return cls(url=url, content=raw.decode(encoding, errors="replace"), text=text)


def resolve_source(document: ParsedDocument, kind: SourceKind) -> str | None:
    if kind is SourceKind.HTML:
        return document.content
    if kind is SourceKind.TEXT:
        return document.text
    return None


def apply_filter(
    document: ParsedDocument,
    output_fields: MutableMapping[str, str],
    store: RuleStore,
) -> MutableMapping[str, str]:
    """Run extraction rules, then replace rules, writing non-empty results.

    A field present in both tables ends up with the replace result when that
    result is non-empty.
    """

    _run_rules(document, store.extract_rules, output_fields, replace_terms=None)
    _run_rules(document, store.replace_rules, output_fields, replace_terms=store.replace_terms)
    return output_fields


def _run_rules(
    document: ParsedDocument,
    rules: Mapping[str, ExtractRule],
    output_fields: MutableMapping[str, str],
    *,
    replace_terms: Mapping[str, tuple[str, ...]] | None,
) -> None:
    replace = replace_terms is not None
    for field, rule in rules.items():
        source = resolve_source(document, rule.source)
        if source is None:
            logger.warning(
                "source '%s' for rule '%s' is misconfigured (expected html or text)",
                rule.raw_source,
                field,
            )
            continue

        terms = replace_terms.get(field, ()) if replace_terms is not None else None
        value = extract_matches(source, rule, replace=replace, terms=terms)
        if value:
            output_fields[field] = value
