"""Human-readable rendering of filter results for CLI output."""

from __future__ import annotations

from collections.abc import Mapping

from core.extract.matcher import MATCH_SEPARATOR
from core.rules.models import RuleTables
from core.rules.store import LoadReport


def render_fields_summary(url: str, fields: Mapping[str, str], report: LoadReport) -> str:
    """Render one-screen summary of extracted fields."""

    lines: list[str] = []
    lines.append("filter_summary:")
    lines.append(f"url={url or '-'}")
    lines.append(
        f"rules: extract={report.extract_count} ({report.extract_origin or 'none'}) "
        f"replace={report.replace_count} ({report.replace_origin or 'none'})"
    )

    if not fields:
        lines.append("fields: none")
        return "\n".join(lines)

    lines.append(f"fields: {len(fields)}")
    for name in sorted(fields):
        values = fields[name].split(MATCH_SEPARATOR)
        lines.append(f"  {name} ({len(values)}): {fields[name]}")
    return "\n".join(lines)


def render_rules_listing(tables: RuleTables) -> str:
    lines: list[str] = ["extract_rules:"]
    if not tables.extract_rules:
        lines.append("  none")
    for name, rule in tables.extract_rules.items():
        lines.append(f"  {name} {rule.source.value} {rule.pattern.pattern}")

    lines.append("replace_rules:")
    if not tables.replace_rules:
        lines.append("  none")
    for name, rule in tables.replace_rules.items():
        terms = " ".join(rule.terms) if rule.terms else "-"
        lines.append(f"  {name} {rule.source.value} {rule.pattern.pattern} -> {terms}")
    return "\n".join(lines)
