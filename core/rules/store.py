"""Process-wide rule tables, loaded at most once."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field

from core.rules.config import FilterConfig, RuleSource, read_extract_source, read_replace_source
from core.rules.models import ExtractRule, ReplaceRule, RuleTables
from core.rules.parser import parse_extract_rules, parse_replace_rules
from core.utils.errors import ConfigLoadError

logger = logging.getLogger("parsefilter.rules")


@dataclass(frozen=True)
class LoadReport:
    """Outcome of one ensure_loaded call."""

    loaded: bool
    already_loaded: bool = False
    extract_origin: str | None = None
    replace_origin: str | None = None
    extract_count: int = 0
    replace_count: int = 0
    errors: list[str] = field(default_factory=list)


class RuleStore:
    """Hold extraction/replace rule tables shared across filter calls.

    The first configuration that yields a readable rule source wins; later
    calls are no-ops even when given a different configuration. Both tables
    follow this policy.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables = RuleTables.build()
        self._loaded_report: LoadReport | None = None
        self._last_report: LoadReport | None = None

    @property
    def is_loaded(self) -> bool:
        return self._loaded_report is not None

    @property
    def tables(self) -> RuleTables:
        return self._tables

    @property
    def extract_rules(self) -> Mapping[str, ExtractRule]:
        return self._tables.extract_rules

    @property
    def replace_rules(self) -> Mapping[str, ReplaceRule]:
        return self._tables.replace_rules

    @property
    def replace_terms(self) -> Mapping[str, tuple[str, ...]]:
        return self._tables.replace_terms

    @property
    def last_report(self) -> LoadReport | None:
        return self._last_report

    def ensure_loaded(self, config: FilterConfig) -> LoadReport:
        """Load rule tables from config unless already loaded.

        Raises:
            PatternCompileError: a configured pattern is invalid; the store
                stays empty and a later call may retry.
        """

        loaded_report = self._loaded_report
        if loaded_report is not None:
            return self._already_loaded_report(loaded_report)

        with self._lock:
            loaded_report = self._loaded_report
            if loaded_report is not None:
                return self._already_loaded_report(loaded_report)

            report = self._load(config)
            self._last_report = report
            return report

    def _load(self, config: FilterConfig) -> LoadReport:
        errors: list[str] = []
        extract_source = _read_or_record(read_extract_source, config, errors)
        replace_source = _read_or_record(read_replace_source, config, errors)

        if extract_source is None and replace_source is None:
            if not errors:
                errors.append("no rule configuration found")
            for message in errors:
                logger.error(message)
            return LoadReport(loaded=False, errors=errors)

        extract_rules = parse_extract_rules(extract_source.text) if extract_source else {}
        replace_rules, replace_terms = (
            parse_replace_rules(replace_source.text) if replace_source else ({}, {})
        )

        for message in errors:
            logger.error(message)

        report = LoadReport(
            loaded=True,
            extract_origin=extract_source.origin if extract_source else None,
            replace_origin=replace_source.origin if replace_source else None,
            extract_count=len(extract_rules),
            replace_count=len(replace_rules),
            errors=errors,
        )
        # Tables first: readers on the lock-free path key off _loaded_report.
        self._tables = RuleTables.build(extract_rules, replace_rules, replace_terms)
        self._loaded_report = report
        logger.info(
            "loaded %d extract rules from %s and %d replace rules from %s",
            len(extract_rules),
            report.extract_origin or "none",
            len(replace_rules),
            report.replace_origin or "none",
        )
        return report

    def _already_loaded_report(self, loaded_report: LoadReport) -> LoadReport:
        return LoadReport(
            loaded=True,
            already_loaded=True,
            extract_origin=loaded_report.extract_origin,
            replace_origin=loaded_report.replace_origin,
            extract_count=loaded_report.extract_count,
            replace_count=loaded_report.replace_count,
        )


def _read_or_record(reader, config: FilterConfig, errors: list[str]) -> RuleSource | None:
    try:
        return reader(config)
    except ConfigLoadError as exc:
        errors.append(str(exc))
        return None
