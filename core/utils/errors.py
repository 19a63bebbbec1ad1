"""Custom exceptions for core logic."""

from __future__ import annotations


class RuleConfigError(Exception):
    """Base class for rule configuration failures."""


class PatternCompileError(RuleConfigError):
    """Raised when a rule pattern is not a valid regular expression."""

    def __init__(
        self,
        message: str,
        *,
        field: str,
        pattern: str,
        line_number: int | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.pattern = pattern
        self.line_number = line_number


class ConfigLoadError(RuleConfigError):
    """Raised when a named rule source cannot be read."""

    def __init__(self, message: str, *, origin: str) -> None:
        super().__init__(message)
        self.origin = origin


class GroupIndexError(RuleConfigError):
    """Raised when replacement terms reference a capture group the pattern lacks."""

    def __init__(self, message: str, *, field: str, group_index: int, group_count: int) -> None:
        super().__init__(message)
        self.field = field
        self.group_index = group_index
        self.group_count = group_count
