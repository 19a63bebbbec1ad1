"""Filter configuration loading and rule source resolution."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, ValidationError

from core.utils.errors import ConfigLoadError

CONF_DIR = Path(__file__).with_name("conf")
DEFAULT_CONFIG_PATH = CONF_DIR / "filter.yaml"


class FilterConfig(BaseModel):
    """Where extraction and replace rules come from.

    Inline rule text takes precedence over named sources. A named source is
    looked up as a bundled resource first, then as a plain file path.
    """

    model_config = ConfigDict(extra="forbid")

    rules: str | None = None
    replace_rules: str | None = None
    rules_file: str | None = None
    replace_rules_file: str | None = None


@dataclass(frozen=True)
class RuleSource:
    """Rule text plus a readable description of where it came from."""

    text: str
    origin: str


def load_filter_config(path: Path | None = None) -> FilterConfig:
    """Load and validate filter configuration from YAML."""

    config_path = path or DEFAULT_CONFIG_PATH

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Filter config file not found: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in filter config file: {config_path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Filter config file must contain a mapping: {config_path}")

    try:
        return FilterConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid filter config schema: {config_path}") from exc


def read_extract_source(config: FilterConfig) -> RuleSource | None:
    return _read_source(config.rules, "rules", config.rules_file)


def read_replace_source(config: FilterConfig) -> RuleSource | None:
    return _read_source(config.replace_rules, "replace_rules", config.replace_rules_file)


def _read_source(inline: str | None, inline_key: str, name: str | None) -> RuleSource | None:
    if inline is not None:
        return RuleSource(text=inline, origin=f"inline:{inline_key}")
    if not name:
        return None

    file_path = Path(name)
    resource_path = CONF_DIR / name
    if not file_path.is_absolute() and resource_path.is_file():
        origin = f"resource:{name}"
        return RuleSource(text=_read_text(resource_path, origin), origin=origin)

    return RuleSource(text=_read_text(file_path, f"file:{file_path}"), origin=f"file:{file_path}")


def _read_text(path: Path, origin: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Cannot read rule source {origin}: {exc}", origin=origin) from exc
