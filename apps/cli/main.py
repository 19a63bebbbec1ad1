"""Typer CLI entrypoint for regex-parsefilter."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Literal, cast

import typer

from apps.cli.format_human import render_fields_summary, render_rules_listing
from apps.cli.io import read_document_text, write_fields_atomic, write_rules_yaml_atomic
from core.orchestrator.filter import ParsedDocument, apply_filter
from core.rules.config import FilterConfig, load_filter_config
from core.rules.store import LoadReport, RuleStore
from core.utils.errors import PatternCompileError

app = typer.Typer(help="Regex parse filter CLI", rich_markup_mode=None)
OutputFormat = Literal["json", "human"]

EXIT_OK = 0
EXIT_INTERNAL = 1
EXIT_NO_RULES = 2
EXIT_INVALID_CONFIG = 3


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("extract")
def extract_command(
    config: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    html: Annotated[
        Path | None,
        typer.Option(exists=True, dir_okay=False, file_okay=True, help="Raw markup file."),
    ] = None,
    text: Annotated[
        Path | None,
        typer.Option(exists=True, dir_okay=False, file_okay=True, help="Extracted text file."),
    ] = None,
    url: Annotated[str, typer.Option()] = "",
    rules_file: Annotated[
        str | None, typer.Option("--rules-file", help="Override extraction rule source.")
    ] = None,
    output_format: Annotated[str, typer.Option("--format")] = "json",
    out: Annotated[Path | None, typer.Option(help="Also write fields JSON to this path.")] = None,
) -> None:
    """Apply configured rules to one document and print the resulting fields."""

    normalized_format = output_format.lower().strip()
    if normalized_format not in {"json", "human"}:
        typer.echo("ERROR: --format must be one of: json, human.")
        raise typer.Exit(code=EXIT_INTERNAL)
    format_typed = cast(OutputFormat, normalized_format)

    store = RuleStore()
    report = _load_rules_or_exit(store, config, rules_file)

    document = ParsedDocument.from_bytes(
        url,
        html.read_bytes() if html is not None else b"",
        read_document_text(text),
    )
    fields: dict[str, str] = {}
    apply_filter(document, fields, store)

    if format_typed == "human":
        typer.echo(render_fields_summary(url, fields, report))
    else:
        typer.echo(json.dumps(fields, ensure_ascii=False, sort_keys=True))

    if out is not None:
        try:
            write_fields_atomic(out, {"url": url, "fields": fields})
        except OSError as exc:
            typer.echo(f"ERROR: write output failed: {exc}")
            raise typer.Exit(code=EXIT_INTERNAL) from exc

    raise typer.Exit(code=EXIT_OK)


@app.command("rules")
def rules_command(
    config: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    rules_file: Annotated[str | None, typer.Option("--rules-file")] = None,
    export: Annotated[
        Path | None,
        typer.Option("--export", help="Write the loaded rules as YAML."),
    ] = None,
) -> None:
    """Load the rule configuration and list its rules."""

    store = RuleStore()
    _load_rules_or_exit(store, config, rules_file)
    typer.echo(render_rules_listing(store.tables))

    if export is not None:
        try:
            write_rules_yaml_atomic(export, store.tables.to_payload())
        except OSError as exc:
            typer.echo(f"ERROR: write rules export failed: {exc}")
            raise typer.Exit(code=EXIT_INTERNAL) from exc
        typer.echo(f"INFO: wrote rules to {export}")

    raise typer.Exit(code=EXIT_OK)


def _load_rules_or_exit(
    store: RuleStore, config_path: Path | None, rules_file: str | None
) -> LoadReport:
    try:
        filter_config = _resolve_config(config_path, rules_file)
        report = store.ensure_loaded(filter_config)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INVALID_CONFIG) from exc
    except PatternCompileError as exc:
        typer.echo(f"ERROR: invalid rule pattern: {exc}")
        raise typer.Exit(code=EXIT_INVALID_CONFIG) from exc

    for message in report.errors:
        typer.echo(f"WARNING(config): {message}")
    if not report.loaded:
        typer.echo("ERROR: no rule configuration found")
        raise typer.Exit(code=EXIT_NO_RULES)
    return report


def _resolve_config(config_path: Path | None, rules_file: str | None) -> FilterConfig:
    filter_config = load_filter_config(config_path)
    if rules_file is not None:
        filter_config = filter_config.model_copy(update={"rules": None, "rules_file": rules_file})
    return filter_config


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
