#!/usr/bin/env python3
"""sqlperf CLI — find statements in PostgreSQL migrations that rewrite or lock tables."""
import json
import logging
from pathlib import Path
from typing import Dict, List

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text
from sqlglot.dialects.dialect import Dialect

from rules import Diagnostic
from session import DEFAULT_DIALECT, lint as lint_paths

app = typer.Typer(
    name="sqlperf",
    help="A linter to find potential performance issues in PostgreSQL migrations.",
)
console = Console(stderr=True)
out = Console()

FORMATS = ("text", "table", "json", "sarif")
LOCK_COLORS = {"ACCESS EXCLUSIVE": "red bold", "SHARE": "yellow"}


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING if verbose <= 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(
        level=level, format="%(message)s", force=True,
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
    )


def _render_line(path: Path, d: Diagnostic) -> None:
    line = Text()
    line.append(f"{path}:{d.line}:{d.col}: ", style="bold")
    line.append(f"{d.code} {d.rule_id} ", style=LOCK_COLORS.get(d.lock_type or "", "red"))
    line.append(d.message)
    out.print(line, soft_wrap=True, highlight=False)


def _render_table(path: Path, diagnostics: List[Diagnostic]) -> None:
    if not diagnostics:
        out.print(f"✅ [green]{path}[/] — no issues")
        return
    tbl = Table(title=f"\U0001f6a8 {path}", show_lines=True)
    tbl.add_column("Code", width=5)
    tbl.add_column("Rule", width=20)
    tbl.add_column("Pos", width=8)
    tbl.add_column("Lock", width=18)
    tbl.add_column("Message", min_width=30)
    for d in diagnostics:
        lock = d.lock_type or "-"
        tbl.add_row(d.code, d.rule_id, f"{d.line}:{d.col}",
                    f"[{LOCK_COLORS.get(lock, 'dim')}]{lock}[/]", d.message)
    out.print(tbl)


def _to_json(d: Diagnostic) -> dict:
    return {"rule_id": d.rule_id, "code": d.code, "line": d.line, "col": d.col,
            "lock_type": d.lock_type, "message": d.message}


def _to_sarif(all_diagnostics: Dict[str, List[Diagnostic]]) -> dict:
    results = []
    for fp, ds in all_diagnostics.items():
        for d in ds:
            location = {"artifactLocation": {"uri": fp}}
            if d.line > 0:
                location["region"] = {"startLine": d.line, "startColumn": max(d.col, 1)}
            results.append({"ruleId": d.rule_id, "level": "error",
                "message": {"text": d.message},
                "locations": [{"physicalLocation": location}]})
    return {"version": "2.1.0", "runs": [{"tool": {"driver": {
        "name": "sqlperf", "version": "0.1.0"}}, "results": results}]}


def _collect_sql_files(paths: List[str]) -> List[Path]:
    """Expand directories to their .sql files, other paths pass through as given. Each file once."""
    files: List[Path] = []
    for p in paths:
        path = Path(p)
        if path.is_dir():
            files.extend(sorted(path.glob("**/*.sql")))
        else:
            files.append(path)
    return list(dict.fromkeys(files))


@app.command()
def lint(
    paths: List[str] = typer.Argument(..., help="SQL migration files or directories"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
    fmt: str = typer.Option("text", "--format", "-f", envvar="SQLPERF_FORMAT",
                            help="Output: text, table, json, sarif"),
    dialect: str = typer.Option(DEFAULT_DIALECT, "--dialect", "-d", envvar="SQLPERF_DIALECT",
                                help="sqlglot dialect used to parse the files"),
    ignore: List[str] = typer.Option([], "--ignore", "-i", help="Rule id or code to suppress"),
) -> None:
    """Lint SQL migration files for statements that rewrite or lock tables."""
    _configure_logging(verbose)
    if fmt not in FORMATS:
        console.print(f"[red]Error: unknown format {fmt!r}, expected one of {', '.join(FORMATS)}[/]")
        raise typer.Exit(2)
    try:
        Dialect.get_or_raise(dialect)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(2)
    sql_files = _collect_sql_files(paths)
    if not sql_files:
        console.print("[yellow]No .sql files found[/]")
        raise typer.Exit(0)

    all_diagnostics: Dict[str, List[Diagnostic]] = {}

    def report(path: Path, diagnostics: List[Diagnostic]) -> None:
        all_diagnostics[str(path)] = diagnostics
        if fmt == "text":
            for d in diagnostics:
                _render_line(path, d)
        elif fmt == "table":
            _render_table(path, diagnostics)

    success = lint_paths(sql_files, report=report, dialect=dialect, ignore=set(ignore))
    if fmt == "json":
        print(json.dumps({fp: [_to_json(d) for d in ds]
                          for fp, ds in all_diagnostics.items()}, indent=2))
    elif fmt == "sarif":
        print(json.dumps(_to_sarif(all_diagnostics), indent=2))
    raise typer.Exit(0 if success else 1)


if __name__ == "__main__":
    app()
