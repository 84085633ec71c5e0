"""Lint session — read, parse and dispatch each migration file, then reduce to a verdict."""
import logging
import re
from pathlib import Path
from typing import Callable, Collection, Iterable, List, Optional, Union

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, SqlglotError

from rules import CODES, FILE_ERROR, SYNTAX_ERROR, Diagnostic, dispatch

log = logging.getLogger(__name__)

DEFAULT_DIALECT = "postgres"

PathLike = Union[str, Path]
Reporter = Callable[[Path, List[Diagnostic]], None]

# statement shapes the rules inspect; a Command fallback for these means the parser gave up
_UNPARSED_SHAPES = {
    "ALTER": re.compile(r"\s*TABLE\b", re.IGNORECASE),
    "CREATE": re.compile(r"\s*(UNIQUE\s+)?INDEX\b", re.IGNORECASE),
}


class SourceError(Exception):
    """Raised when an input cannot be turned into a statement list."""

    def __init__(self, diagnostic: Diagnostic) -> None:
        super().__init__(diagnostic.message)
        self.diagnostic = diagnostic


def read_source(path: PathLike) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.info("Could not read %s: %s", path, e)
        raise SourceError(Diagnostic(FILE_ERROR, str(e))) from e


def _unparsed_statement(stmt: exp.Expression) -> bool:
    """True for an ALTER TABLE or CREATE INDEX that sqlglot could only keep as raw text."""
    if not isinstance(stmt, exp.Command):
        return False
    shape = _UNPARSED_SHAPES.get(stmt.name.upper())
    return shape is not None and shape.match(str(stmt.args.get("expression") or "")) is not None


def parse_source(text: str, dialect: str = DEFAULT_DIALECT) -> List[exp.Expression]:
    """Parse SQL text into sqlglot statements, dropping empty ones."""
    try:
        statements = sqlglot.parse(text, read=dialect)
    except SqlglotError as e:
        line = col = 0
        if isinstance(e, ParseError) and e.errors:
            line = e.errors[0].get("line") or 0
            col = e.errors[0].get("col") or 0
        log.info("Parse failure at %d:%d: %s", line, col, e)
        raise SourceError(Diagnostic(SYNTAX_ERROR, " ".join(str(e).split()), line, col)) from e
    statements = [stmt for stmt in statements if stmt is not None]
    for stmt in statements:
        if _unparsed_statement(stmt):
            sql = " ".join(f"{stmt.name}{stmt.args.get('expression') or ''}".split())
            log.info("Unsupported syntax in %s", sql)
            raise SourceError(Diagnostic(SYNTAX_ERROR, f"Could not parse statement: {sql}"))
    return statements


def lint_source(text: str, dialect: str = DEFAULT_DIALECT) -> List[Diagnostic]:
    try:
        statements = parse_source(text, dialect)
    except SourceError as e:
        return [e.diagnostic]
    return dispatch(statements)


def lint_file(path: PathLike, dialect: str = DEFAULT_DIALECT) -> List[Diagnostic]:
    """All diagnostics for one file; read and parse failures yield exactly one."""
    log.debug("Linting %s...", path)
    try:
        text = read_source(path)
    except SourceError as e:
        return [e.diagnostic]
    return lint_source(text, dialect)


def _suppressed(diagnostic: Diagnostic, ignore: Collection[str]) -> bool:
    return diagnostic.rule_id in ignore or CODES.get(diagnostic.rule_id) in ignore


def lint(paths: Iterable[PathLike], report: Optional[Reporter] = None,
         dialect: str = DEFAULT_DIALECT, ignore: Collection[str] = ()) -> bool:
    """Lint every path in order. True iff no path produced a diagnostic."""
    success = True
    for path in paths:
        diagnostics = [d for d in lint_file(path, dialect) if not _suppressed(d, ignore)]
        if report is not None:
            report(Path(path), diagnostics)
        if diagnostics:
            success = False
    log.info("Lint %s", "passed" if success else "failed")
    return success
