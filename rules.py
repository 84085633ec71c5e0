"""sqlperf rule engine — walk parsed migrations and flag statements that rewrite or lock tables."""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from sqlglot import exp

FILE_ERROR = "FileError"
SYNTAX_ERROR = "SyntaxError"
NOT_NULL_COLUMN = "NotNullColumn"
DEFAULT_VALUE = "DefaultValue"
NON_CONCURRENT_INDEX = "NonConcurrentIndex"

CODES = {
    FILE_ERROR: "E1",
    SYNTAX_ERROR: "E2",
    NOT_NULL_COLUMN: "E3",
    DEFAULT_VALUE: "E4",
    NON_CONCURRENT_INDEX: "E5",
}

LOCKS = {
    NOT_NULL_COLUMN: "ACCESS EXCLUSIVE",
    DEFAULT_VALUE: "ACCESS EXCLUSIVE",
    NON_CONCURRENT_INDEX: "SHARE",
}


@dataclass(frozen=True)
class Diagnostic:
    rule_id: str
    message: str = field(compare=False)
    line: int = 0
    col: int = 0

    @property
    def code(self) -> str:
        return CODES.get(self.rule_id, "E0")

    @property
    def lock_type(self) -> Optional[str]:
        return LOCKS.get(self.rule_id)


@dataclass(frozen=True)
class ColumnOption:
    """One option (NOT NULL, DEFAULT, ...) of a column added by ALTER TABLE."""
    column: str
    option: exp.Expression
    line: int = 0
    col: int = 0


@dataclass(frozen=True)
class IndexBuild:
    """A CREATE INDEX statement reduced to what the lock rules need."""
    name: str
    concurrently: bool
    line: int = 0
    col: int = 0


Rule = Callable[..., Iterable[Diagnostic]]


class Registry:
    """Rules grouped by the node shape they accept, kept in registration order."""

    def __init__(self) -> None:
        self._rules: Dict[type, List[Rule]] = defaultdict(list)

    def register(self, shape: type) -> Callable[[Rule], Rule]:
        def decorator(rule: Rule) -> Rule:
            self._rules[shape].append(rule)
            return rule
        return decorator

    def rules_for(self, shape: type) -> Tuple[Rule, ...]:
        return tuple(self._rules.get(shape, ()))


REGISTRY = Registry()


@REGISTRY.register(ColumnOption)
def not_null_column(node: ColumnOption) -> Iterator[Diagnostic]:
    if isinstance(node.option, exp.NotNullColumnConstraint) and not node.option.args.get("allow_null"):
        yield Diagnostic(
            NOT_NULL_COLUMN,
            f"Column {node.column} is added with the NOT NULL option. "
            "This can cause a full table rewrite which can be very slow.",
            node.line, node.col,
        )


@REGISTRY.register(ColumnOption)
def default_value(node: ColumnOption) -> Iterator[Diagnostic]:
    if isinstance(node.option, exp.DefaultColumnConstraint):
        yield Diagnostic(
            DEFAULT_VALUE,
            f"Column {node.column} is added with a default value. "
            "This can cause a full table rewrite which can be very slow.",
            node.line, node.col,
        )


@REGISTRY.register(IndexBuild)
def non_concurrent_index(node: IndexBuild) -> Iterator[Diagnostic]:
    if not node.concurrently:
        yield Diagnostic(
            NON_CONCURRENT_INDEX,
            f"Index {node.name or '<unnamed>'} is created without CONCURRENTLY. "
            "This blocks writes to the table for the whole build.",
            node.line, node.col,
        )


def _position(node: Optional[exp.Expression]) -> Tuple[int, int]:
    """Line and starting column of a parsed token, (0, 0) when the parser kept none."""
    if node is None:
        return 0, 0
    meta = node.meta
    line, col = meta.get("line", 0), meta.get("col", 0)
    if col and "start" in meta and "end" in meta:
        col -= meta["end"] - meta["start"]
    return line, col


def _alter_nodes(stmt: exp.Alter) -> Iterator[object]:
    if str(stmt.args.get("kind") or "").upper() != "TABLE":
        return
    for action in stmt.args.get("actions") or []:
        # only ADD COLUMN is covered; DROP, RENAME, ALTER COLUMN etc. pass silently
        if not isinstance(action, exp.ColumnDef):
            continue
        line, col = _position(action.this)
        for constraint in action.args.get("constraints") or []:
            kind = constraint.args.get("kind") if isinstance(constraint, exp.ColumnConstraint) else None
            if kind is not None:
                yield ColumnOption(action.name, kind, line, col)


def _create_nodes(stmt: exp.Create) -> Iterator[object]:
    if str(stmt.args.get("kind") or "").upper() != "INDEX":
        return
    index = stmt.this
    ident = index.this if isinstance(index, exp.Index) else None
    line, col = _position(ident if isinstance(ident, exp.Expression) else None)
    yield IndexBuild(index.name if index is not None else "", bool(stmt.args.get("concurrently")), line, col)


STATEMENT_HANDLERS: Dict[type, Callable[..., Iterator[object]]] = {
    exp.Alter: _alter_nodes,
    exp.Create: _create_nodes,
}


def dispatch(statements: Iterable[Optional[exp.Expression]],
             registry: Registry = REGISTRY) -> List[Diagnostic]:
    """Route every statement to the rules registered for its shapes, in source order."""
    diagnostics: List[Diagnostic] = []
    for stmt in statements:
        handler = STATEMENT_HANDLERS.get(type(stmt))
        if handler is None:
            continue
        for node in handler(stmt):
            for rule in registry.rules_for(type(node)):
                diagnostics.extend(rule(node))
    return diagnostics
