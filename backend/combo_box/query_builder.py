# backend/combo_box/query_builder.py
from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from .columns import ColumnDescriptor
from .errors import ConfigurationError

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 80

_TOKEN_SPLIT = re.compile(r"[\s,]+")


# --------------------- filter expression nodes ---------------------

@dataclass(frozen=True)
class Equals:
    """``field = value``; ``field`` is an attribute of the base model or a ``table.column`` name."""

    field: str
    value: Any


@dataclass(frozen=True)
class RawPredicate:
    """Caller supplied SQL predicate with positional ``?`` parameters."""

    sql: str
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class InsensitiveMatch:
    """Lower-cased, text-cast column value LIKE the lower-cased pattern."""

    column: ColumnDescriptor
    pattern: str


@dataclass(frozen=True)
class AnyOf:
    clauses: Tuple["Clause", ...]


@dataclass(frozen=True)
class AllOf:
    clauses: Tuple["Clause", ...]


Clause = Union[Equals, RawPredicate, InsensitiveMatch, AnyOf, AllOf]


@dataclass(frozen=True)
class OrderBy:
    column: ColumnDescriptor
    direction: str = "ASC"

    def __str__(self) -> str:
        return f"{self.column.qualified_name} {self.direction}"


@dataclass(frozen=True)
class QueryPlan:
    """
    The unexecuted result of :func:`build_query`.

    ``filter`` is always an :class:`AllOf`: the base clauses first, then one
    :class:`AnyOf` group per search token. An empty ``AllOf`` means no
    filtering at all.
    """

    filter: AllOf
    joins: Tuple[str, ...]
    order: Tuple[OrderBy, ...]
    limit: int
    tokens: Tuple[str, ...] = ()

    def token_groups(self) -> Tuple[AnyOf, ...]:
        return tuple(c for c in self.filter.clauses if isinstance(c, AnyOf))

    def base_clauses(self) -> Tuple[Clause, ...]:
        return tuple(c for c in self.filter.clauses if not isinstance(c, AnyOf))

    def describe(self) -> str:
        """Readable SQL-ish rendering, for logs and the preview tool only."""
        lines = []
        where = _describe_clause(self.filter)
        if where:
            lines.append(f"WHERE {where}")
        if self.joins:
            lines.append("JOIN " + ", ".join(self.joins))
        if self.order:
            lines.append("ORDER BY " + ", ".join(str(o) for o in self.order))
        lines.append(f"LIMIT {self.limit}")
        return "\n".join(lines)


def _quote(value: Any) -> str:
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if value is None:
        return "NULL"
    return repr(value)


def _describe_clause(clause: Clause) -> str:
    if isinstance(clause, Equals):
        return f"{clause.field} = {_quote(clause.value)}"
    if isinstance(clause, RawPredicate):
        params = iter(clause.params)
        return re.sub(r"\?", lambda _m: _quote(next(params, None)), clause.sql)
    if isinstance(clause, InsensitiveMatch):
        return f"lower({clause.column.qualified_name}) LIKE {_quote(clause.pattern.lower())}"
    if isinstance(clause, AnyOf):
        return "(" + " OR ".join(_describe_clause(c) for c in clause.clauses) + ")"
    if isinstance(clause, AllOf):
        return " AND ".join(_describe_clause(c) for c in clause.clauses)
    raise TypeError(f"Unknown clause {clause!r}")


# --------------------- configuration normalizers ---------------------

def normalize_conditions(conditions: Any) -> Tuple[Clause, ...]:
    """
    Turn the base condition option into filter clauses.

    Accepted shapes:
      - ``None``: no base clauses
      - mapping ``{field: value}``: one :class:`Equals` per entry, in order
      - ``"sql"`` or ``("sql with ? markers", param, ...)``: one :class:`RawPredicate`

    Every ``?`` in the SQL text counts as a marker, including one inside a
    quoted literal such as ``'why?'``; the marker count must equal the
    parameter count. Pass such literals as parameters instead.
    """
    if conditions is None:
        return ()
    if isinstance(conditions, Mapping):
        clauses: List[Clause] = []
        for key, value in conditions.items():
            if not isinstance(key, str) or not key.strip():
                raise ConfigurationError(f"Condition keys must be field names, got {key!r}")
            clauses.append(Equals(key.strip(), value))
        return tuple(clauses)
    if isinstance(conditions, str):
        conditions = (conditions,)
    if isinstance(conditions, Sequence) and not isinstance(conditions, (bytes, bytearray)):
        if not conditions:
            return ()
        sql = conditions[0]
        if not isinstance(sql, str):
            raise ConfigurationError("The first element of a condition sequence must be an SQL string")
        params = tuple(conditions[1:])
        markers = sql.count("?")
        if markers != len(params):
            raise ConfigurationError(
                f"Condition {sql!r} has {markers} '?' marker(s) but {len(params)} parameter(s)"
            )
        return (RawPredicate(sql, params),)
    raise ConfigurationError(f"Unsupported conditions: {conditions!r}")


def _flatten_joins(spec: Any, prefix: Tuple[str, ...]) -> Iterable[Tuple[str, ...]]:
    if isinstance(spec, str):
        segments = tuple(s.strip() for s in spec.split("."))
        if any(not s for s in segments):
            raise ConfigurationError(f"Bad join path {spec!r}")
        yield prefix + segments
    elif isinstance(spec, Mapping):
        for key, nested in spec.items():
            if not isinstance(key, str):
                raise ConfigurationError(f"Bad join key {key!r}")
            head = prefix + tuple(key.split("."))
            if nested is None or nested == [] or nested == {}:
                yield head
            else:
                yield from _flatten_joins(nested, head)
    elif isinstance(spec, Sequence) and not isinstance(spec, (bytes, bytearray)):
        for item in spec:
            yield from _flatten_joins(item, prefix)
    else:
        raise ConfigurationError(f"Unsupported join specification: {spec!r}")


def normalize_joins(spec: Any) -> Tuple[str, ...]:
    """Flatten a join specification into unique dotted relationship paths, keeping order."""
    if spec is None:
        return ()
    paths: List[str] = []
    for segments in _flatten_joins(spec, ()):
        dotted = ".".join(segments)
        if dotted not in paths:
            paths.append(dotted)
    return tuple(paths)


def normalize_limit(limit: Any) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ConfigurationError(f"limit must be a positive integer, got {limit!r}")
    return limit


# --------------------- query construction ---------------------

def tokenize(raw_search: Optional[str]) -> List[str]:
    """Lower-case, NFKC-normalize and split a search string on whitespace and commas."""
    text = unicodedata.normalize("NFKC", str(raw_search or "")).lower().strip()
    return [token for token in _TOKEN_SPLIT.split(text) if token]


def build_token_group(columns: Sequence[ColumnDescriptor], token: str) -> AnyOf:
    return AnyOf(tuple(InsensitiveMatch(column, column.pattern_for(token)) for column in columns))


def build_query(
    columns: Sequence[ColumnDescriptor],
    raw_search: Optional[str],
    conditions: Any = None,
    joins: Any = None,
    limit: Optional[int] = None,
) -> QueryPlan:
    """
    Build the QueryPlan for one search request.

    The filter is ``base AND (token1 on col1 OR ... colN) AND (token2 ...)``.
    Patterns are carried as plain values; whoever executes the plan binds them
    as parameters.
    """
    if not columns:
        raise ConfigurationError("build_query needs at least one column")

    tokens = tokenize(raw_search)
    clauses: List[Clause] = list(normalize_conditions(conditions))
    clauses.extend(build_token_group(columns, token) for token in tokens)

    plan = QueryPlan(
        filter=AllOf(tuple(clauses)),
        joins=normalize_joins(joins),
        order=tuple(OrderBy(column) for column in columns),
        limit=normalize_limit(limit),
        tokens=tuple(tokens),
    )
    log.debug("Built query plan tokens=%r groups=%d", plan.tokens, len(plan.token_groups()))
    return plan
