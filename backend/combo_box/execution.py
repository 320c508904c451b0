# backend/combo_box/execution.py
"""
Run a :class:`~combo_box.query_builder.QueryPlan` through SQLAlchemy.

Columns reached through association paths get one aliased LEFT OUTER JOIN per
distinct path prefix, so records with an absent association still match on
their other columns. Join paths declared on the endpoint are INNER JOINed and
eager loaded. Every search pattern travels as a bound parameter.
"""
from __future__ import annotations

import itertools
import logging
import re
from typing import Any, Dict, List, Tuple

from sqlalchemy import String, and_, cast, func, literal, literal_column, or_, select, text
from sqlalchemy.orm import Session, aliased, joinedload
from sqlalchemy.sql import ColumnElement, Select

from .columns import ColumnDescriptor
from .errors import ConfigurationError
from .query_builder import AllOf, AnyOf, Clause, Equals, InsensitiveMatch, QueryPlan, RawPredicate
from .schema import get_column, get_mapper, model_name

log = logging.getLogger(__name__)

_MARKER = re.compile(r"\?")


def resolve_join_path(model: Any, dotted: str) -> List[Tuple[str, Any]]:
    """Return ``[(relationship_name, target_class), ...]`` for a dotted join path."""
    resolved: List[Tuple[str, Any]] = []
    current = model
    for segment in dotted.split("."):
        relationship = get_mapper(current).relationships.get(segment)
        if relationship is None:
            raise ConfigurationError(
                f"Bad join {dotted!r}: model {model_name(current)} has no relationship {segment!r}"
            )
        current = relationship.mapper.class_
        resolved.append((segment, current))
    return resolved


def validate_condition_field(model: Any, field: str) -> None:
    """Unqualified condition fields must be mapped columns of ``model``."""
    if "." in field:
        return
    get_column(model, field)


class _PlanCompiler:
    def __init__(self, model: Any):
        self.model = model
        self.table_name = get_mapper(model).local_table.name
        self.stmt: Select = select(model)
        self._aliases: Dict[Tuple[str, ...], Any] = {(): model}
        self._param_names = (f"cb_{n}" for n in itertools.count())

    def entity_for(self, column: ColumnDescriptor) -> Any:
        key: Tuple[str, ...] = ()
        for hop in column.hops:
            next_key = key + (hop.name,)
            if next_key not in self._aliases:
                target = aliased(hop.target)
                parent = self._aliases[key]
                self.stmt = self.stmt.outerjoin(getattr(parent, hop.name).of_type(target))
                self._aliases[next_key] = target
            key = next_key
        return self._aliases[key]

    def attribute(self, column: ColumnDescriptor):
        return getattr(self.entity_for(column), column.name)

    def field(self, name: str):
        if "." not in name:
            return getattr(self.model, name)
        table, column_name = name.rsplit(".", 1)
        if table == self.table_name:
            mapper = get_mapper(self.model)
            for prop in mapper.column_attrs:
                if prop.columns[0].name == column_name:
                    return getattr(self.model, prop.key)
        return literal_column(name)

    def raw(self, clause: RawPredicate) -> ColumnElement:
        params: Dict[str, Any] = {}
        values = iter(clause.params)

        def _bind(_match: re.Match) -> str:
            name = next(self._param_names)
            params[name] = next(values)
            return f":{name}"

        return text(_MARKER.sub(_bind, clause.sql)).bindparams(**params)

    def clause(self, node: Clause) -> ColumnElement:
        if isinstance(node, InsensitiveMatch):
            lowered = func.lower(cast(self.attribute(node.column), String))
            return lowered.like(func.lower(literal(node.pattern, String)))
        if isinstance(node, Equals):
            return self.field(node.field) == node.value
        if isinstance(node, RawPredicate):
            return self.raw(node)
        if isinstance(node, AnyOf):
            return or_(*(self.clause(c) for c in node.clauses))
        if isinstance(node, AllOf):
            return and_(*(self.clause(c) for c in node.clauses))
        raise TypeError(f"Unknown clause {node!r}")

    def apply_joins(self, joins: Tuple[str, ...]) -> None:
        for dotted in joins:
            join_parent: Any = self.model
            load_parent: Any = self.model
            loader = None
            for name, target in resolve_join_path(self.model, dotted):
                joined = aliased(target)
                self.stmt = self.stmt.join(getattr(join_parent, name).of_type(joined))
                load_attr = getattr(load_parent, name)
                loader = joinedload(load_attr) if loader is None else loader.joinedload(load_attr)
                join_parent, load_parent = joined, target
            if loader is not None:
                self.stmt = self.stmt.options(loader)

    def compile(self, plan: QueryPlan) -> Select:
        where = self.clause(plan.filter) if plan.filter.clauses else None
        order = []
        for o in plan.order:
            attr = self.attribute(o.column)
            order.append(attr.desc() if o.direction == "DESC" else attr.asc())
        self.apply_joins(plan.joins)
        stmt = self.stmt
        if where is not None:
            stmt = stmt.where(where)
        return stmt.order_by(*order).limit(plan.limit)


def compile_plan(model: Any, plan: QueryPlan) -> Select:
    """Render ``plan`` as an SQLAlchemy ``Select`` over ``model``."""
    return _PlanCompiler(model).compile(plan)


def execute_plan(session: Session, model: Any, plan: QueryPlan) -> List[Any]:
    """Run ``plan`` and return the matching ``model`` instances in order."""
    stmt = compile_plan(model, plan)
    log.debug("Executing combo box query for %s:\n%s", model_name(model), plan.describe())
    return list(session.execute(stmt).unique().scalars().all())
