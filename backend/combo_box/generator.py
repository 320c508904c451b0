# backend/combo_box/generator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .columns import DEFAULT_FILTER, PLACEHOLDER, ColumnDescriptor, normalize_columns
from .errors import ConfigurationError
from .execution import execute_plan, resolve_join_path, validate_condition_field
from .i18n import Translator
from .labels import LabelFn, build_label_fn, label_key, register_label
from .query_builder import (
    DEFAULT_LIMIT,
    Equals,
    QueryPlan,
    build_query,
    normalize_conditions,
    normalize_joins,
    normalize_limit,
)
from .schema import model_name, primary_key_value

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratorConfig:
    """
    Options of one search endpoint.

    columns     -- column specification, see :func:`combo_box.columns.normalize_columns`
    conditions  -- ``{field: value}`` equalities or ``("sql ?", param, ...)``
    joins       -- relationship path(s) to inner join and eager load
    limit       -- maximum number of records per search (80)
    partial     -- template used to render one HTML list item
    filter      -- filter template for columns that do not give one (``%X%``)
    """

    columns: Any = None
    conditions: Any = None
    joins: Any = None
    limit: int = DEFAULT_LIMIT
    partial: Optional[str] = None
    filter: str = DEFAULT_FILTER

    @classmethod
    def from_options(cls, options: Dict[str, Any], default_limit: int = DEFAULT_LIMIT) -> "GeneratorConfig":
        known = set(cls.__dataclass_fields__)
        unknown = set(options) - known
        if unknown:
            raise ConfigurationError(f"Unknown search option(s): {', '.join(sorted(unknown))}")
        values = dict(options)
        if values.get("limit") is None:
            values["limit"] = default_limit
        if values.get("filter") is None:
            values.pop("filter", None)
        return cls(**values)

    def validate(self) -> None:
        normalize_limit(self.limit)
        normalize_conditions(self.conditions)
        normalize_joins(self.joins)
        if self.partial is not None and not (isinstance(self.partial, str) and self.partial.strip()):
            raise ConfigurationError(f"partial must be a template name, got {self.partial!r}")
        if not isinstance(self.filter, str) or not self.filter:
            raise ConfigurationError(f"filter must be a non-empty string, got {self.filter!r}")
        if PLACEHOLDER not in self.filter:
            log.info("Default filter %r has no %r placeholder; every token matches the same pattern",
                     self.filter, PLACEHOLDER)


class ComboBoxGenerator:
    """
    Query and label generation for one declared search endpoint.

    Everything is resolved in ``__init__``; afterwards the instance is only
    read, so one generator can serve concurrent requests.
    """

    def __init__(
        self,
        owner: str,
        name: Optional[str],
        model: Any,
        config: Optional[GeneratorConfig] = None,
        *,
        translator: Optional[Translator] = None,
        environment: str = "production",
        register: bool = True,
    ):
        self.owner = owner
        self.action_name = f"search_for_{name}" if name else "search_for"
        self.model = model
        self.config = config or GeneratorConfig()
        self.config.validate()

        self.columns: Tuple[ColumnDescriptor, ...] = normalize_columns(
            model, self.config.columns, default_filter=self.config.filter
        )
        for clause in normalize_conditions(self.config.conditions):
            if isinstance(clause, Equals):
                validate_condition_field(model, clause.field)
        self.joins: Tuple[str, ...] = normalize_joins(self.config.joins)
        for dotted in self.joins:
            resolve_join_path(model, dotted)

        self.translator = translator or Translator()
        self.namespace = label_key(owner, self.action_name)
        self._label: LabelFn = build_label_fn(
            model, self.columns, self.namespace, self.translator, environment=environment
        )
        if register:
            register_label(owner, self.action_name, self._label)

        log.info(
            "Declared combo box %s.%s for %s columns=%s limit=%s",
            owner,
            self.action_name,
            model_name(model),
            [c.qualified_name for c in self.columns],
            self.config.limit,
        )

    @property
    def label_fn(self) -> LabelFn:
        return self._label

    def build_query(self, raw_search: Optional[str]) -> QueryPlan:
        return build_query(
            self.columns,
            raw_search,
            conditions=self.config.conditions,
            joins=self.joins,
            limit=self.config.limit,
        )

    def search(self, session: Session, raw_search: Optional[str]) -> List[Any]:
        return execute_plan(session, self.model, self.build_query(raw_search))

    def item_label(self, record: Any, locale: Optional[str] = None) -> str:
        return self._label(record, locale)

    def items(self, session: Session, raw_search: Optional[str], locale: Optional[str] = None) -> List[Dict[str, Any]]:
        """Search and return ``[{"label": ..., "id": ...}, ...]``."""
        return [
            {"label": self._label(record, locale), "id": primary_key_value(record)}
            for record in self.search(session, raw_search)
        ]

    def __repr__(self) -> str:
        return f"ComboBoxGenerator({self.owner}.{self.action_name} -> {model_name(self.model)})"
