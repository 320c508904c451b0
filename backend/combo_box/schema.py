# backend/combo_box/schema.py
"""
Schema and association metadata for mapped classes.

Everything here reads SQLAlchemy mapper metadata; nothing touches a database
connection. The column normalizer calls into this module once per column while
a search endpoint is declared, never while a request is served.
"""
from __future__ import annotations

import logging
import re
from typing import Any, List, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import types as sqltypes
from sqlalchemy.orm import Mapper, RelationshipProperty

from .errors import ConfigurationError

log = logging.getLogger(__name__)

AUDIT_COLUMNS: Tuple[str, ...] = ("lock_version", "created_at", "updated_at")

DATE_KINDS = frozenset({"date", "datetime"})


def _normalize_type_name(type_str: str) -> str:
    normalized = (type_str or "").strip().lower()
    if not normalized:
        return "text"
    if "bool" in normalized:
        return "boolean"
    if "uuid" in normalized:
        return "uuid"
    if "timestamp" in normalized or "datetime" in normalized:
        return "datetime"
    if normalized == "date" or normalized.endswith(" date"):
        return "date"
    if normalized == "time" or normalized.startswith("time "):
        return "time"
    if any(token in normalized for token in ("numeric", "decimal", "real", "double", "float", "money")):
        return "numeric"
    if any(token in normalized for token in ("int", "serial")):
        return "integer"
    if any(token in normalized for token in ("text", "char", "clob", "string", "json", "enum", "citext")):
        return "text"
    return normalized


def normalize_column_type(column_type: Any) -> str:
    """Map an SQLAlchemy type instance onto a small set of value kinds."""
    if isinstance(column_type, sqltypes.DateTime):
        return "datetime"
    if isinstance(column_type, sqltypes.Date):
        return "date"
    if isinstance(column_type, sqltypes.Time):
        return "time"
    if isinstance(column_type, sqltypes.Boolean):
        return "boolean"
    if isinstance(column_type, sqltypes.Integer):
        return "integer"
    if isinstance(column_type, sqltypes.Numeric):
        return "numeric"
    if isinstance(column_type, (sqltypes.String, sqltypes.Enum)):
        return "text"
    try:
        return _normalize_type_name(str(column_type))
    except Exception:
        log.debug("Could not render column type %r; treating it as text", column_type, exc_info=True)
        return "text"


def get_mapper(model: Any) -> Mapper:
    mapper = sa_inspect(model, raiseerr=False)
    if not isinstance(mapper, Mapper):
        raise ConfigurationError(f"{model!r} is not a mapped class")
    return mapper


def model_name(model: Any) -> str:
    return getattr(model, "__name__", repr(model))


def get_to_one_relationship(model: Any, name: str) -> RelationshipProperty:
    """Return the to-one relationship ``name`` of ``model`` or raise ConfigurationError."""
    mapper = get_mapper(model)
    relationship = mapper.relationships.get(name)
    if relationship is None:
        raise ConfigurationError(f"Model {model_name(model)} has no relationship {name!r}")
    if relationship.uselist:
        raise ConfigurationError(
            f"Relationship {model_name(model)}.{name} is a collection; only to-one relationships can be traversed"
        )
    return relationship


def related_model(relationship: RelationshipProperty) -> Any:
    return relationship.mapper.class_


def get_column(model: Any, name: str):
    """Return the mapped ``Column`` behind attribute ``name`` of ``model``."""
    mapper = get_mapper(model)
    prop = mapper.column_attrs.get(name)
    if prop is None:
        raise ConfigurationError(f"Model {model_name(model)} has no column {name!r}")
    return prop.columns[0]


def column_kind(model: Any, name: str) -> str:
    return normalize_column_type(get_column(model, name).type)


def qualified_column_name(model: Any, name: str) -> str:
    column = get_column(model, name)
    table = getattr(column, "table", None)
    table_name = getattr(table, "name", None) or get_mapper(model).local_table.name
    return f"{table_name}.{column.name}"


def content_column_names(model: Any) -> List[str]:
    """
    Attribute names of the columns that carry record content.

    Primary keys, foreign keys, ``*_id`` columns and the polymorphic
    discriminator are bookkeeping and are left out.
    """
    mapper = get_mapper(model)
    discriminator = mapper.polymorphic_on
    names: List[str] = []
    for prop in mapper.column_attrs:
        column = prop.columns[0]
        if getattr(column, "primary_key", False):
            continue
        if getattr(column, "foreign_keys", None):
            continue
        if prop.key.endswith("_id"):
            continue
        if discriminator is not None and column is discriminator:
            continue
        names.append(prop.key)
    return names


def default_column_names(model: Any) -> List[str]:
    return [name for name in content_column_names(model) if name not in AUDIT_COLUMNS]


def primary_key_value(record: Any) -> Any:
    identity = sa_inspect(record).identity
    if not identity:
        return None
    if len(identity) == 1:
        return identity[0]
    return "-".join(str(part) for part in identity)


def _singularize(word: str) -> str:
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if re.search(r"(ss|x|ch|sh)es$", word):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def classify(name: str) -> str:
    """``"order_lines"`` -> ``"OrderLine"``."""
    parts = [p for p in re.split(r"[_\s\-]+", name.strip()) if p]
    if not parts:
        return ""
    parts[-1] = _singularize(parts[-1])
    return "".join(p[:1].upper() + p[1:] for p in parts)


def resolve_model(base: Any, name: str) -> Any:
    """Find a mapped class in ``base``'s registry by class name or pluralized table-ish name."""
    if base is None:
        raise ConfigurationError(f"Cannot resolve model {name!r} without a declarative base")
    registry = getattr(base, "registry", None)
    if registry is None:
        raise ConfigurationError(f"{base!r} has no mapper registry")
    wanted = {name, classify(name)}
    for mapper in registry.mappers:
        if mapper.class_.__name__ in wanted:
            return mapper.class_
    raise ConfigurationError(f"No mapped class named {classify(name) or name!r}")

