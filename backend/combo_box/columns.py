# backend/combo_box/columns.py
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .schema import (
    DATE_KINDS,
    column_kind,
    default_column_names,
    get_to_one_relationship,
    model_name,
    qualified_column_name,
    related_model,
)

log = logging.getLogger(__name__)

PLACEHOLDER = "X"
DEFAULT_FILTER = "%X%"

_NON_WORD = re.compile(r"\W")
_INTERPOLATION_KEY = re.compile(r"\w+")
_MAPPING_KEYS = frozenset({"name", "filter", "interpolation_key", "through", "association_path"})


@dataclass(frozen=True)
class Hop:
    """One resolved step of an association path."""

    name: str
    target: Any


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    One searchable/displayable field of a search endpoint.

    ``association_path`` lists the to-one relationships followed from the base
    model to reach the model owning ``name``. The path is resolved once into
    ``hops`` when the descriptor is built; afterwards a descriptor never looks
    at mapper metadata again.
    """

    model: Any
    name: str
    association_path: Tuple[str, ...]
    filter_template: str
    interpolation_key: str
    value_type: str
    hops: Tuple[Hop, ...] = field(repr=False)
    qualified_name: str

    @classmethod
    def build(
        cls,
        model: Any,
        name: Any,
        *,
        filter_template: Optional[str] = None,
        interpolation_key: Optional[str] = None,
        association_path: Iterable[str] = (),
        default_filter: str = DEFAULT_FILTER,
    ) -> "ColumnDescriptor":
        name = str(name or "").strip()
        if not name:
            raise ConfigurationError(f"Column of {model_name(model)} needs a non-empty name")

        path = tuple(str(segment).strip() for segment in association_path)
        if any(not segment for segment in path):
            raise ConfigurationError(f"Empty association segment in {'.'.join(path + (name,))!r}")

        hops: List[Hop] = []
        current = model
        for segment in path:
            try:
                relationship = get_to_one_relationship(current, segment)
            except ConfigurationError as exc:
                raise ConfigurationError(
                    f"Bad association path {'.'.join(path + (name,))!r} on {model_name(model)}: {exc}"
                ) from None
            current = related_model(relationship)
            hops.append(Hop(segment, current))

        key = str(interpolation_key).strip() if interpolation_key else _NON_WORD.sub("_", name)
        if not _INTERPOLATION_KEY.fullmatch(key):
            raise ConfigurationError(
                f"Bad interpolation key {key!r} for column {'.'.join(path + (name,))!r}: use letters, digits and _ only"
            )

        try:
            value_type = column_kind(current, name)
            qualified = qualified_column_name(current, name)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"Bad column {'.'.join(path + (name,))!r} on {model_name(model)}: {exc}"
            ) from None

        return cls(
            model=model,
            name=name,
            association_path=path,
            filter_template=filter_template or default_filter or DEFAULT_FILTER,
            interpolation_key=key,
            value_type=value_type,
            hops=tuple(hops),
            qualified_name=qualified,
        )

    @property
    def owner_model(self) -> Any:
        return self.hops[-1].target if self.hops else self.model

    @property
    def is_temporal(self) -> bool:
        return self.value_type in DATE_KINDS

    def pattern_for(self, token: str) -> str:
        """Instantiate the filter template for one search token."""
        return self.filter_template.replace(PLACEHOLDER, token)

    def extract(self, record: Any) -> Any:
        """Walk the association path on ``record``; ``None`` as soon as a hop is absent."""
        current = record
        for hop in self.hops:
            current = getattr(current, hop.name, None)
            if current is None:
                return None
        return getattr(current, self.name, None)


def _split_path(dotted: str) -> Tuple[List[str], str]:
    segments = dotted.split(".")
    return segments[:-1], segments[-1]


def _from_string(model: Any, text: str, default_filter: str) -> ColumnDescriptor:
    # "path.to.field:filter:interpolation_key"
    parts = text.split(":")
    if len(parts) > 3:
        raise ConfigurationError(f"Bad column: {text!r} has more than three ':' separated parts")
    parts += [""] * (3 - len(parts))
    path, name = _split_path(parts[0].strip())
    return ColumnDescriptor.build(
        model,
        name,
        filter_template=parts[1] or None,
        interpolation_key=parts[2].strip() or None,
        association_path=path,
        default_filter=default_filter,
    )


def _from_mapping(model: Any, item: Mapping[str, Any], default_filter: str) -> ColumnDescriptor:
    unknown = set(item) - _MAPPING_KEYS
    if unknown:
        raise ConfigurationError(f"Bad column: {dict(item)!r} has unknown keys {sorted(unknown)}")
    if "through" in item and "association_path" in item:
        raise ConfigurationError(f"Bad column: {dict(item)!r} gives both 'through' and 'association_path'")

    name = item.get("name")
    if not isinstance(name, str):
        raise ConfigurationError(f"Bad column: {dict(item)!r} needs a string 'name'")

    raw_path = item.get("association_path", item.get("through"))
    if raw_path is None:
        path, name = _split_path(name)
    elif isinstance(raw_path, str):
        path = raw_path.split(".")
    elif isinstance(raw_path, Sequence):
        path = list(raw_path)
    else:
        raise ConfigurationError(f"Bad column: association path {raw_path!r} must be a string or a list")

    return ColumnDescriptor.build(
        model,
        name,
        filter_template=item.get("filter"),
        interpolation_key=item.get("interpolation_key"),
        association_path=path,
        default_filter=default_filter,
    )


def normalize_item(model: Any, item: Any, default_filter: str = DEFAULT_FILTER) -> ColumnDescriptor:
    if isinstance(item, ColumnDescriptor):
        if item.model is not model:
            raise ConfigurationError(
                f"Bad column: {item.name!r} was built for {model_name(item.model)}, not {model_name(model)}"
            )
        return item
    if isinstance(item, str):
        return _from_string(model, item, default_filter)
    if isinstance(item, Mapping):
        return _from_mapping(model, item, default_filter)
    raise ConfigurationError(f"Bad column: {item!r}")


def normalize_columns(
    model: Any,
    spec: Any = None,
    *,
    default_filter: str = DEFAULT_FILTER,
) -> Tuple[ColumnDescriptor, ...]:
    """
    Turn a column specification into the ordered ColumnSet of ``model``.

    ``spec`` may be omitted (every content column except the audit fields),
    a single item, or a list of items. An item is a ``"path.field:filter:key"``
    string, a mapping with ``name``/``filter``/``interpolation_key``/``through``
    keys, or an already built ``ColumnDescriptor``.
    """
    if spec is None:
        spec = default_column_names(model)
    if not isinstance(spec, (list, tuple)):
        spec = [spec]

    columns = tuple(normalize_item(model, item, default_filter) for item in spec)
    if not columns:
        raise ConfigurationError(f"No searchable columns for {model_name(model)}")

    log.debug(
        "Normalized %d column(s) for %s: %s",
        len(columns),
        model_name(model),
        ", ".join(c.qualified_name for c in columns),
    )
    return columns
