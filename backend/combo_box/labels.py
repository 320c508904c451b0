# backend/combo_box/labels.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from .columns import ColumnDescriptor
from .i18n import Translator
from .schema import model_name

log = logging.getLogger(__name__)

UNFOUND_RECORD_MARKER = "[UnfoundRecord]"
LABEL_NAMESPACE = "views.combo_boxes"

LabelFn = Callable[..., str]


def label_key(owner: str, endpoint_name: str) -> str:
    return f"{LABEL_NAMESPACE}.{owner}.{endpoint_name}"


def default_template(columns: Sequence[ColumnDescriptor]) -> str:
    return ", ".join("{" + column.interpolation_key + "}" for column in columns)


def format_value(column: ColumnDescriptor, record: Any, translator: Translator, locale: Optional[str]) -> str:
    value = column.extract(record)
    if value is None:
        return ""
    if column.is_temporal:
        return translator.localize(value, locale)
    return str(value)


def build_label_fn(
    model: Any,
    columns: Sequence[ColumnDescriptor],
    namespace: str,
    translator: Translator,
    *,
    environment: str = "production",
) -> LabelFn:
    """
    Build ``label(record, locale=None) -> str`` for one search endpoint.

    The label is the translation at ``namespace`` interpolated with every
    column's value, falling back to ``"{key1}, {key2}, ..."``. Records of
    another type give ``[UnfoundRecord]`` outside production and ``""`` in
    production.
    """
    columns = tuple(columns)
    template = default_template(columns)
    mismatch = "" if environment == "production" else UNFOUND_RECORD_MARKER

    def label(record: Any, locale: Optional[str] = None) -> str:
        if not isinstance(record, model):
            log.debug("Label for %s asked with %r", model_name(model), type(record).__name__)
            return mismatch
        values: Dict[str, str] = {}
        for column in columns:
            try:
                values[column.interpolation_key] = format_value(column, record, translator, locale)
            except Exception:
                # lazy loads on detached records and broken properties end up here
                log.warning(
                    "Could not read %s for %s label", column.qualified_name, model_name(model), exc_info=True
                )
                values[column.interpolation_key] = ""
        return translator.translate(namespace, locale, default=template, **values)

    label.__name__ = f"label_for_{namespace.rsplit('.', 1)[-1]}"
    return label


# --------------------- compiled label registry ---------------------

_REGISTRY: Dict[Tuple[str, str], LabelFn] = {}
_REGISTRY_LOCK = threading.Lock()


def register_label(owner: str, endpoint_name: str, fn: LabelFn) -> None:
    with _REGISTRY_LOCK:
        if (owner, endpoint_name) in _REGISTRY:
            log.info("Replacing label function for %s.%s", owner, endpoint_name)
        _REGISTRY[(owner, endpoint_name)] = fn


def unregister_label(owner: str, endpoint_name: str) -> None:
    with _REGISTRY_LOCK:
        _REGISTRY.pop((owner, endpoint_name), None)


def get_label_fn(owner: str, endpoint_name: str) -> Optional[LabelFn]:
    return _REGISTRY.get((owner, endpoint_name))


def item_label_for(owner: str, endpoint_name: str, record: Any, locale: Optional[str] = None) -> str:
    """Label ``record`` with the function registered for ``owner``/``endpoint_name``."""
    fn = _REGISTRY.get((owner, endpoint_name))
    if fn is None:
        log.warning("No combo box label registered for %s.%s", owner, endpoint_name)
        return ""
    return fn(record, locale)
