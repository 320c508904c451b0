# backend/combo_box/i18n.py
from __future__ import annotations

import json
import logging
import string
import threading
from collections.abc import Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .config_loader import get_default_locale, get_locales_dir, load_app_config

log = logging.getLogger(__name__)

DEFAULT_DATE_FORMAT = "%Y-%m-%d"
DEFAULT_TIME_FORMAT = "%Y-%m-%d %H:%M"

_FORMATTER = string.Formatter()


class _BlankMissing(dict):
    """format_map() mapping that renders unknown placeholders as empty strings."""

    def __missing__(self, key: str) -> str:
        return ""


def interpolate(template: str, values: Mapping[str, Any]) -> str:
    """
    Fill ``{name}`` placeholders of ``template`` from ``values``.

    Missing names render as ``""``. A malformed template (unbalanced braces,
    attribute lookups on missing values) is logged and returned unformatted.
    """
    try:
        return _FORMATTER.vformat(template, (), _BlankMissing(values))
    except (ValueError, IndexError, KeyError, AttributeError, TypeError):
        log.warning("Could not interpolate template %r", template, exc_info=True)
        return template


class Translator:
    """
    Locale catalogs loaded from ``<locales_dir>/<locale>.json``.

    Each catalog is a nested JSON object; keys are looked up with dotted paths
    such as ``views.combo_boxes.orders.search_for_clients``. Catalogs are read
    lazily and cached, so a Translator can be shared by concurrent requests.
    """

    def __init__(
        self,
        locales_dir: Optional[Path | str] = None,
        default_locale: str = "en",
        catalogs: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        self.locales_dir = Path(locales_dir) if locales_dir is not None else None
        self.default_locale = default_locale
        self._catalogs: Dict[str, Mapping[str, Any]] = {}
        self._lock = threading.Lock()
        if catalogs:
            for locale, catalog in catalogs.items():
                self._catalogs[locale] = catalog

    # ---------- catalogs ----------

    def _load_catalog(self, locale: str) -> Mapping[str, Any]:
        if self.locales_dir is None:
            return {}
        path = self.locales_dir / f"{locale}.json"
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except Exception:
            log.warning("Could not read locale catalog %s", path, exc_info=True)
            return {}
        if not isinstance(data, Mapping):
            log.warning("Locale catalog %s is not a JSON object; ignoring it", path)
            return {}
        log.debug("Loaded locale catalog %s", path)
        return data

    def catalog(self, locale: str) -> Mapping[str, Any]:
        cached = self._catalogs.get(locale)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._catalogs.get(locale)
            if cached is None:
                cached = self._load_catalog(locale)
                self._catalogs[locale] = cached
        return cached

    def available_locales(self) -> List[str]:
        found = set(self._catalogs)
        if self.locales_dir is not None and self.locales_dir.is_dir():
            found.update(p.stem for p in self.locales_dir.glob("*.json"))
        found.add(self.default_locale)
        return sorted(found)

    def resolve_locale(self, candidates: Iterable[Optional[str]]) -> str:
        """Pick the first candidate with a catalog (``pt-BR`` also matches ``pt``)."""
        available = set(self.available_locales())
        for candidate in candidates:
            if not candidate:
                continue
            tag = candidate.replace("_", "-")
            if tag in available:
                return tag
            base = tag.split("-", 1)[0]
            if base in available:
                return base
        return self.default_locale

    # ---------- lookups ----------

    def lookup(self, key: str, locale: Optional[str] = None) -> Any:
        """Return the raw catalog entry for ``key`` or ``None``."""
        locales = [locale or self.default_locale]
        if self.default_locale not in locales:
            locales.append(self.default_locale)
        for loc in locales:
            node: Any = self.catalog(loc)
            for part in key.split("."):
                if not isinstance(node, Mapping) or part not in node:
                    node = None
                    break
                node = node[part]
            if node is not None:
                return node
        return None

    def translate(self, key: str, locale: Optional[str] = None, default: Optional[str] = None, **values: Any) -> str:
        template = self.lookup(key, locale)
        if not isinstance(template, str):
            if template is not None:
                log.debug("Translation %r is not a string; using default", key)
            template = default if default is not None else key
        return interpolate(template, values)

    def localize(self, value: Any, locale: Optional[str] = None, fmt: str = "default") -> str:
        """Format a date or datetime with the locale's ``date.formats`` / ``time.formats`` entry."""
        if value is None:
            return ""
        if isinstance(value, datetime):
            pattern = self.lookup(f"time.formats.{fmt}", locale)
            fallback = DEFAULT_TIME_FORMAT
        elif isinstance(value, date):
            pattern = self.lookup(f"date.formats.{fmt}", locale)
            fallback = DEFAULT_DATE_FORMAT
        else:
            return str(value)
        if not isinstance(pattern, str) or not pattern:
            pattern = fallback
        try:
            return value.strftime(pattern)
        except ValueError:
            log.warning("Bad %s format %r for locale %s", type(value).__name__, pattern, locale, exc_info=True)
            return value.strftime(fallback)


_DEFAULT_TRANSLATOR: Optional[Translator] = None
_DEFAULT_TRANSLATOR_LOCK = threading.Lock()


def get_default_translator() -> Translator:
    """Process-wide Translator configured from appconfig.json."""
    global _DEFAULT_TRANSLATOR
    if _DEFAULT_TRANSLATOR is not None:
        return _DEFAULT_TRANSLATOR
    with _DEFAULT_TRANSLATOR_LOCK:
        if _DEFAULT_TRANSLATOR is None:
            cfg = load_app_config()
            _DEFAULT_TRANSLATOR = Translator(get_locales_dir(cfg), default_locale=get_default_locale(cfg))
    return _DEFAULT_TRANSLATOR
