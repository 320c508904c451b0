# backend/combo_box/config_loader.py
from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
CONFIG_DIR = REPO_ROOT / "config"
CONFIG_PATH = CONFIG_DIR / "appconfig.json"

_REPO_ROOT_PREFIX = "<REPO_ROOT>/"

DEFAULT_LIMIT = 80
DEFAULT_LOCALE = "en"
DEFAULT_ENVIRONMENT = "production"

_LIMIT_CONFIG_KEY = "combo_box_limit"
_ENVIRONMENT_CONFIG_KEY = "environment"
_LOCALE_CONFIG_KEY = "default_locale"
_LOCALES_DIR_CONFIG_KEY = "locales_dir"


def _config_path() -> Path:
    override = os.getenv("COMBO_BOX_CONFIG")
    if override:
        return Path(override).expanduser()
    return CONFIG_PATH


def _read_json_file(path: Path) -> dict:
    """Read JSON from disk, returning an empty mapping on failure."""
    if not path.exists():
        log.debug("No configuration file at %s; using defaults", path)
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        log.warning("Could not read %s; falling back to defaults", path, exc_info=True)
        return {}
    if not isinstance(data, dict):
        log.warning("%s does not hold a JSON object; falling back to defaults", path)
        return {}
    return data


def load_app_config() -> dict:
    """Return the raw JSON configuration for the application."""
    return _read_json_file(_config_path())


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        numeric = int(value)
    except (TypeError, ValueError):
        return int(fallback)
    if numeric <= 0:
        return int(fallback)
    return numeric


def get_default_limit(cfg: Optional[Mapping[str, Any]] = None) -> int:
    """Row limit used by search endpoints that do not declare their own."""
    if cfg is None:
        cfg = load_app_config()
    candidate = cfg.get(_LIMIT_CONFIG_KEY) if isinstance(cfg, Mapping) else None
    return _coerce_positive_int(candidate, DEFAULT_LIMIT)


def get_environment(cfg: Optional[Mapping[str, Any]] = None) -> str:
    """
    Resolve the environment mode ("development", "test", "production", ...).

    The config file wins, then ``COMBO_BOX_ENV``, then ``FLASK_ENV``.
    """
    if cfg is None:
        cfg = load_app_config()
    raw = cfg.get(_ENVIRONMENT_CONFIG_KEY) if isinstance(cfg, Mapping) else None
    if not (isinstance(raw, str) and raw.strip()):
        raw = os.getenv("COMBO_BOX_ENV") or os.getenv("FLASK_ENV") or DEFAULT_ENVIRONMENT
    return raw.strip().lower()


def get_default_locale(cfg: Optional[Mapping[str, Any]] = None) -> str:
    if cfg is None:
        cfg = load_app_config()
    raw = cfg.get(_LOCALE_CONFIG_KEY) if isinstance(cfg, Mapping) else None
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return DEFAULT_LOCALE


def _resolve_config_path(raw_value: Any, setting_name: str) -> Optional[Path]:
    """Convert configuration entries into absolute filesystem paths when possible."""
    if raw_value is None:
        return None
    if not isinstance(raw_value, (str, os.PathLike)):
        log.warning("%s in %s is not a path; ignoring it.", setting_name, _config_path())
        return None
    text_value = os.fspath(raw_value).strip()
    if not text_value:
        return None
    if text_value.startswith(_REPO_ROOT_PREFIX):
        return (REPO_ROOT / text_value[len(_REPO_ROOT_PREFIX):]).resolve()
    candidate = Path(text_value).expanduser()
    if not candidate.is_absolute():
        candidate = (CONFIG_DIR / candidate).resolve()
    return candidate


def get_locales_dir(cfg: Optional[Mapping[str, Any]] = None) -> Path:
    """Directory holding the ``<locale>.json`` translation catalogs."""
    if cfg is None:
        cfg = load_app_config()
    raw = cfg.get(_LOCALES_DIR_CONFIG_KEY) if isinstance(cfg, Mapping) else None
    resolved = _resolve_config_path(raw, _LOCALES_DIR_CONFIG_KEY)
    return resolved or (CONFIG_DIR / "locales")


def initialize_app_config(app: Any) -> None:
    """Populate a Flask app instance with values derived from appconfig.json."""
    cfg = load_app_config()
    app.config.update(cfg)
    app.config["COMBO_BOX_LIMIT"] = get_default_limit(cfg)
    app.config["COMBO_BOX_ENV"] = get_environment(cfg)
    app.config["DEFAULT_LOCALE"] = get_default_locale(cfg)
    app.config["LOCALES_DIR"] = get_locales_dir(cfg)
