"""
Combo box search endpoints for SQLAlchemy models.

Declare the searchable columns of a model once; the package derives the
multi-token search query and the localized label of every matched record.

    from flask import Blueprint
    from combo_box import search_for

    bp = Blueprint("orders", __name__)
    search_for(bp, "clients", Person, columns=["name", "number:X%", "account.city"])
"""

from .columns import ColumnDescriptor, normalize_columns
from .errors import ComboBoxError, ConfigurationError
from .generator import ComboBoxGenerator, GeneratorConfig
from .i18n import Translator
from .labels import build_label_fn, item_label_for
from .query_builder import QueryPlan, build_query, tokenize
from .routes import search_for

__all__ = [
    "ColumnDescriptor",
    "ComboBoxError",
    "ComboBoxGenerator",
    "ConfigurationError",
    "GeneratorConfig",
    "QueryPlan",
    "Translator",
    "build_label_fn",
    "build_query",
    "item_label_for",
    "normalize_columns",
    "search_for",
    "tokenize",
]
