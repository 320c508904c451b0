# backend/combo_box/routes.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import yaml
from flask import Blueprint, Response, abort, jsonify, render_template, render_template_string, request
from lxml import etree
from markupsafe import Markup
from sqlalchemy.engine import Engine

from .config_loader import get_default_limit, get_environment
from .db import session_scope, table_exists
from .generator import ComboBoxGenerator, GeneratorConfig
from .helpers import highlight
from .i18n import Translator, get_default_translator
from .query_builder import tokenize
from .schema import model_name, primary_key_value, resolve_model

log = logging.getLogger(__name__)

FORMATS = {
    "html": "text/html",
    "json": "application/json",
    "xml": "application/xml",
    "yaml": "application/x-yaml",
}
_MIMETYPE_TO_FORMAT = {mimetype: fmt for fmt, mimetype in FORMATS.items()}

_LIST_TEMPLATE = (
    "<ul>{% for item_id, content in items %}"
    "<li id=\"{{ item_id }}\">{{ content }}</li>"
    "{% endfor %}</ul>"
)

# characters XML 1.0 cannot carry
_XML_INVALID = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def search_for(
    bp: Blueprint,
    name: Optional[str] = None,
    model: Any = None,
    *,
    base: Any = None,
    translator: Optional[Translator] = None,
    engine: Optional[Engine] = None,
    environment: Optional[str] = None,
    **options: Any,
) -> Optional[ComboBoxGenerator]:
    """
    Declare a combo box data source on ``bp``.

    ``search_for(bp, "clients", Person)`` serves ``Person`` records at
    ``/search_for_clients``; ``search_for(bp, "accounts", base=Base)`` looks up
    the ``Account`` class in ``Base``'s registry; ``search_for(bp, base=Base)``
    derives the model from the blueprint name and serves ``/search_for``.

    Options are those of :class:`~combo_box.generator.GeneratorConfig`
    (``columns``, ``conditions``, ``joins``, ``limit``, ``partial``,
    ``filter``). When ``engine`` is given and the model's table does not exist
    the declaration is skipped and ``None`` is returned.

    Declare every endpoint before the blueprint is registered on an app.
    """
    target = model or name or bp.name
    if isinstance(target, str):
        target = resolve_model(base, target)
    if engine is not None and not table_exists(target, engine):
        log.warning("Skipping combo box %s.%s: table for %s does not exist", bp.name, name, model_name(target))
        return None

    config = GeneratorConfig.from_options(options, default_limit=get_default_limit())
    generator = ComboBoxGenerator(
        bp.name,
        name,
        target,
        config,
        translator=translator or get_default_translator(),
        environment=environment or get_environment(),
    )

    view = _make_view(generator)
    bp.add_url_rule(f"/{generator.action_name}", endpoint=generator.action_name, view_func=view)
    bp.add_url_rule(f"/{generator.action_name}.<fmt>", endpoint=generator.action_name, view_func=view)
    return generator


def _negotiate_format(fmt: Optional[str]) -> str:
    if fmt:
        return fmt.lower()
    explicit = request.args.get("format")
    if explicit:
        return explicit.strip().lower()
    best = request.accept_mimetypes.best_match(list(FORMATS.values()), default=FORMATS["html"])
    return _MIMETYPE_TO_FORMAT.get(best, "html")


def _request_locale(translator: Translator) -> str:
    candidates: List[Optional[str]] = [request.args.get("locale")]
    candidates.extend(value for value, _quality in request.accept_languages)
    return translator.resolve_locale(candidates)


def _render_html(generator: ComboBoxGenerator, records: List[Any], search: str, locale: str) -> str:
    tokens = tokenize(search)
    partial = generator.config.partial
    items = []
    for record in records:
        content = generator.item_label(record, locale)
        if partial:
            body = Markup(render_template(partial, record=record, content=content, search=search))
        else:
            body = highlight(content, tokens)
        items.append((primary_key_value(record), body))
    return render_template_string(_LIST_TEMPLATE, items=items)


def _xml_text(value: Any) -> str:
    return _XML_INVALID.sub("", "" if value is None else str(value))


def render_xml(items: List[Dict[str, Any]]) -> bytes:
    root = etree.Element("records", type="array")
    for item in items:
        record = etree.SubElement(root, "record")
        etree.SubElement(record, "label").text = _xml_text(item.get("label"))
        etree.SubElement(record, "id").text = _xml_text(item.get("id"))
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def render_yaml(items: List[Dict[str, Any]]) -> str:
    return yaml.safe_dump(
        [{"label": item.get("label"), "id": item.get("id")} for item in items],
        allow_unicode=True,
        sort_keys=False,
    )


def _make_view(generator: ComboBoxGenerator):
    def combo_box_view(fmt: Optional[str] = None):
        """
        GET /<action>[.<fmt>]?term=...

        Response (json): [{"label": "...", "id": ...}, ...]
        Response (xml):  <records><record><label/><id/></record>...</records>
        Response (html): <ul><li id="...">label</li>...</ul>
        Response (yaml): - {label: ..., id: ...}
        """
        output = _negotiate_format(fmt)
        if output not in FORMATS:
            abort(406, description=f"Unsupported format {output!r}; use one of {', '.join(FORMATS)}")

        search = request.args.get("term") or request.args.get("q") or ""
        locale = _request_locale(generator.translator)

        try:
            with session_scope() as session:
                records = generator.search(session, search)
                if output == "html":
                    return Response(_render_html(generator, records, search, locale), mimetype=FORMATS["html"])
                items = [
                    {"label": generator.item_label(record, locale), "id": primary_key_value(record)}
                    for record in records
                ]
        except Exception as exc:
            log.exception("%s: error while searching %r", generator.action_name, search)
            return jsonify(ok=False, error=str(exc)), 500

        if output == "json":
            return jsonify(items)
        if output == "yaml":
            return Response(render_yaml(items), mimetype=FORMATS["yaml"])
        return Response(render_xml(items), mimetype=FORMATS["xml"])

    combo_box_view.__name__ = generator.action_name
    return combo_box_view
