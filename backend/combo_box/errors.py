# backend/combo_box/errors.py
from __future__ import annotations

import json

from flask import jsonify, request
from flask.signals import got_request_exception
from werkzeug.exceptions import HTTPException


class ComboBoxError(Exception):
    """Base class for every error raised by the combo box generator."""


class ConfigurationError(ComboBoxError):
    """
    Raised while a search endpoint is being declared.

    Bad association paths, unknown fields, malformed column items and
    malformed base conditions all end up here. These are declaration
    mistakes, so they surface at setup time and are never caught by the
    request-time code paths.
    """


# app.logger propagates to the root logger configured by start_log(), so these
# lines land in the same log files as the module loggers.

def register_error_handlers(app):
    setup_signals(app)

    @app.errorhandler(HTTPException)
    def handle_http(e: HTTPException):
        app.logger.warning("HTTP %s on %s %s", e.code, request.method, request.path, exc_info=e)
        resp = e.get_response()
        payload = {
            "ok": False,
            "error": e.name,
            "code": e.code,
            "description": e.description,
            "path": request.path,
            "method": request.method,
        }
        resp.data = json.dumps(payload)
        resp.content_type = "application/json"
        return resp

    @app.errorhandler(Exception)
    def handle_uncaught(e: Exception):
        app.logger.exception("Unhandled exception")
        return jsonify(ok=False, error="Internal Server Error"), 500


def setup_signals(app):
    def on_exc(sender, exception, **extra):
        app.logger.exception("Signal caught exception", exc_info=exception)
    got_request_exception.connect(on_exc, app)
