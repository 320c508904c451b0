from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv
from flask import Blueprint, Flask, jsonify
from flask_cors import CORS
from sqlalchemy.engine import Engine

from . import db
from .config_loader import initialize_app_config
from .errors import register_error_handlers
from .logging_setup import start_log
from .labels import item_label_for

# backend/.env is optional
DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(DOTENV_PATH, override=False)

log = logging.getLogger(__name__)


def create_app(
    blueprints: Iterable[Blueprint] = (),
    *,
    engine: Optional[Engine] = None,
    template_folder: Optional[str] = None,
    configure_logging: bool = True,
) -> Flask:
    """
    Build the Flask application serving the given combo box blueprints.

    Blueprints must already carry their ``search_for`` declarations. Passing
    ``engine`` installs it as the process-wide engine used by the views.
    ``configure_logging=False`` leaves the root logger alone (tests, embedding
    applications that configure logging themselves).
    """
    app = Flask(__name__, template_folder=template_folder or "templates")

    # autocomplete widgets may be served from another origin
    CORS(app)

    initialize_app_config(app)
    development = app.config["COMBO_BOX_ENV"] == "development"
    if configure_logging:
        start_log(app_name="combo_box", level=logging.DEBUG if development else None)
    if development:
        log.setLevel(logging.DEBUG)
        app.logger.setLevel(logging.DEBUG)
        log.debug("Start of logger debug level")

    if engine is not None:
        db.configure_engine(engine)

    app.jinja_env.globals["item_label_for"] = item_label_for

    for bp in blueprints:
        app.register_blueprint(bp)
        log.info("Registered combo box blueprint %s", bp.name)

    register_error_handlers(app)

    @app.get("/api/health")
    def health():
        """Database reachability probe for monitoring."""
        return jsonify(ok=db.ping_db())

    @app.teardown_appcontext
    def db_cleanup(_exc):
        db.db_cleanup(_exc)

    log.info("combo_box app created env=%s pid=%s", app.config["COMBO_BOX_ENV"], os.getpid())
    return app
