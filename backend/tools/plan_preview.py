# backend/tools/plan_preview.py
# Print the query plan (and optionally the labels) a combo box would produce.
#
#   python backend/tools/plan_preview.py --model myapp.models:Person \
#       --columns name "number:X%" account.city --search "acme 55"
#
# --execute runs the plan against DATABASE_URL (read from backend/.env).

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys

from sqlalchemy.orm import Session

from combo_box.db import get_engine
from combo_box.errors import ConfigurationError
from combo_box.generator import ComboBoxGenerator, GeneratorConfig
from combo_box.i18n import get_default_translator
from combo_box.logging_setup import start_log

log = logging.getLogger("plan_preview")


def load_model(dotted: str):
    module_name, _, attr = dotted.partition(":")
    if not module_name or not attr:
        raise SystemExit(f"--model must look like package.module:ClassName, got {dotted!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise SystemExit(f"{module_name} has no attribute {attr!r}") from None


def parse_json_option(raw: str | None, name: str):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise SystemExit(f"--{name} is not valid JSON: {e}") from None


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Preview the search plan of a combo box declaration")
    ap.add_argument("--model", required=True, help="Mapped class as package.module:ClassName")
    ap.add_argument("--columns", nargs="*", help="Column items (name, path.name, name:filter:key)")
    ap.add_argument("--search", default="", help="Raw search string")
    ap.add_argument("--conditions", help='JSON: {"field": value} or ["sql ?", param]')
    ap.add_argument("--joins", help='JSON: "account", ["account.city"], {"account": "city"}')
    ap.add_argument("--limit", type=int, default=None)
    ap.add_argument("--locale", default=None)
    ap.add_argument("--execute", action="store_true", help="Run the plan and print labels")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    start_log(app_name="plan_preview", level="DEBUG" if args.verbose else "WARNING", to_file=False)

    model = load_model(args.model)
    options = {
        "columns": args.columns or None,
        "conditions": parse_json_option(args.conditions, "conditions"),
        "joins": parse_json_option(args.joins, "joins"),
        "limit": args.limit,
    }
    try:
        generator = ComboBoxGenerator(
            "preview",
            None,
            model,
            GeneratorConfig.from_options(options),
            translator=get_default_translator(),
            environment="development",
            register=False,
        )
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 2

    plan = generator.build_query(args.search)
    print(f"columns: {', '.join(c.qualified_name for c in generator.columns)}")
    print(f"tokens:  {list(plan.tokens)}")
    print(plan.describe())

    if args.execute:
        with Session(get_engine()) as session:
            for item in generator.items(session, args.search, args.locale):
                print(f"  {item['id']!s:>10}  {item['label']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
