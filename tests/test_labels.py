"""Tests for label functions and the label registry."""

from __future__ import annotations

from combo_box import labels
from combo_box.columns import normalize_columns
from combo_box.labels import (
    UNFOUND_RECORD_MARKER,
    build_label_fn,
    default_template,
    item_label_for,
    label_key,
    register_label,
    unregister_label,
)

from conftest import Account, Person


def person(session, first_name):
    return session.query(Person).filter_by(first_name=first_name).one()


def account(session, name):
    return session.query(Account).filter_by(name=name).one()


class TestBuildLabelFn:
    """Tests for build_label_fn."""

    def test_default_template_joins_columns(self, session, translator) -> None:
        columns = normalize_columns(Account, ["name", "number"])
        label = build_label_fn(Account, columns, "views.combo_boxes.x.search_for", translator)

        assert default_template(columns) == "{name}, {number}"
        assert label(account(session, "Acme")) == "Acme, 55-100"

    def test_explicit_interpolation_keys(self, session, translator) -> None:
        columns = normalize_columns(Account, ["name:%X%:account_name", "number:X%:num_0"])
        label = build_label_fn(Account, columns, "views.combo_boxes.x.search_for", translator)

        assert default_template(columns) == "{account_name}, {num_0}"
        assert label(account(session, "Acme")) == "Acme, 55-100"

    def test_translation_template_wins(self, session, translator) -> None:
        columns = normalize_columns(Person, ["first_name", "last_name", "account.city"])
        label = build_label_fn(Person, columns, label_key("people", "search_for_clients"), translator)

        assert label(person(session, "Ann")) == "Lee, Ann (Lyon)"

    def test_absent_association_renders_blank(self, session, translator) -> None:
        columns = normalize_columns(Person, ["first_name", "account.city"])
        label = build_label_fn(Person, columns, "views.combo_boxes.people.search_for", translator)

        assert label(person(session, "Zoe")) == "Zoe, "
        assert label(person(session, "Cara")) == "Cara, "

    def test_dates_are_localized(self, session, translator) -> None:
        columns = normalize_columns(Account, ["name", "opened_on"])
        label = build_label_fn(Account, columns, "views.combo_boxes.accounts.search_for", translator)
        acme = account(session, "Acme")

        assert label(acme) == "Acme, 2020-01-15"
        assert label(acme, "fr") == "Acme, 15/01/2020"

    def test_wrong_type_outside_production(self, session, translator) -> None:
        columns = normalize_columns(Account, ["name"])
        label = build_label_fn(Account, columns, "k", translator, environment="development")

        assert label(person(session, "Ann")) == UNFOUND_RECORD_MARKER
        assert label(None) == UNFOUND_RECORD_MARKER

    def test_wrong_type_in_production(self, session, translator) -> None:
        columns = normalize_columns(Account, ["name"])
        label = build_label_fn(Account, columns, "k", translator, environment="production")

        assert label(person(session, "Ann")) == ""

    def test_unreadable_value_renders_blank(self, translator) -> None:
        class Exploding:
            @property
            def city(self):
                raise RuntimeError("detached")

        columns = normalize_columns(Person, ["first_name", "account.city"])
        label = build_label_fn(Person, columns, "k", translator)
        record = Person(first_name="Eve", last_name="Hart")
        record.__dict__["account"] = Exploding()

        assert label(record) == "Eve, "


class TestRegistry:
    """Tests for the compiled label registry."""

    def test_register_and_lookup(self, session, translator) -> None:
        columns = normalize_columns(Account, ["name"])
        fn = build_label_fn(Account, columns, "k", translator)
        register_label("accounts", "search_for", fn)

        assert labels.get_label_fn("accounts", "search_for") is fn
        assert item_label_for("accounts", "search_for", account(session, "Globex")) == "Globex"

        unregister_label("accounts", "search_for")
        assert labels.get_label_fn("accounts", "search_for") is None

    def test_unknown_endpoint_gives_blank(self, session) -> None:
        assert item_label_for("nope", "search_for", account(session, "Acme")) == ""
