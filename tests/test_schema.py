"""Tests for mapper metadata helpers."""

from __future__ import annotations

import pytest
from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text, Time

from combo_box.errors import ConfigurationError
from combo_box.schema import (
    classify,
    content_column_names,
    default_column_names,
    get_mapper,
    get_to_one_relationship,
    normalize_column_type,
    primary_key_value,
    resolve_model,
)

from conftest import Account, Base, Person


class TestMetadata:
    """Tests for column and relationship metadata."""

    def test_audit_columns_are_content_but_not_default(self) -> None:
        content = content_column_names(Account)
        defaults = default_column_names(Account)

        assert set(content) - set(defaults) == {"lock_version", "created_at", "updated_at"}

    @pytest.mark.parametrize(
        ("column_type", "kind"),
        [
            (DateTime(), "datetime"),
            (Date(), "date"),
            (Time(), "time"),
            (Boolean(), "boolean"),
            (Integer(), "integer"),
            (Numeric(10, 2), "numeric"),
            (String(5), "text"),
            (Text(), "text"),
            (JSON(), "text"),
        ],
    )
    def test_normalize_column_type(self, column_type, kind) -> None:
        assert normalize_column_type(column_type) == kind

    def test_to_one_relationship(self) -> None:
        assert get_to_one_relationship(Person, "account").mapper.class_ is Account
        with pytest.raises(ConfigurationError, match="collection"):
            get_to_one_relationship(Account, "people")
        with pytest.raises(ConfigurationError, match="no relationship"):
            get_to_one_relationship(Person, "owner")

    def test_get_mapper_rejects_plain_classes(self) -> None:
        with pytest.raises(ConfigurationError, match="not a mapped class"):
            get_mapper(object)

    def test_primary_key_value(self, session) -> None:
        acme = session.query(Account).filter_by(name="Acme").one()

        assert primary_key_value(acme) == acme.id
        assert primary_key_value(Account(name="new", number="0")) is None


class TestModelResolution:
    """Tests for classify and resolve_model."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("order_lines", "OrderLine"),
            ("categories", "Category"),
            ("boxes", "Box"),
            ("accounts", "Account"),
            ("Person", "Person"),
            ("", ""),
        ],
    )
    def test_classify(self, name, expected) -> None:
        assert classify(name) == expected

    def test_resolve_model(self) -> None:
        assert resolve_model(Base, "accounts") is Account
        assert resolve_model(Base, "Person") is Person

    def test_resolve_model_failures(self) -> None:
        with pytest.raises(ConfigurationError, match="Invoice"):
            resolve_model(Base, "invoices")
        with pytest.raises(ConfigurationError, match="declarative base"):
            resolve_model(None, "accounts")
