"""Shared pytest fixtures: an in-memory SQLite schema, seeded records and a Flask app."""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest
from flask import Blueprint, Flask
from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from combo_box import db, labels
from combo_box.i18n import Translator
from combo_box.main import create_app
from combo_box.routes import search_for


class Base(DeclarativeBase):
    pass


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    number: Mapped[str] = mapped_column(String(20))
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    opened_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    lock_version: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    people: Mapped[List["Person"]] = relationship(back_populates="account")


class Person(Base):
    __tablename__ = "people"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"), nullable=True)

    account: Mapped[Optional[Account]] = relationship(back_populates="people")


class Ghost(Base):
    """Mapped, but its table is never created."""

    __tablename__ = "ghosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50))


CATALOGS: Dict[str, dict] = {
    "en": {
        "date": {"formats": {"default": "%Y-%m-%d"}},
        "time": {"formats": {"default": "%Y-%m-%d %H:%M"}},
        "views": {
            "combo_boxes": {
                "people": {
                    "search_for_clients": "{last_name}, {first_name} ({city})",
                },
            },
        },
    },
    "fr": {
        "date": {"formats": {"default": "%d/%m/%Y"}},
        "time": {"formats": {"default": "%d/%m/%Y %Hh%M"}},
    },
}


@pytest.fixture(autouse=True)
def app_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config loader at a throwaway appconfig.json for every test."""
    config_dir = tmp_path / "config"
    config_dir.mkdir(exist_ok=True)
    path = config_dir / "appconfig.json"
    path.write_text(json.dumps({"environment": "test", "combo_box_limit": 80}), encoding="utf-8")
    monkeypatch.setenv("COMBO_BOX_CONFIG", str(path))
    monkeypatch.delenv("COMBO_BOX_ENV", raising=False)
    monkeypatch.delenv("FLASK_ENV", raising=False)
    return path


@pytest.fixture(autouse=True)
def clean_label_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(labels, "_REGISTRY", {})


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng, tables=[Account.__table__, Person.__table__])
    yield eng
    db.dispose_engine()
    eng.dispose()


@pytest.fixture
def seeded(engine: Engine) -> Dict[str, int]:
    """Three accounts and four people; Zoe has no account."""
    with Session(engine) as s:
        acme = Account(name="Acme", number="55-100", city="Lyon", opened_on=date(2020, 1, 15))
        globex = Account(name="Globex", number="77-200", city="Paris", opened_on=date(2019, 6, 1))
        initech = Account(name="Initech", number="55-300", city=None, opened_on=None)
        s.add_all([acme, globex, initech])
        s.flush()
        s.add_all(
            [
                Person(first_name="Ann", last_name="Lee", active=True, account=acme),
                Person(first_name="Bob", last_name="Stone", active=False, account=globex),
                Person(first_name="Cara", last_name="Lee", active=True, account=initech),
                Person(first_name="Zoe", last_name="Annis", active=True, account=None),
            ]
        )
        s.commit()
        return {"acme": acme.id, "globex": globex.id, "initech": initech.id}


@pytest.fixture
def session(engine: Engine, seeded: Dict[str, int]) -> Generator[Session, None, None]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def translator() -> Translator:
    return Translator(default_locale="en", catalogs=CATALOGS)


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "templates"
    folder.mkdir()
    (folder / "_person.html").write_text(
        "<em>{{ record.first_name }}</em> {{ content }} [{{ search }}]", encoding="utf-8"
    )
    return folder


@pytest.fixture
def app(engine: Engine, seeded: Dict[str, int], translator: Translator, template_dir: Path) -> Flask:
    people = Blueprint("people", __name__)
    search_for(
        people,
        "clients",
        Person,
        translator=translator,
        columns=["first_name", "last_name", "account.city"],
    )
    search_for(
        people,
        "cards",
        Person,
        translator=translator,
        columns=["first_name", "last_name"],
        partial="_person.html",
    )
    search_for(
        people,
        "broken",
        Person,
        translator=translator,
        columns=["first_name"],
        conditions="no_such_column = 1",
    )

    accounts = Blueprint("accounts", __name__, url_prefix="/accounts")
    search_for(accounts, base=Base, translator=translator, columns=["name", "opened_on"])
    search_for(accounts, "numbers", base=Base, model="accounts", translator=translator, columns=["number:X%"])

    flask_app = create_app([people, accounts], engine=engine, template_folder=str(template_dir),
                           configure_logging=False)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app: Flask):
    return app.test_client()
