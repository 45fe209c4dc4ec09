"""
tests/test_sqlalchemy_adapter.py

Integration tests for SQLAlchemyRecordAdapter on an in-memory SQLite database.

Coverage
--------
- Find-or-create through mapped classes and a session
- Column validation (blank and length) and database errors on save
- Abort and preview leave the database untouched
- Adapter resolution for mapped classes
"""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import String, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from rowimport.domain.field_rule import FieldRule
from rowimport.domain.report import ImportStatus
from rowimport.dsl import Importer
from rowimport.errors import ConfigurationError
from rowimport.services.import_service import resolve_adapter
from rowimport_db.adapter import SQLAlchemyRecordAdapter, is_mapped_class
from rowimport_db.session import create_db_engine, create_session_factory


class Base(DeclarativeBase):
    pass


class Person(Base):
    __tablename__ = "people"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(40), unique=True)
    name: Mapped[str | None] = mapped_column(String(10))
    status: Mapped[str] = mapped_column(String(10), default="active")


class PersonImporter(Importer):
    model = Person
    fields = (
        FieldRule("email", target=lambda value: value.lower() or None, required=True),
        FieldRule("name"),
    )
    identifiers = "email"


class AppendOnlyPersonImporter(PersonImporter):
    identifiers = None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def session() -> Iterator[Session]:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    db = create_session_factory(engine)()
    db.add(Person(email="kim@example.com", name="Kim"))
    db.commit()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


def count_people(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(Person))


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


class TestImportIntoDatabase:
    def test_created_and_updated(self, session: Session) -> None:
        report = PersonImporter(
            content="Email,Name\nKIM@example.com,Kimberly\nlee@example.com,Lee\n",
            session=session,
        ).run()
        session.commit()

        assert report.status is ImportStatus.COMPLETED
        assert [row.line_number for row in report.updated_rows] == [2]
        assert [row.line_number for row in report.created_rows] == [3]
        names = dict(session.execute(select(Person.email, Person.name)).all())
        assert names == {"kim@example.com": "Kimberly", "lee@example.com": "Lee"}

    def test_column_validation_errors(self, session: Session) -> None:
        report = PersonImporter(
            content="Email,Name\n,Nobody\nlong@example.com,Bartholomew Long\n",
            session=session,
        ).run()

        blank, too_long = report.failed_to_create_rows
        assert blank.errors == {"Email": "can't be blank"}
        assert too_long.errors == {"Name": "is too long (maximum is 10 characters)"}
        assert count_people(session) == 1

    def test_database_error_fails_only_its_row(self, session: Session) -> None:
        report = AppendOnlyPersonImporter(
            content="Email,Name\nnew@example.com,New\nkim@example.com,Clone\n",
            session=session,
        ).run()

        assert [row.line_number for row in report.created_rows] == [2]
        (failed,) = report.failed_to_create_rows
        assert "UNIQUE" in failed.errors["_general"]
        assert count_people(session) == 2

    def test_abort_rolls_back_every_write(self, session: Session) -> None:
        report = PersonImporter(
            content="Email,Name\nkim@example.com,Kimberly\nlee@example.com,Lee\n,Nobody\n",
            session=session,
            when_invalid="abort",
        ).run()

        assert report.status is ImportStatus.ABORTED
        assert count_people(session) == 1
        assert session.scalar(select(Person.name).where(Person.email == "kim@example.com")) == "Kim"

    def test_preview_writes_nothing(self, session: Session) -> None:
        report = PersonImporter(
            content="Email,Name\nkim@example.com,Kimberly\nlee@example.com,Lee\n",
            session=session,
        ).preview()

        assert [row.line_number for row in report.updated_rows] == [2]
        assert [row.line_number for row in report.created_rows] == [3]
        assert count_people(session) == 1
        kim = session.scalars(select(Person).where(Person.email == "kim@example.com")).one()
        assert kim.name == "Kim"

    def test_failed_update_is_not_flushed_later(self, session: Session) -> None:
        PersonImporter(
            content="Email,Name\nkim@example.com,Way Too Long Name\n",
            session=session,
        ).run()
        session.commit()

        assert session.scalar(select(Person.name).where(Person.email == "kim@example.com")) == "Kim"


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class TestAdapter:
    def test_attribute_access_is_limited_to_mapped_attributes(self, session: Session) -> None:
        adapter = SQLAlchemyRecordAdapter(Person, session)
        person = adapter.new()

        assert adapter.has_attribute(person, "email")
        assert not adapter.has_attribute(person, "nickname")
        assert not adapter.is_persisted(person)

    def test_columns_with_defaults_are_not_blank(self, session: Session) -> None:
        adapter = SQLAlchemyRecordAdapter(Person, session)

        assert adapter.validate(Person(email="x@example.com"))
        assert adapter.errors(Person(email="x@example.com")) == []

    def test_extra_validator(self, session: Session) -> None:
        adapter = SQLAlchemyRecordAdapter(
            Person,
            session,
            validator=lambda person: {"email": "must be a company address"}
            if not person.email.endswith("@example.com") else None,
        )
        person = Person(email="x@gmail.test")

        assert not adapter.validate(person)
        assert adapter.errors(person) == [("email", "must be a company address")]
        assert not adapter.save(person)

    def test_transaction_commits_when_asked(self, session: Session) -> None:
        adapter = SQLAlchemyRecordAdapter(Person, session, commit=True)
        with adapter.transaction():
            assert adapter.save(Person(email="committed@example.com"))
        session.rollback()

        assert count_people(session) == 2

    def test_find_by(self, session: Session) -> None:
        adapter = SQLAlchemyRecordAdapter(Person, session)

        kim = adapter.find_by({"email": "kim@example.com"})
        assert kim is not None and adapter.is_persisted(kim)
        assert adapter.find_by({"email": "nobody@example.com"}) is None

    def test_resolve_adapter(self, session: Session) -> None:
        assert is_mapped_class(Person)
        assert not is_mapped_class(dict)
        assert isinstance(resolve_adapter(Person, session=session), SQLAlchemyRecordAdapter)
        with pytest.raises(ConfigurationError):
            resolve_adapter(Person)
        with pytest.raises(ConfigurationError):
            resolve_adapter(dict, session=session)
