"""
tests/test_persistence_orchestrator.py

Pytest tests for full import runs over in-memory record stores.

Coverage
--------
- Created vs. updated classification
- Skip policy: invalid rows are reported and never saved
- Abort policy: first failure rolls back every write
- Preview: classification without saves or lasting mutations
- Skipped rows and after-save hooks
- Persist order across entities, and row failure on any failed save
- Exceptions from identifiers, validators and after-save hooks
- Zero-row runs
- Capped row failure logging
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import pytest

from rowimport.config import ImportSettings
from rowimport.domain.field_rule import FieldRule
from rowimport.domain.import_row import ImportRow
from rowimport.domain.object_adapter import ObjectRecordAdapter
from rowimport.domain.report import ImportStatus, OutcomeReport
from rowimport.domain.run_config import RunConfig
from rowimport.readers.csv_reader import CSVReader
from rowimport.services.import_service import CSVImporter

ORCHESTRATOR_LOGGER = "rowimport.services.persistence_orchestrator"


@dataclass
class User:
    email: str | None = None
    first_name: str | None = None
    age: int | None = None
    team: Any = None

    def validate_record(self) -> dict[str, str] | None:
        if not self.email:
            return {"email": "can't be blank"}
        return None


@dataclass
class Team:
    name: str | None = None


def parse_age(value: str) -> int | None:
    if not value:
        return None
    age = int(value)
    if age > 150:
        raise ValueError("must be at most 150")
    return age


def make_config(**options: Any) -> RunConfig:
    options.setdefault("identifiers", "email")
    return RunConfig.for_model(
        User,
        fields=[
            FieldRule("email", target=lambda value: value.lower(), required=True),
            FieldRule("first_name"),
            FieldRule("age", target=parse_age),
        ],
        **options,
    )


def run_import(config: RunConfig, content: str, adapters: dict[str, ObjectRecordAdapter]) -> OutcomeReport:
    return CSVImporter(config, CSVReader(content=content), adapters=adapters).run()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def john() -> User:
    return User(email="john@example.com", first_name="Johnny")


@pytest.fixture()
def users(john: User) -> ObjectRecordAdapter:
    return ObjectRecordAdapter(User, records=[john])


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassification:
    def test_created_and_updated(self, users: ObjectRecordAdapter, john: User) -> None:
        content = "Email,First Name\nJOHN@example.com,John\njane@example.com,Jane\n"
        report = run_import(make_config(), content, {"default": users})

        assert report.status is ImportStatus.COMPLETED
        assert report.success
        assert [row.line_number for row in report.updated_rows] == [2]
        assert [row.line_number for row in report.created_rows] == [3]
        assert report.message == "Import completed: 1 created, 1 updated"
        assert john.first_name == "John"
        assert [user.email for user in users.records] == ["john@example.com", "jane@example.com"]

    def test_invalid_rows_are_reported_and_skipped_under_skip_policy(self, users: ObjectRecordAdapter) -> None:
        content = "email,first_name,age\nann@example.com,Ann,30\nold@example.com,Old,200\nbob@example.com,Bob,\n"
        report = run_import(make_config(), content, {"default": users})

        assert report.status is ImportStatus.COMPLETED
        assert not report.success
        assert [row.line_number for row in report.created_rows] == [2, 4]
        (failed,) = report.failed_to_create_rows
        assert failed.line_number == 3
        assert failed.errors == {"age": "must be at most 150"}
        assert "old@example.com" not in [user.email for user in users.records]

    def test_failed_update_restores_located_record(self, users: ObjectRecordAdapter, john: User) -> None:
        content = "email,first_name,age\njohn@example.com,Changed,999\n"
        report = run_import(make_config(), content, {"default": users})

        assert [row.line_number for row in report.failed_to_update_rows] == [2]
        assert john.first_name == "Johnny"

    def test_record_validation_failure(self, users: ObjectRecordAdapter) -> None:
        config = make_config()
        config.replace_field("email", target=lambda value: value.strip() or None)
        report = run_import(config, "email,first_name\n ,Nobody\n", {"default": users})

        (failed,) = report.failed_to_create_rows
        assert failed.errors == {"email": "can't be blank"}
        assert len(users.records) == 1

    def test_zero_rows_complete_immediately(self, users: ObjectRecordAdapter) -> None:
        report = run_import(make_config(), "email,first_name\n", {"default": users})

        assert report.status is ImportStatus.COMPLETED
        assert report.success
        assert report.counts() == {
            "created": 0,
            "updated": 0,
            "failed_to_create": 0,
            "failed_to_update": 0,
            "create_skipped": 0,
            "update_skipped": 0,
        }
        assert report.message == "Import completed"
        assert users.save_calls == 0


# ---------------------------------------------------------------------------
# Abort policy
# ---------------------------------------------------------------------------


class TestAbortPolicy:
    def test_first_failure_rolls_back_everything(self, users: ObjectRecordAdapter, john: User) -> None:
        content = (
            "email,first_name,age\n"
            "john@example.com,John,40\n"
            "ann@example.com,Ann,30\n"
            "old@example.com,Old,200\n"
            "bob@example.com,Bob,20\n"
        )
        report = run_import(make_config(when_invalid="abort"), content, {"default": users})

        assert report.status is ImportStatus.ABORTED
        assert not report.success
        assert [row.line_number for row in report.failed_to_create_rows] == [4]
        assert report.valid_rows == []
        assert report.message == "Import aborted"
        assert users.records == [john]
        assert john.first_name == "Johnny"
        assert john.age is None

    def test_abort_on_first_row(self, users: ObjectRecordAdapter) -> None:
        content = "email,age\nann@example.com,300\nbob@example.com,20\n"
        report = run_import(make_config(when_invalid="abort"), content, {"default": users})

        assert report.status is ImportStatus.ABORTED
        assert [row.line_number for row in report.failed_to_create_rows] == [2]
        assert report.created_rows == []
        assert len(users.records) == 1

    def test_after_save_exception_aborts_the_run(self, users: ObjectRecordAdapter, john: User) -> None:
        def explode(user: User) -> None:
            if user.email == "bob@example.com":
                raise RuntimeError("mailer down")

        report = run_import(
            make_config(after_save=[explode]),
            "email\nann@example.com\nbob@example.com\n",
            {"default": users},
        )

        assert report.status is ImportStatus.ABORTED
        (failed,) = report.failed_to_create_rows
        assert failed.line_number == 3
        assert failed.errors == {"_general": "mailer down"}
        assert report.created_rows == []
        assert users.records == [john]


# ---------------------------------------------------------------------------
# Row-level exceptions
# ---------------------------------------------------------------------------


class TestRowExceptions:
    def test_identifier_exception_fails_only_its_row(self, users: ObjectRecordAdapter) -> None:
        def lookup(user: User) -> str:
            if user.email == "bob@example.com":
                raise ValueError("lookup failed")
            return "email"

        report = run_import(
            make_config(identifiers=lookup),
            "email\nann@example.com\nbob@example.com\n",
            {"default": users},
        )

        assert report.status is ImportStatus.COMPLETED
        assert [row.line_number for row in report.created_rows] == [2]
        (failed,) = report.failed_to_create_rows
        assert failed.errors == {"_general": "lookup failed"}
        assert [user.email for user in users.records] == ["john@example.com", "ann@example.com"]

    def test_validator_exception_fails_only_its_row(self, john: User) -> None:
        def check(user: User) -> None:
            if user.first_name == "Crash":
                raise RuntimeError("validator crashed")

        users = ObjectRecordAdapter(User, records=[john], validator=check)
        report = run_import(
            make_config(),
            "email,first_name\nann@example.com,Ann\nbob@example.com,Crash\n",
            {"default": users},
        )

        assert report.status is ImportStatus.COMPLETED
        assert [row.line_number for row in report.created_rows] == [2]
        (failed,) = report.failed_to_create_rows
        assert failed.errors == {"_general": "validator crashed"}
        assert len(users.records) == 2

    def test_abort_policy_still_applies(self, users: ObjectRecordAdapter, john: User) -> None:
        def lookup(user: User) -> str:
            raise ValueError("lookup failed")

        report = run_import(
            make_config(identifiers=lookup, when_invalid="abort"),
            "email\nann@example.com\n",
            {"default": users},
        )

        assert report.status is ImportStatus.ABORTED
        assert [row.line_number for row in report.failed_to_create_rows] == [2]
        assert users.records == [john]


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


class TestPreview:
    def test_preview_classifies_without_saving(self, users: ObjectRecordAdapter, john: User) -> None:
        content = "email,first_name,age\njohn@example.com,John,40\njane@example.com,Jane,30\nold@example.com,Old,200\n"
        importer = CSVImporter(make_config(), CSVReader(content=content), adapters={"default": users})

        report = importer.preview()

        assert report.preview
        assert report.status is ImportStatus.COMPLETED
        assert [row.line_number for row in report.updated_rows] == [2]
        assert [row.line_number for row in report.created_rows] == [3]
        assert [row.line_number for row in report.failed_to_create_rows] == [4]
        assert report.message == "Preview completed: 1 created, 1 updated, 1 failed to create"
        assert users.save_calls == 0
        assert users.records == [john]
        assert john.first_name == "Johnny"
        assert importer.config.preview is False

    def test_preview_then_run_starts_fresh(self, users: ObjectRecordAdapter) -> None:
        importer = CSVImporter(make_config(), CSVReader(content="email\nann@example.com\n"), adapters={"default": users})

        preview = importer.preview()
        report = importer.run()

        assert report is not preview
        assert [row.line_number for row in preview.created_rows] == [2]
        assert [row.line_number for row in report.created_rows] == [2]
        assert report.created_rows[0] is not preview.created_rows[0]
        assert len(users.records) == 2

    def test_preview_flag_in_config(self, users: ObjectRecordAdapter) -> None:
        report = run_import(make_config(preview=True), "email\nann@example.com\n", {"default": users})

        assert report.preview
        assert users.save_calls == 0


# ---------------------------------------------------------------------------
# Skipping and hooks
# ---------------------------------------------------------------------------


class TestSkippingAndHooks:
    def test_skipped_rows_are_not_saved_and_skip_hooks(self, users: ObjectRecordAdapter, john: User) -> None:
        saved: list[tuple[str, dict[str, Any]]] = []

        def skip_staff(user: User, row: ImportRow) -> None:
            if row.csv_attributes["first_name"] == "skip":
                row.skip()

        config = make_config(
            after_build=[skip_staff],
            after_save=[lambda user, attributes: saved.append((user.email, attributes))],
        )
        content = "email,first_name\njohn@example.com,skip\nnew@example.com,skip\nann@example.com,Ann\n"
        report = run_import(config, content, {"default": users})

        assert [row.line_number for row in report.update_skipped_rows] == [2]
        assert [row.line_number for row in report.create_skipped_rows] == [3]
        assert [row.line_number for row in report.created_rows] == [4]
        assert report.success
        assert report.message == "Import completed: 1 created, 1 create skipped, 1 update skipped"
        assert john.first_name == "Johnny"
        assert saved == [("ann@example.com", {"email": "ann@example.com", "first_name": "Ann"})]

    def test_before_import_seeds_datastore(self, users: ObjectRecordAdapter) -> None:
        def seed(datastore: dict[str, Any]) -> None:
            datastore["seen"] = []

        def remember(user: User, row: ImportRow) -> None:
            row.datastore["seen"].append(user.email)
            user.first_name = row.datastore["source"]

        config = make_config(before_import=[seed], after_build=[remember], datastore={"source": "upload"})
        importer = CSVImporter(config, CSVReader(content="email\na@example.com\nb@example.com\n"),
                               adapters={"default": users})
        importer.run()
        importer.run()

        assert [user.first_name for user in users.records[1:]] == ["upload", "upload"]
        assert config.datastore == {"source": "upload"}


# ---------------------------------------------------------------------------
# Multiple entities
# ---------------------------------------------------------------------------


class TestMultiEntity:
    @pytest.fixture()
    def teams(self) -> ObjectRecordAdapter:
        return ObjectRecordAdapter(Team, validator=lambda team: None if team.name else {"name": "can't be blank"})

    @staticmethod
    def _config(**options: Any) -> RunConfig:
        def link(user: User, row: ImportRow) -> None:
            user.team = row.record_for("team")

        return RunConfig(
            models={"user": User, "team": Team},
            fields=[FieldRule("email"), FieldRule("name", aliases="team", entity="team")],
            identifiers={"user": "email", "team": "name"},
            after_build=[link],
            **options,
        )

    def test_saves_in_persist_order_and_passes_row_to_after_save(self, teams: ObjectRecordAdapter) -> None:
        users = ObjectRecordAdapter(User)
        order: list[str] = []
        original_user_save, original_team_save = users.save, teams.save
        users.save = lambda record: order.append("user") or original_user_save(record)  # type: ignore[method-assign]
        teams.save = lambda record: order.append("team") or original_team_save(record)  # type: ignore[method-assign]
        subjects: list[Any] = []

        config = self._config(persist_order=["team"], after_save=[lambda subject: subjects.append(subject)])
        report = run_import(config, "email,team\na@example.com,Red\nb@example.com,Red\n", {"user": users, "team": teams})

        assert report.success
        assert order == ["team", "user", "team", "user"]
        assert len(teams.records) == 1
        assert users.records[0].team is users.records[1].team
        assert all(isinstance(subject, ImportRow) for subject in subjects)

    def test_invalid_secondary_record_fails_the_row(self, teams: ObjectRecordAdapter) -> None:
        users = ObjectRecordAdapter(User)
        config = self._config()
        report = run_import(config, "email,team\na@example.com,\n", {"user": users, "team": teams})

        (failed,) = report.failed_to_create_rows
        assert failed.errors == {"team.team": "can't be blank"}
        assert users.records == []
        assert teams.records == []

    def test_failed_save_fails_the_row_and_abort_rolls_back_earlier_entities(self) -> None:
        class RejectingTeams(ObjectRecordAdapter):
            def save(self, record: Any) -> bool:
                self.save_calls += 1
                return False

        users = ObjectRecordAdapter(User)
        teams = RejectingTeams(Team)
        config = self._config(when_invalid="abort")
        report = run_import(config, "email,team\na@example.com,Red\n", {"user": users, "team": teams})

        assert report.status is ImportStatus.ABORTED
        assert [row.line_number for row in report.failed_to_create_rows] == [2]
        assert teams.save_calls == 1
        assert users.records == []

    def test_abort_rolls_back_secondary_entity_stores(self, teams: ObjectRecordAdapter) -> None:
        users = ObjectRecordAdapter(User)
        config = self._config(persist_order=["team"], when_invalid="abort")
        report = run_import(config, "email,team\na@example.com,Red\n,Blue\n", {"user": users, "team": teams})

        assert report.status is ImportStatus.ABORTED
        assert [row.line_number for row in report.failed_to_create_rows] == [3]
        assert users.records == []
        assert teams.records == []


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestRowErrorLogging:
    def test_row_failures_are_logged_up_to_the_limit(
        self, users: ObjectRecordAdapter, caplog: pytest.LogCaptureFixture
    ) -> None:
        importer = CSVImporter(
            make_config(),
            CSVReader(content="email,age\na@example.com,200\nb@example.com,300\n"),
            adapters={"default": users},
            settings=ImportSettings(max_logged_row_errors=1),
        )
        with caplog.at_level(logging.WARNING, logger=ORCHESTRATOR_LOGGER):
            importer.run()

        messages = [record.getMessage() for record in caplog.records if record.name == ORCHESTRATOR_LOGGER]
        assert messages == [
            "Line 2 failed: {'age': 'must be at most 150'}",
            "Row error log limit reached (1); further row errors are not logged",
        ]

    def test_row_failure_logging_can_be_disabled(
        self, users: ObjectRecordAdapter, caplog: pytest.LogCaptureFixture
    ) -> None:
        importer = CSVImporter(
            make_config(),
            CSVReader(content="email,age\na@example.com,200\n"),
            adapters={"default": users},
            settings=ImportSettings(log_row_errors=False),
        )
        with caplog.at_level(logging.WARNING, logger=ORCHESTRATOR_LOGGER):
            importer.run()

        assert [record for record in caplog.records if record.name == ORCHESTRATOR_LOGGER] == []
