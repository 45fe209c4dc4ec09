"""
rowimport/dsl.py

Declarative importer classes.

Example:

    class UserImporter(Importer):
        model = User
        fields = (
            FieldRule("email", target=lambda email: email.lower(), required=True),
            FieldRule("first_name", aliases=[FieldKey("first_name"), "prénom"]),
        )
        identifiers = ("email",)
        when_invalid = "abort"

        @after_build
        def tag_origin(self, user, row):
            user.origin = row.datastore.get("origin", "csv")

    report = UserImporter(path="users.csv", session=session, origin="signup").run()

Class-level declarations are turned into one `RunConfig` per subclass when the
class is created. Each instance works on its own copy, so runtime overrides
never leak into the class or into other instances.
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Mapping, Sequence

from sqlalchemy.orm import Session

from rowimport.config import get_import_settings
from rowimport.domain.field_rule import FieldRule
from rowimport.domain.hooks import HookKind
from rowimport.domain.import_row import ImportRow
from rowimport.domain.record_adapter import RecordAdapter
from rowimport.domain.report import OutcomeReport
from rowimport.domain.run_config import DEFAULT_ENTITY, RunConfig
from rowimport.errors import ConfigurationError
from rowimport.mappers.header_mapping import HeaderMapping
from rowimport.readers.csv_reader import USE_SETTINGS, CSVReader
from rowimport.services.import_service import CSVImporter, TabularSource

_HOOK_ATTRIBUTE = "__rowimport_hook__"


def _mark(kind: HookKind) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, _HOOK_ATTRIBUTE, kind)
        return func

    return decorator


before_import = _mark(HookKind.BEFORE_IMPORT)
before_import.__doc__ = "Mark a method `(self[, datastore])` to run once before rows are built."

after_build = _mark(HookKind.AFTER_BUILD)
after_build.__doc__ = "Mark a method `(self[, record[, row]])` to run once per built row."

after_save = _mark(HookKind.AFTER_SAVE)
after_save.__doc__ = "Mark a method `(self[, record[, csv_attributes]])` to run after each saved row."


class Importer:
    """
    Base class for declarative importers.

    Declare `model` (single target) or `models` (ordered `{entity: target}`),
    `fields`, `identifiers` / `model_identifiers`, `when_invalid`,
    `persist_order`, and hooks either as `*_hooks` tuples of plain callables or
    as methods decorated with `@before_import`, `@after_build`, `@after_save`.
    """

    model: ClassVar[Any] = None
    models: ClassVar[Mapping[str, Any] | None] = None
    fields: ClassVar[Sequence[FieldRule]] = ()
    identifiers: ClassVar[Any] = None
    model_identifiers: ClassVar[Mapping[str, Any]] = {}
    when_invalid: ClassVar[str | None] = None
    persist_order: ClassVar[Sequence[str] | None] = None
    datastore: ClassVar[Mapping[str, Any]] = {}
    before_import_hooks: ClassVar[Sequence[Callable[..., Any]]] = ()
    after_build_hooks: ClassVar[Sequence[Callable[..., Any]]] = ()
    after_save_hooks: ClassVar[Sequence[Callable[..., Any]]] = ()

    _config: ClassVar[RunConfig | None] = None
    _hook_methods: ClassVar[tuple[tuple[HookKind, str], ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._hook_methods = cls._collect_hook_methods()
        cls._config = cls._build_config()

    @classmethod
    def _collect_hook_methods(cls) -> tuple[tuple[HookKind, str], ...]:
        collected: list[tuple[HookKind, str]] = []
        seen: set[str] = set()
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                kind = getattr(value, _HOOK_ATTRIBUTE, None)
                if kind is None or name in seen:
                    continue
                seen.add(name)
                collected.append((kind, name))
        return tuple(collected)

    @classmethod
    def _build_config(cls) -> RunConfig | None:
        if cls.models:
            models = dict(cls.models)
        elif cls.model is not None:
            models = {DEFAULT_ENTITY: cls.model}
        else:
            return None

        identifiers: dict[str, Any] = dict(cls.model_identifiers)
        if cls.identifiers is not None:
            identifiers[next(iter(models))] = cls.identifiers

        config = RunConfig(
            models=models,
            fields=list(cls.fields),
            identifiers=identifiers,
            when_invalid=cls.when_invalid or get_import_settings().when_invalid,
            persist_order=list(cls.persist_order) if cls.persist_order is not None else None,
            datastore=dict(cls.datastore),
            before_import=list(cls.before_import_hooks),
            after_build=list(cls.after_build_hooks),
            after_save=list(cls.after_save_hooks),
        )
        config.validate()
        return config

    @classmethod
    def config(cls) -> RunConfig:
        """
        Copy of the class-level configuration.
        """

        if cls._config is None:
            raise ConfigurationError(f"{cls.__name__} declares no model.")
        return cls._config.copy()

    def __init__(
        self,
        *,
        content: str | bytes | None = None,
        file: Any = None,
        path: Any = None,
        quote_char: str | None = USE_SETTINGS,
        encoding: str | None = None,
        source: TabularSource | None = None,
        session: Session | None = None,
        adapters: Mapping[str, RecordAdapter] | None = None,
        configure: Callable[[RunConfig], Any] | None = None,
        when_invalid: str | None = None,
        preview: bool | None = None,
        identifiers: Any = None,
        persist_order: Sequence[str] | None = None,
        **datastore: Any,
    ) -> None:
        config = type(self).config()
        for kind, name in self._hook_methods:
            bound = getattr(self, name)
            if kind is HookKind.BEFORE_IMPORT:
                config.add_before_import(bound)
            elif kind is HookKind.AFTER_BUILD:
                config.add_after_build(bound)
            else:
                config.add_after_save(bound)

        if when_invalid is not None:
            config.set_when_invalid(when_invalid)
        if preview is not None:
            config.preview = preview
        if identifiers is not None:
            config.set_identifier(identifiers)
        if persist_order is not None:
            config.persist_order = list(persist_order)
        config.datastore.update(datastore)
        if configure is not None:
            configure(config)

        if source is None:
            source = CSVReader(
                content=content,
                file=file,
                path=path,
                quote_char=quote_char,
                encoding=encoding,
            )
        self._importer = CSVImporter(config, source, session=session, adapters=adapters)

    @property
    def run_config(self) -> RunConfig:
        return self._importer.config

    @property
    def header(self) -> HeaderMapping:
        return self._importer.header

    @property
    def report(self) -> OutcomeReport:
        return self._importer.report

    def rows(self) -> list[ImportRow]:
        return self._importer.rows()

    def is_valid_header(self) -> bool:
        return self._importer.is_valid_header()

    def run(self) -> OutcomeReport:
        return self._importer.run()

    def preview(self) -> OutcomeReport:
        return self._importer.preview()
