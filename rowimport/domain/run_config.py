"""
rowimport/domain/run_config.py

Run configuration shared by the resolver, validator and orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence, Union

from rowimport.domain.field_rule import FieldRule
from rowimport.domain.hooks import Hook, HookKind, resolve_hook
from rowimport.errors import ConfigurationError

# Entity key used when a run has a single, unnamed target.
DEFAULT_ENTITY = "default"

IdentifierStrategy = Union[str, Sequence[str], Callable[[Any], Any]]


class FailurePolicy(str, Enum):
    SKIP = "skip"
    ABORT = "abort"


def _coerce_policy(value: FailurePolicy | str) -> FailurePolicy:
    try:
        return FailurePolicy(value)
    except ValueError as exc:
        raise ConfigurationError(
            f"when_invalid must be 'skip' or 'abort', got {value!r}."
        ) from exc


def _coerce_identifier(strategy: Any) -> IdentifierStrategy | None:
    if strategy is None or callable(strategy):
        return strategy
    if isinstance(strategy, str):
        return (strategy,)
    if isinstance(strategy, (list, tuple)) and all(isinstance(item, str) for item in strategy):
        return tuple(strategy)
    raise ConfigurationError(
        f"Identifier must be an attribute name, a list of names or a callable, got {strategy!r}."
    )


@dataclass
class RunConfig:
    """
    Everything an importer declares about one kind of import.

    `models` is ordered: its first key is the primary entity, whose adapter
    provides the transaction scope and whose record decides create vs. update.
    """

    models: dict[str, Any] = field(default_factory=dict)
    fields: list[FieldRule] = field(default_factory=list)
    identifiers: dict[str, IdentifierStrategy] = field(default_factory=dict)
    when_invalid: FailurePolicy = FailurePolicy.SKIP
    preview: bool = False
    before_import: list[Hook] = field(default_factory=list)
    after_build: list[Hook] = field(default_factory=list)
    after_save: list[Hook] = field(default_factory=list)
    persist_order: list[str] | None = None
    datastore: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.models = dict(self.models)
        self.fields = list(self.fields)
        self.identifiers = {
            key: _coerce_identifier(value)
            for key, value in dict(self.identifiers).items()
            if value is not None
        }
        self.when_invalid = _coerce_policy(self.when_invalid)
        self.before_import = [resolve_hook(hook, HookKind.BEFORE_IMPORT) for hook in self.before_import]
        self.after_build = [resolve_hook(hook, HookKind.AFTER_BUILD) for hook in self.after_build]
        self.after_save = [resolve_hook(hook, HookKind.AFTER_SAVE) for hook in self.after_save]
        if self.persist_order is not None:
            self.persist_order = list(self.persist_order)
        self.datastore = dict(self.datastore)

    @classmethod
    def for_model(cls, model: Any, **options: Any) -> RunConfig:
        """
        Build a single-entity configuration.
        """

        identifiers = options.pop("identifiers", None)
        config = cls(models={DEFAULT_ENTITY: model}, **options)
        if identifiers is not None:
            config.set_identifier(identifiers)
        return config

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    @property
    def entity_keys(self) -> list[str]:
        return list(self.models)

    @property
    def primary_entity(self) -> str:
        if not self.models:
            raise ConfigurationError("No target model declared for this importer.")
        return next(iter(self.models))

    @property
    def is_multi_entity(self) -> bool:
        return len(self.models) > 1

    def resolved_persist_order(self) -> list[str]:
        """
        Entities in save order: the declared order first, then any remaining
        entities in declaration order.
        """

        order = list(self.persist_order or [])
        order.extend(key for key in self.models if key not in order)
        return order

    # ------------------------------------------------------------------
    # Declaration helpers
    # ------------------------------------------------------------------

    def replace_field(self, name: str, **changes: Any) -> FieldRule:
        """
        Swap the named rule for a modified copy, keeping its position.
        """

        for index, rule in enumerate(self.fields):
            if rule.name == name:
                updated = rule.with_options(**changes)
                self.fields[index] = updated
                return updated
        raise ConfigurationError(f"Unknown field {name!r}.")

    def set_identifier(self, strategy: Any, entity: str | None = None) -> None:
        key = entity or self.primary_entity
        coerced = _coerce_identifier(strategy)
        if coerced is None:
            self.identifiers.pop(key, None)
        else:
            self.identifiers[key] = coerced

    def set_when_invalid(self, value: FailurePolicy | str) -> None:
        self.when_invalid = _coerce_policy(value)

    def add_before_import(self, func: Callable[..., Any]) -> Hook:
        hook = resolve_hook(func, HookKind.BEFORE_IMPORT)
        self.before_import.append(hook)
        return hook

    def add_after_build(self, func: Callable[..., Any]) -> Hook:
        hook = resolve_hook(func, HookKind.AFTER_BUILD)
        self.after_build.append(hook)
        return hook

    def add_after_save(self, func: Callable[..., Any]) -> Hook:
        hook = resolve_hook(func, HookKind.AFTER_SAVE)
        self.after_save.append(hook)
        return hook

    def copy(self) -> RunConfig:
        """
        Return an instance-level copy whose lists and mappings are independent.
        """

        return RunConfig(
            models=dict(self.models),
            fields=list(self.fields),
            identifiers=dict(self.identifiers),
            when_invalid=self.when_invalid,
            preview=self.preview,
            before_import=list(self.before_import),
            after_build=list(self.after_build),
            after_save=list(self.after_save),
            persist_order=list(self.persist_order) if self.persist_order is not None else None,
            datastore=dict(self.datastore),
        )

    def validate(self) -> None:
        """
        Raise `ConfigurationError` when declarations reference unknown entities.
        """

        primary = self.primary_entity
        known = set(self.models)
        for rule in self.fields:
            if rule.entity_key(primary) not in known:
                raise ConfigurationError(
                    f"Field {rule.name!r} belongs to unknown entity {rule.entity!r}."
                )
        for key in self.identifiers:
            if key not in known:
                raise ConfigurationError(f"Identifier declared for unknown entity {key!r}.")
        for key in self.persist_order or []:
            if key not in known:
                raise ConfigurationError(f"persist_order references unknown entity {key!r}.")
        if self.persist_order is not None and len(set(self.persist_order)) != len(self.persist_order):
            raise ConfigurationError("persist_order lists an entity more than once.")

