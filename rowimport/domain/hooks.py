"""
rowimport/domain/hooks.py

Callable shapes accepted by an importer (transforms and lifecycle hooks).

User callables may take fewer arguments than the engine can supply. The number
of positional arguments is resolved once, when the callable is registered, so
invoking a hook never inspects it again.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from rowimport.errors import ConfigurationError


class HookKind(str, Enum):
    """
    Registration points for user callables, with their supported arities.
    """

    TRANSFORM = "transform"
    BEFORE_IMPORT = "before_import"
    AFTER_BUILD = "after_build"
    AFTER_SAVE = "after_save"

    @property
    def arities(self) -> tuple[int, ...]:
        return _ALLOWED_ARITIES[self]


_ALLOWED_ARITIES: dict[HookKind, tuple[int, ...]] = {
    HookKind.TRANSFORM: (1, 2, 3),
    HookKind.BEFORE_IMPORT: (0, 1),
    HookKind.AFTER_BUILD: (0, 1, 2),
    HookKind.AFTER_SAVE: (0, 1, 2),
}


def positional_arity(func: Callable[..., Any], allowed: tuple[int, ...]) -> int:
    """
    Count the positional parameters a callable requires.

    `*args` accepts the widest allowed shape. Callables without an inspectable
    signature (some builtins such as `int`) are treated as single-argument.
    """

    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return 1

    required = 0
    optional = 0
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return max(allowed)
        if parameter.kind not in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            continue
        if parameter.default is inspect.Parameter.empty:
            required += 1
        else:
            optional += 1

    if required in allowed:
        return required
    # `def hook(record=None)` still fits a one-argument shape.
    for arity in allowed:
        if required <= arity <= required + optional:
            return arity
    return required


@dataclass(frozen=True, eq=False)
class Hook:
    """
    A user callable bound to the number of arguments it receives.
    """

    func: Callable[..., Any]
    arity: int
    kind: HookKind

    def __call__(self, *args: Any) -> Any:
        return self.func(*args[: self.arity])

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))


def resolve_hook(func: Callable[..., Any] | Hook, kind: HookKind) -> Hook:
    """
    Wrap a callable as a `Hook`, raising `ConfigurationError` for unsupported shapes.
    """

    if isinstance(func, Hook):
        if func.kind is not kind:
            return resolve_hook(func.func, kind)
        return func
    if not callable(func):
        raise ConfigurationError(f"{kind.value} hook must be callable, got {func!r}.")

    arity = positional_arity(func, kind.arities)
    if arity not in kind.arities:
        allowed = ", ".join(str(value) for value in kind.arities)
        raise ConfigurationError(
            f"{kind.value} callable {func!r} takes {arity} positional arguments; "
            f"supported: {allowed}."
        )
    return Hook(func=func, arity=arity, kind=kind)
