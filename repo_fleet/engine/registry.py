"""Operation registry.

Maps command path keys (``tasks apply``, ``folder rename``) to typed
handlers. The registry is filled once at startup and looked up by exact key;
legacy spellings are registered as aliases of the canonical key.

A handler is ``async (StepContext, options) -> ExecutionOutcome`` where
``options`` is an instance of the operation's pydantic options model.

Example:
    >>> registry = OperationRegistry()
    >>> @registry.operation("audit report", AuditOptions, repository_scoped=False)
    ... async def audit_report(context, options):
    ...     ...
    >>> registry.resolve("audit report").repository_scoped
    False
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.exceptions import InvalidStepOptionsError, UnknownCommandError

log = structlog.get_logger(__name__)

OperationHandler = Callable[[StepContext, Any], Awaitable[ExecutionOutcome]]


@dataclass(frozen=True)
class OperationSpec:
    """A registered operation.

    Attributes:
        key: Canonical command path
        handler: Coroutine function executing the operation
        options_model: Pydantic model validating the step's ``with`` block
        repository_scoped: False for global operations that run once per run
        aliases: Alternative command paths resolving to this operation
    """

    key: str
    handler: OperationHandler
    options_model: type[BaseModel]
    repository_scoped: bool = True
    aliases: tuple[str, ...] = field(default_factory=tuple)

    def parse_options(self, options: dict[str, Any]) -> BaseModel:
        return self.options_model.model_validate(options or {})


class OperationRegistry:
    """Command path to operation lookup table."""

    def __init__(self) -> None:
        self._operations: dict[str, OperationSpec] = {}
        self._aliases: dict[str, str] = {}

    def register(
        self,
        key: str,
        handler: OperationHandler,
        options_model: type[BaseModel],
        repository_scoped: bool = True,
        aliases: tuple[str, ...] = (),
    ) -> OperationSpec:
        """Register ``handler`` under ``key``.

        Raises:
            ValueError: If the key or an alias is already taken
        """
        spec = OperationSpec(key, handler, options_model, repository_scoped, tuple(aliases))
        for name in (key, *aliases):
            if name in self._operations or name in self._aliases:
                raise ValueError(f"command {name!r} is already registered")
        self._operations[key] = spec
        for alias in aliases:
            self._aliases[alias] = key
        return spec

    def operation(
        self,
        key: str,
        options_model: type[BaseModel],
        repository_scoped: bool = True,
        aliases: tuple[str, ...] = (),
    ) -> Callable[[OperationHandler], OperationHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: OperationHandler) -> OperationHandler:
            self.register(key, handler, options_model, repository_scoped, aliases)
            return handler

        return decorator

    def resolve(self, command: str) -> OperationSpec:
        """Look up an operation by canonical key or alias.

        Raises:
            UnknownCommandError: If nothing is registered under ``command``
        """
        key = " ".join(command.split())
        key = self._aliases.get(key, key)
        try:
            return self._operations[key]
        except KeyError:
            raise UnknownCommandError(command) from None

    def validate_options(self, command: str, step_name: str, options: dict[str, Any]) -> BaseModel:
        """Validate a step's options against the operation's model.

        Raises:
            InvalidStepOptionsError: If validation fails
        """
        spec = self.resolve(command)
        try:
            return spec.parse_options(options)
        except ValidationError as e:
            raise InvalidStepOptionsError(step_name, str(e)) from e

    @property
    def keys(self) -> list[str]:
        return sorted(self._operations)

    def __contains__(self, command: str) -> bool:
        key = " ".join(command.split())
        return key in self._operations or key in self._aliases
