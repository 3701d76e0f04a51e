from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from pydantic import BaseModel, ValidationError

from .schema import ObjectSchema, SchemaNode, build_model

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    result: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, result: str) -> "ActionResult":
        return cls(ok=True, result=result)

    @classmethod
    def failed(cls, error: str) -> "ActionResult":
        return cls(ok=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "result": self.result}
        return {"ok": False, "error": self.error}


@dataclass
class Action:
    name: str
    description: str
    parameters: SchemaNode = field(default_factory=ObjectSchema)
    execute: Callable[[dict[str, Any]], Awaitable[ActionResult]] | None = None
    _model: type[BaseModel] | None = field(default=None, init=False, repr=False)

    @property
    def model(self) -> type[BaseModel]:
        if self._model is None:
            self._model = build_model(f"{self.name}_args", self.parameters)
        return self._model

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema()


class ActionRegistry(Protocol):
    def register_action(self, action: Action) -> None: ...

    def unregister_action(self, name: str) -> None: ...


class InMemoryActionRegistry:
    """Dict-backed registry; re-registering a name replaces the earlier action."""

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def register_action(self, action: Action) -> None:
        if action.name in self._actions:
            log.debug("Replacing registered action %s", action.name)
        self._actions[action.name] = action

    def unregister_action(self, name: str) -> None:
        self._actions.pop(name, None)

    def get(self, name: str) -> Action | None:
        return self._actions.get(name)

    def names(self) -> list[str]:
        return list(self._actions)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    async def invoke(self, name: str, params: dict[str, Any] | None = None) -> ActionResult:
        action = self._actions.get(name)
        if action is None or action.execute is None:
            return ActionResult.failed(f"Unknown action: {name}")
        params = dict(params or {})
        try:
            model = action.model
        except Exception as exc:  # noqa: BLE001
            log.error("Cannot build argument model for %s: %s", name, exc)
            return ActionResult.failed(f"Cannot validate arguments for {name}: {exc}")
        try:
            model.model_validate(params)
        except ValidationError as exc:
            return ActionResult.failed(f"Invalid arguments for {name}: {exc}")
        # Validation only gates the call; the remote gets the arguments as sent.
        return await action.execute(params)
