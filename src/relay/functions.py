"""Registry of tools the realtime model may call."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from relay.errors import HandlerFailedError, UnknownFunctionError

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class FunctionSpec:
    name: str
    schema: dict[str, Any]
    handler: Handler


class FunctionDispatcher:
    """Maps tool names to handlers and their JSON-schema descriptors.

    Handlers receive the decoded arguments as keyword arguments. They may be
    plain functions (run in a worker thread) or coroutines. The dispatcher
    imposes no timeout; callers that need one wrap :meth:`invoke`.
    """

    def __init__(self) -> None:
        self._functions: dict[str, FunctionSpec] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def add(self, name: str, handler: Handler, schema: dict[str, Any]) -> None:
        if name in self._functions:
            raise ValueError(f"Function {name!r} is already registered.")
        self._functions[name] = FunctionSpec(name=name, schema={**schema, "name": name}, handler=handler)

    def register(self, name: str, schema: dict[str, Any]) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add(name, handler, schema)
            return handler

        return decorator

    def list_functions(self) -> list[tuple[str, dict[str, Any]]]:
        return [(spec.name, spec.schema) for spec in self._functions.values()]

    def schemas(self) -> list[dict[str, Any]]:
        return [spec.schema for spec in self._functions.values()]

    async def invoke(self, name: str, arguments: Mapping[str, Any] | str | None = None) -> Any:
        spec = self._functions.get(name)
        if spec is None:
            raise UnknownFunctionError(name, f"No function named {name!r}.")

        kwargs = _decode_arguments(name, arguments)
        try:
            if inspect.iscoroutinefunction(spec.handler):
                return await spec.handler(**kwargs)
            return await asyncio.to_thread(spec.handler, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Function %s failed", name)
            raise HandlerFailedError(name, f"{type(exc).__name__}: {exc}") from exc


def _decode_arguments(name: str, arguments: Mapping[str, Any] | str | None) -> dict[str, Any]:
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise HandlerFailedError(name, f"Invalid JSON arguments: {exc.msg}") from exc
    if not isinstance(arguments, Mapping):
        raise HandlerFailedError(name, "Arguments must be a JSON object.")
    return dict(arguments)
