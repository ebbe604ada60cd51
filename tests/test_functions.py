from __future__ import annotations

import asyncio

import pytest

from relay.errors import DispatchError, HandlerFailedError, UnknownFunctionError
from relay.functions import FunctionDispatcher
from relay.tools import WEATHER_SCHEMA, build_default_dispatcher

ORDER_SCHEMA = {
    "type": "function",
    "description": "Look up an order.",
    "parameters": {"type": "object", "properties": {"id": {"type": "string"}}},
}


def _run(coro):
    return asyncio.run(coro)


def test_unknown_function_never_invokes_a_handler():
    dispatcher = FunctionDispatcher()
    calls: list[dict] = []
    dispatcher.add("lookupOrders", lambda **kwargs: calls.append(kwargs), ORDER_SCHEMA)

    with pytest.raises(UnknownFunctionError) as excinfo:
        _run(dispatcher.invoke("lookupOrder", {"id": "42"}))

    assert excinfo.value.kind == "UnknownFunction"
    assert isinstance(excinfo.value, DispatchError)
    assert calls == []


def test_async_handler_receives_decoded_json_arguments():
    dispatcher = FunctionDispatcher()

    @dispatcher.register("lookupOrder", ORDER_SCHEMA)
    async def lookup_order(id: str) -> dict:
        return {"id": id, "status": "shipped"}

    result = _run(dispatcher.invoke("lookupOrder", '{"id": "42"}'))
    assert result == {"id": "42", "status": "shipped"}


def test_sync_handler_runs_and_returns_value():
    dispatcher = FunctionDispatcher()
    dispatcher.add("add", lambda a, b: a + b, {"type": "function"})

    assert _run(dispatcher.invoke("add", {"a": 2, "b": 3})) == 5


def test_failing_handler_becomes_handler_failed():
    dispatcher = FunctionDispatcher()

    def explode() -> None:
        raise RuntimeError("backend down")

    dispatcher.add("explode", explode, {"type": "function"})

    with pytest.raises(HandlerFailedError) as excinfo:
        _run(dispatcher.invoke("explode"))

    assert excinfo.value.kind == "HandlerFailed"
    assert "backend down" in excinfo.value.detail
    assert excinfo.value.to_payload()["error"] == "HandlerFailed"


@pytest.mark.parametrize("arguments", ["{not json", "[1, 2]"])
def test_bad_arguments_become_handler_failed(arguments):
    dispatcher = FunctionDispatcher()
    dispatcher.add("noop", lambda **kwargs: None, {"type": "function"})

    with pytest.raises(HandlerFailedError):
        _run(dispatcher.invoke("noop", arguments))


def test_unexpected_keyword_is_a_handler_failure():
    dispatcher = FunctionDispatcher()
    dispatcher.add("noop", lambda: None, {"type": "function"})

    with pytest.raises(HandlerFailedError):
        _run(dispatcher.invoke("noop", {"surprise": True}))


def test_list_functions_exposes_names_and_schemas():
    dispatcher = FunctionDispatcher()
    dispatcher.add("lookupOrder", lambda id: id, ORDER_SCHEMA)

    [(name, schema)] = dispatcher.list_functions()
    assert name == "lookupOrder"
    assert schema["name"] == "lookupOrder"
    assert schema["parameters"] == ORDER_SCHEMA["parameters"]
    assert dispatcher.schemas() == [schema]
    assert "lookupOrder" in dispatcher


def test_duplicate_registration_is_rejected():
    dispatcher = FunctionDispatcher()
    dispatcher.add("noop", lambda: None, {"type": "function"})

    with pytest.raises(ValueError):
        dispatcher.add("noop", lambda: None, {"type": "function"})


def test_default_dispatcher_offers_weather_tool():
    dispatcher = build_default_dispatcher()

    [(name, schema)] = dispatcher.list_functions()
    assert name == "get_weather_from_coords"
    assert schema["parameters"] == WEATHER_SCHEMA["parameters"]
