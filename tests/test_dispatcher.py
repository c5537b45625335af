# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import anyio
import pytest

from relaymcp import types
from relaymcp.cancellation import CancellationToken
from relaymcp.dispatcher import Dispatcher
from relaymcp.errors import ErrorTag, ProtocolError, not_found
from relaymcp.messages import CapabilityKind, Request


def _tag(response) -> str:
    assert response.error is not None
    return response.error.data["tag"]


@pytest.mark.anyio
async def test_success_returns_single_response() -> None:
    dispatcher = Dispatcher()

    async def echo(request: Request, _token: CancellationToken):
        return {"echo": request.arguments}

    dispatcher.register("echo", echo)
    response = await dispatcher.handle(Request(id=1, method="echo", params={"x": 1}))
    assert response.id == 1
    assert response.result == {"echo": {"x": 1}}
    assert not dispatcher.pending_ids()


@pytest.mark.anyio
async def test_none_result_becomes_empty_result() -> None:
    dispatcher = Dispatcher()

    async def nothing(_request: Request, _token: CancellationToken):
        return None

    dispatcher.register("nothing", nothing)
    response = await dispatcher.handle(Request(id=1, method="nothing"))
    assert response.result == {}


@pytest.mark.anyio
async def test_unknown_method() -> None:
    response = await Dispatcher().handle(Request(id=9, method="does/not/exist"))
    assert _tag(response) == ErrorTag.METHOD_NOT_FOUND.value
    assert response.error.code == types.METHOD_NOT_FOUND


@pytest.mark.anyio
async def test_capability_gate_runs_before_handler() -> None:
    calls = 0

    async def handler(_request: Request, _token: CancellationToken):
        nonlocal calls
        calls += 1
        return {}

    dispatcher = Dispatcher(gate=lambda kind: kind is not CapabilityKind.PROMPTS)
    dispatcher.register("prompts/list", handler)
    dispatcher.register("tools/list", handler)

    refused = await dispatcher.handle(Request(id=1, method="prompts/list"))
    assert _tag(refused) == ErrorTag.CAPABILITY_NOT_DECLARED.value
    assert refused.error.data["capability"] == "prompts"
    assert calls == 0

    allowed = await dispatcher.handle(Request(id=2, method="tools/list"))
    assert not allowed.is_error
    assert calls == 1


@pytest.mark.anyio
async def test_protocol_errors_keep_their_tag() -> None:
    dispatcher = Dispatcher()

    async def missing(_request: Request, _token: CancellationToken):
        raise not_found("Tool not found: nope", name="nope")

    dispatcher.register("tools/call", missing)
    response = await dispatcher.handle(Request(id=1, method="tools/call", params={"name": "nope"}))
    assert _tag(response) == "NotFound"
    assert response.error.data["name"] == "nope"


@pytest.mark.anyio
async def test_unexpected_exception_is_handler_failure() -> None:
    failures: list[BaseException] = []
    dispatcher = Dispatcher(on_failure=lambda _request, exc: failures.append(exc))

    async def boom(_request: Request, _token: CancellationToken):
        raise RuntimeError("kaboom")

    dispatcher.register("boom", boom)
    response = await dispatcher.handle(Request(id=1, method="boom"))
    assert _tag(response) == ErrorTag.HANDLER_FAILURE.value
    assert response.error.message == "kaboom"
    assert response.error.code == types.INTERNAL_ERROR
    assert len(failures) == 1


@pytest.mark.anyio
async def test_duplicate_in_flight_id_is_rejected_without_touching_original() -> None:
    dispatcher = Dispatcher()
    release = anyio.Event()

    async def slow(_request: Request, _token: CancellationToken):
        await release.wait()
        return {"done": True}

    dispatcher.register("slow", slow)
    responses = {}

    async def run(label: str) -> None:
        responses[label] = await dispatcher.handle(Request(id=42, method="slow"))

    async with anyio.create_task_group() as tg:
        tg.start_soon(run, "first")
        await anyio.wait_all_tasks_blocked()
        await run("second")
        assert dispatcher.is_pending(42)
        release.set()

    assert _tag(responses["second"]) == ErrorTag.INVALID_REQUEST.value
    assert responses["first"].result == {"done": True}


@pytest.mark.anyio
async def test_cancel_flips_token_and_yields_cancelled() -> None:
    dispatcher = Dispatcher()

    async def cooperative(_request: Request, token: CancellationToken):
        await token.sleep(30)
        return {"finished": True}

    dispatcher.register("work", cooperative)
    holder = {}

    async def run() -> None:
        holder["response"] = await dispatcher.handle(Request(id="w", method="work"))

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(run)
            await anyio.wait_all_tasks_blocked()
            assert dispatcher.cancel("w", "user abort") is True

    response = holder["response"]
    assert _tag(response) == ErrorTag.CANCELLED.value
    assert response.error.data["reason"] == "user abort"
    assert dispatcher.cancel("w") is False


@pytest.mark.anyio
async def test_handler_ignoring_token_still_reports_cancelled() -> None:
    dispatcher = Dispatcher()
    release = anyio.Event()
    completed = []

    async def stubborn(_request: Request, _token: CancellationToken):
        await release.wait()
        completed.append(True)
        return {"value": 1}

    dispatcher.register("stubborn", stubborn)
    holder = {}

    async def run() -> None:
        holder["response"] = await dispatcher.handle(Request(id=5, method="stubborn"))

    async with anyio.create_task_group() as tg:
        tg.start_soon(run)
        await anyio.wait_all_tasks_blocked()
        dispatcher.cancel(5)
        release.set()

    assert completed == [True]
    assert _tag(holder["response"]) == ErrorTag.CANCELLED.value


@pytest.mark.anyio
async def test_wait_idle_returns_when_all_finish() -> None:
    dispatcher = Dispatcher()

    async def short(_request: Request, _token: CancellationToken):
        await anyio.sleep(0.01)
        return {}

    dispatcher.register("short", short)
    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            for request_id in range(3):
                tg.start_soon(dispatcher.handle, Request(id=request_id, method="short"))
            await anyio.wait_all_tasks_blocked()
            assert len(dispatcher.pending_ids()) == 3
            await dispatcher.wait_idle()
            assert dispatcher.pending_ids() == []


def test_protocol_error_requires_known_tag() -> None:
    with pytest.raises(ValueError):
        ProtocolError("NotATag", "x")
