"""
Unit tests for the command dispatcher.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import ScriptResponse
from nodeagent.modules.api import Command
from nodeagent.modules.dispatcher import CommandDispatcher
from nodeagent.modules.executor import ProcessExecutor


@pytest.fixture
def dispatcher(reporter, tmp_path):
    return CommandDispatcher(reporter, ProcessExecutor(reporter, scripts_dir=str(tmp_path)))


def indexes_for(transport, command_id):
    """Frame types, in send order, for one command id."""
    return [p["type"] for p in transport.payloads if p.get("commandId") == command_id]


@pytest.mark.script_mock
@pytest.mark.asyncio
async def test_ack_precedes_every_result_frame(dispatcher, transport, script_mocker):
    """The server never sees a result for a command before its ack."""
    script_mocker.register("status.sh", ScriptResponse(stdout='STATUS_JSON:{"cpu":1}\nline\n'))

    task = await dispatcher.dispatch(Command(id="cmd-1", script="status.sh"))
    await task

    assert indexes_for(transport, "cmd-1") == ["ack", "agent-status-update", "log", "status"]
    assert transport.payloads[0] == {
        "type": "ack",
        "commandId": "cmd-1",
        "status": "started",
        "agentId": "agent-test-host",
    }


@pytest.mark.asyncio
async def test_ack_is_sent_before_executor_starts(reporter, transport):
    """The executor is only scheduled once the ack has been written."""
    seen_at_start = []

    async def execute(command):
        seen_at_start.append([p["type"] for p in transport.payloads])

    executor = AsyncMock()
    executor.execute = execute
    dispatcher = CommandDispatcher(reporter, executor)

    task = await dispatcher.dispatch(Command(id="cmd-1", script="status.sh"))
    await task

    assert seen_at_start == [["ack"]]


@pytest.mark.script_mock
@pytest.mark.asyncio
async def test_commands_run_concurrently(dispatcher, transport, script_mocker):
    """Several commands can be in flight; replies are told apart by commandId."""
    script_mocker.register("a.sh", ScriptResponse(stdout="from a\n"))
    script_mocker.register("b.sh", ScriptResponse(stdout="from b\n", returncode=1))

    first = await dispatcher.dispatch(Command(id="cmd-a", script="a.sh"))
    second = await dispatcher.dispatch(Command(id="cmd-b", script="b.sh"))
    assert dispatcher.in_flight == 2

    await asyncio.gather(first, second)

    assert indexes_for(transport, "cmd-a") == ["ack", "log", "status"]
    assert indexes_for(transport, "cmd-b") == ["ack", "log", "status"]
    assert dispatcher.in_flight == 0


@pytest.mark.script_mock
@pytest.mark.asyncio
async def test_spawn_failure_after_ack(dispatcher, transport, script_mocker):
    script_mocker.register("missing.sh", ScriptResponse(spawn_error=PermissionError(13, "Permission denied")))

    task = await dispatcher.dispatch(Command(id="cmd-1", script="missing.sh"))
    await task

    assert indexes_for(transport, "cmd-1") == ["ack", "status"]
    assert transport.payloads[-1]["status"] == "error"
