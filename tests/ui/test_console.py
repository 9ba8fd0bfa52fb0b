"""Tests for the operator console commands."""

import pytest
from unittest.mock import patch

from chatwarden.datatypes.identity import Identity
from chatwarden.moderation.moderation_engine import ModerationEngine
from chatwarden.services.moderation_queue_service import ModerationQueueService
from chatwarden.ui import console
from chatwarden.ui.console import COMMANDS, ConsoleControl, handle_console_command


GROUP = "6-3 of '25"


@pytest.fixture()
def printed():
    lines = []
    with patch.object(console, "console_print", side_effect=lambda message, style="": lines.append(message)):
        yield lines


async def attached_control(settings, transport) -> ConsoleControl:
    engine = ModerationEngine(settings, transport)
    await engine.load_state()
    queue = ModerationQueueService(engine)
    transport.on_message(queue.enqueue)
    control = ConsoleControl()
    control.attach(engine, queue, transport)
    return control


def test_command_names_and_aliases_are_unique():
    names = [name for cmd in COMMANDS for name in [cmd.name, *cmd.aliases]]
    assert len(names) == len(set(names))


@pytest.mark.asyncio
async def test_unknown_command(printed):
    await handle_console_command("frobnicate", ConsoleControl())
    assert any("Unknown command 'frobnicate'" in line for line in printed)


@pytest.mark.asyncio
async def test_shutdown_command_sets_event(printed):
    control = ConsoleControl()
    await handle_console_command("exit", control)
    assert control.is_shutdown_requested()


@pytest.mark.asyncio
async def test_status_without_engine(printed):
    await handle_console_command("status", ConsoleControl())
    assert any("Not initialized" in line for line in printed)


@pytest.mark.asyncio
async def test_say_runs_message_through_engine(printed, settings, transport):
    control = await attached_control(settings, transport)

    await handle_console_command("say 6-3 of '25 | 6591234567@c.us | what the hell", control)

    assert control.engine.store.get(Identity("6591234567")) == 1
    assert any("Warning 1/3" in line for line in printed)
    await control.queue.shutdown()


@pytest.mark.asyncio
async def test_say_rejects_malformed_input(printed, settings, transport):
    control = await attached_control(settings, transport)

    await handle_console_command("say only-a-group", control)

    assert any("Usage: say" in line for line in printed)
    assert transport.sent == []


@pytest.mark.asyncio
async def test_warnings_and_mode_commands(printed, settings, transport):
    control = await attached_control(settings, transport)
    control.engine.store.increment(Identity("6591234567"))

    await handle_console_command("warnings 91234567", control)
    await handle_console_command("mode off", control)

    assert "Warnings for 6591234567: 1" in printed
    assert not control.engine.active


@pytest.mark.asyncio
async def test_status_reports_engine_state(printed, settings, transport):
    control = await attached_control(settings, transport)

    await handle_console_command("stat", control)

    assert any("🟢 Active" in line for line in printed)
    assert any(GROUP in line for line in printed)
