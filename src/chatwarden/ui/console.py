"""Interactive console utilities for managing the live moderation bot."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
import os

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from chatwarden.datatypes.action_datatypes import ModerationMode
from chatwarden.datatypes.identity import resolve_identity
from chatwarden.moderation.moderation_engine import ModerationEngine
from chatwarden.services.moderation_queue_service import ModerationQueueService
from chatwarden.transport.local_transport import LocalTransport
from chatwarden.util.logger import get_logger

# Box drawing helpers for aligned console output
BOX_WIDTH = 45

def box_title(title: str) -> list[str]:
    inner_width = BOX_WIDTH - 2
    pad_left = (inner_width - len(title)) // 2
    pad_right = inner_width - len(title) - pad_left
    return [
        f"╔{'═' * inner_width}╗",
        f"║{' ' * pad_left}{title}{' ' * pad_right}║",
        f"╚{'═' * inner_width}╝"
    ]

logger = get_logger("console")

CommandHandler = Callable[["ConsoleControl", list[str]], Awaitable[None]]


@dataclass
class Command:
    """Definition of a console command."""
    name: str
    handler: CommandHandler
    aliases: list[str]
    description: str
    usage: str = ""

    def matches(self, input_cmd: str) -> bool:
        return input_cmd == self.name or input_cmd in self.aliases


def console_print(message: str, style: str = "") -> None:
    """Render text via prompt_toolkit without breaking the active prompt."""
    formatted: FormattedText | str
    if style:
        formatted = FormattedText([(style, message)])
    else:
        formatted = message
    print_formatted_text(formatted)


class ConsoleControl:
    """Console-side handle on the running engine, queue and transport."""

    def __init__(self) -> None:
        self.shutdown_event = asyncio.Event()
        self.engine: ModerationEngine | None = None
        self.queue: ModerationQueueService | None = None
        self.transport: object | None = None

    def attach(self, engine: ModerationEngine, queue: ModerationQueueService, transport: object) -> None:
        self.engine = engine
        self.queue = queue
        self.transport = transport

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def is_shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()


# ==================== Command Handlers ====================

async def cmd_help(control: ConsoleControl, args: list[str]) -> None:
    """Display available commands and their descriptions."""
    for line in box_title("Console Commands Reference"):
        console_print(line, "ansigreen")

    for cmd in COMMANDS:
        aliases_str = f" (aliases: {', '.join(cmd.aliases)})" if cmd.aliases else ""
        console_print(f"\n  {cmd.name}{aliases_str}", "ansicyan")
        console_print(f"    {cmd.description}")
        if cmd.usage:
            console_print(f"    Usage: {cmd.usage}", "ansibrightblack")

    console_print("")


async def cmd_status(control: ConsoleControl, args: list[str]) -> None:
    """Display moderation state."""
    for line in box_title("Bot Status"):
        console_print(line, "ansiblue")

    if control.engine is None:
        console_print("  Engine:     🔴 Not initialized")
        console_print("")
        return

    status = control.engine.status()
    mode = "🟢 Active" if status["mode"] == "active" else "🔴 Inactive"
    storage = "🔴 Memory only" if status["store_degraded"] else "🟢 Persisting"
    console_print(f"  Moderation: {mode}")
    console_print(f"  Groups:     {', '.join(status['target_groups']) or '<none>'}")
    console_print(f"  Threshold:  {status['threshold']}")
    console_print(f"  Records:    {status['warning_records']} ({storage})")
    console_print(f"  Processed:  {status['processed_ids']} message id(s) tracked")
    if control.queue is not None:
        console_print(f"  Queue:      {control.queue.depth} waiting, {control.queue.failed} failed")
    console_print("")


async def cmd_warnings(control: ConsoleControl, args: list[str]) -> None:
    """Show the strike count for a phone number."""
    if control.engine is None:
        console_print("Engine not initialized.", "ansiyellow")
        return
    identity = resolve_identity(args[0], control.engine.settings.default_country_code) if args else None
    if identity is None:
        console_print("Usage: warnings <phoneDigits>", "ansiyellow")
        return
    console_print(f"Warnings for {identity}: {control.engine.store.get(identity)}")


async def cmd_mode(control: ConsoleControl, args: list[str]) -> None:
    """Start or stop moderation from the console."""
    if control.engine is None:
        console_print("Engine not initialized.", "ansiyellow")
        return
    choice = args[0].lower() if args else ""
    if choice not in ("on", "off"):
        console_print("Usage: mode <on|off>", "ansiyellow")
        return
    target = ModerationMode.ACTIVE if choice == "on" else ModerationMode.INACTIVE
    changed = await control.engine.set_mode(target)
    console_print(f"Moderation {target}{'' if changed else ' (unchanged)'}.", "ansigreen")


async def cmd_say(control: ConsoleControl, args: list[str]) -> None:
    """Inject a message through the loopback transport."""
    if not isinstance(control.transport, LocalTransport):
        console_print("'say' is only available with the loopback transport.", "ansiyellow")
        return
    parts = [part.strip() for part in " ".join(args).split("|")]
    if len(parts) != 3 or not all(parts):
        console_print("Usage: say <group> | <sender> | <text>", "ansiyellow")
        return
    group, sender, text = parts
    if group not in control.transport.groups:
        control.transport.add_group(group)
    control.transport.inject(group, sender, text)
    if control.queue is not None:
        await control.queue.join()
    for sent in control.transport.sent[-5:]:
        console_print(f"  -> [{sent.chat}] {sent.text}", "ansibrightblack")


async def cmd_clear(control: ConsoleControl, args: list[str]) -> None:
    """Clear the console screen."""
    os.system('cls' if os.name == 'nt' else 'clear')
    console_print("Console cleared.", "ansigreen")


async def cmd_shutdown(control: ConsoleControl, args: list[str]) -> None:
    """Request graceful bot shutdown."""
    console_print("Shutdown requested.", "ansiyellow")
    control.request_shutdown()


# ==================== Command Registry ====================

COMMANDS: list[Command] = [
    Command(
        name="help",
        handler=cmd_help,
        aliases=["h", "?"],
        description="Show this help message with all available commands",
    ),
    Command(
        name="status",
        handler=cmd_status,
        aliases=["stat", "info"],
        description="Display moderation mode, warning store and queue status",
    ),
    Command(
        name="warnings",
        handler=cmd_warnings,
        aliases=["w"],
        description="Show the warning count for a phone number",
        usage="warnings <phoneDigits>",
    ),
    Command(
        name="mode",
        handler=cmd_mode,
        aliases=[],
        description="Start or stop moderation",
        usage="mode <on|off>",
    ),
    Command(
        name="say",
        handler=cmd_say,
        aliases=[],
        description="Inject a group message (loopback transport only)",
        usage="say <group> | <sender> | <text>",
    ),
    Command(
        name="clear",
        handler=cmd_clear,
        aliases=["cls"],
        description="Clear the console screen",
    ),
    Command(
        name="shutdown",
        handler=cmd_shutdown,
        aliases=["stop", "quit", "exit"],
        description="Gracefully shut down the bot",
    ),
]


# ==================== Command Dispatcher ====================

async def handle_console_command(command: str, control: ConsoleControl) -> None:
    """Interpret and execute a single console command line."""
    if not command.strip():
        return

    parts = command.strip().split()
    cmd_name = parts[0].lower()
    args = parts[1:]

    for cmd in COMMANDS:
        if cmd.matches(cmd_name):
            try:
                await cmd.handler(control, args)
            except Exception as exc:
                logger.exception("Error executing command '%s': %s", cmd_name, exc)
                console_print(f"Error executing command: {exc}", "ansired")
            return

    console_print(f"Unknown command '{cmd_name}'. Type 'help' for available commands.", "ansired")


async def run_console(control: ConsoleControl) -> None:
    """Run the interactive console until shutdown is requested."""
    session = PromptSession("> ")

    for line in box_title("Chatwarden Interactive Console"):
        console_print(line, "ansigreen")
    console_print("Type 'help' for available commands or 'exit' to quit.\n", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
                if line.strip():
                    await handle_console_command(line, control)
            except (EOFError, KeyboardInterrupt):
                console_print("\nShutdown requested by user.", "ansiyellow")
                control.request_shutdown()
                break


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """Run the console alongside the bot, cleaning up automatically."""
    console_task = asyncio.create_task(run_console(control))
    try:
        yield control
    finally:
        control.request_shutdown()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
