"""
Chat Moderation Bot
===================

A group chat bot that deletes messages containing banned terms, warns the
sender, and removes repeat offenders once they reach a warning threshold.
Authorized operators control it with chat commands.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.
    Resolution order:
    1. CHATWARDEN_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("CHATWARDEN_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from chatwarden.configuration.app_configuration import (
    AppConfig,
    ConfigurationError,
    ModerationSettings,
    resolve_config_path,
)
from chatwarden.moderation.moderation_engine import ModerationEngine
from chatwarden.scheduler.maintenance_scheduler import MaintenanceScheduler, PeriodicTask
from chatwarden.scheduler.polling_fallback import PollingFallback
from chatwarden.services.moderation_queue_service import ModerationQueueService
from chatwarden.transport.base import ChatTransport
from chatwarden.transport.local_transport import LocalTransport
from chatwarden.ui.console import ConsoleControl, console_session
from chatwarden.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass
class Runtime:
    """Every long-lived object of a running bot."""
    settings: ModerationSettings
    transport: ChatTransport
    engine: ModerationEngine
    queue: ModerationQueueService
    schedulers: List[PeriodicTask] = field(default_factory=list)
    polling: PollingFallback | None = None


def load_settings() -> ModerationSettings:
    """Load ``.env`` and the YAML configuration into validated settings.

    Raises
    ------
    ConfigurationError
        If a configured value is malformed.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    return AppConfig(resolve_config_path()).moderation_settings


def build_runtime(settings: ModerationSettings, transport: ChatTransport | None = None) -> Runtime:
    """Wire transport, engine, queue and background tasks together.

    When no transport is supplied the loopback transport is used, with one
    empty group per configured target group.
    """
    if transport is None:
        local = LocalTransport()
        for group_name in settings.target_groups:
            local.add_group(group_name)
        transport = local

    engine = ModerationEngine(settings, transport)
    queue = ModerationQueueService(engine)
    runtime = Runtime(settings=settings, transport=transport, engine=engine, queue=queue)

    runtime.schedulers.append(
        MaintenanceScheduler(engine.store, engine.ledger, settings.maintenance_interval_seconds)
    )
    if settings.poll_interval_seconds > 0:
        runtime.polling = PollingFallback(
            transport,
            engine.ledger,
            queue.enqueue,
            settings.target_groups,
            settings.poll_interval_seconds,
            settings.poll_limit,
        )
        runtime.schedulers.append(runtime.polling)

    transport.on_message(queue.enqueue)

    async def handle_ready() -> None:
        logger.info("Transport ready; moderation %s", engine.mode)
        await engine.on_transport_ready()
        if runtime.polling is not None and not runtime.polling.running:
            runtime.polling.start()

    async def handle_disconnected(reason: str) -> None:
        logger.warning("Transport disconnected: %s", reason)

    transport.on_ready(handle_ready)
    transport.on_disconnected(handle_disconnected)
    return runtime


async def shutdown_runtime(runtime: Runtime) -> None:
    """Drain the queue, stop background tasks, flush the store and close the transport."""
    try:
        await runtime.queue.shutdown()
    except Exception as exc:
        logger.exception("Error during queue shutdown: %s", exc)

    for scheduler in runtime.schedulers:
        try:
            await scheduler.shutdown()
        except Exception as exc:
            logger.exception("Error during scheduler shutdown: %s", exc)

    try:
        await runtime.engine.shutdown()
    except Exception as exc:
        logger.exception("Error during final warnings flush: %s", exc)

    try:
        await runtime.transport.close()
    except Exception as exc:
        logger.exception("Error closing transport: %s", exc)

    logger.info("Shutdown complete.")


async def run_bot_session(runtime: Runtime, control: ConsoleControl) -> int:
    """Run the transport alongside the console, returning an exit code."""
    control.attach(runtime.engine, runtime.queue, runtime.transport)
    exit_code = 0

    try:
        async with console_session(control):
            try:
                await runtime.transport.start()
                await control.shutdown_event.wait()
            except asyncio.CancelledError:
                logger.info("Bot session cancelled; proceeding to shutdown")
            except Exception as exc:
                logger.critical("Transport runtime error: %s", exc)
                exit_code = 1
    finally:
        await shutdown_runtime(runtime)

    return exit_code


async def async_main() -> int:
    """Bootstrap configuration, state and console, returning an exit code."""
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 1

    runtime = build_runtime(settings)
    await runtime.engine.load_state()
    for scheduler in runtime.schedulers:
        if scheduler is not runtime.polling:
            scheduler.start()

    return await run_bot_session(runtime, ConsoleControl())


def main() -> int:
    """Entrypoint that orchestrates the async runtime and returns the process code."""
    logger.info("Starting Chat Moderation Bot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
