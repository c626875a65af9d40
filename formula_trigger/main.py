"""Entry point: wires the webhook server, event bus and Monday client."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from typing import Any, Awaitable, Callable

import click

from formula_trigger import __version__
from formula_trigger.config import Settings, load_settings
from formula_trigger.core.bus import EventBus, EventType
from formula_trigger.core.mapper import map_to_status, parse_value
from formula_trigger.core.processor import StatusProcessor
from formula_trigger.errors import FormulaTriggerError
from formula_trigger.monday.client import MondayClient
from formula_trigger.utils.logging import get_logger, setup_logging
from formula_trigger.webhooks.server import WebhookServer

log = get_logger(__name__)


class FormulaTrigger:
    """Main application orchestrator."""

    def __init__(self, settings: Settings, monday: MondayClient | None = None) -> None:
        self.settings = settings
        self.bus = EventBus(max_queue_size=settings.webhook.queue_size)
        self.monday = monday or MondayClient(
            settings.monday, settings.retry, settings.logging
        )
        self.processor = StatusProcessor(settings, self.monday)
        self.server = WebhookServer(settings, self.bus)

    async def start(self) -> None:
        log.info(
            "formula_trigger_starting",
            version=__version__,
            status_column_id=self.settings.webhook.status_column_id,
            rules=len(self.settings.status_rules),
        )
        if not self.settings.monday.api_token:
            log.warning("monday_api_token_missing", msg="Status updates will be rejected by the API.")

        self.bus.subscribe(EventType.FORMULA_CHANGED, self.processor.handle)
        await self.bus.start()
        await self.server.start()
        log.info("formula_trigger_ready")

    async def stop(self) -> None:
        log.info("formula_trigger_stopping")
        await self.server.stop()
        await self.bus.stop()
        await self.monday.close()
        log.info("formula_trigger_stopped")


async def run(settings: Settings) -> None:
    app = FormulaTrigger(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    await app.start()

    try:
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


async def _with_client(
    settings: Settings, call: Callable[[MondayClient], Awaitable[Any]]
) -> Any:
    client = MondayClient(settings.monday, settings.retry, settings.logging)
    try:
        return await call(client)
    finally:
        await client.close()


def _query(settings: Settings, call: Callable[[MondayClient], Awaitable[Any]]) -> Any:
    try:
        return asyncio.run(_with_client(settings, call))
    except FormulaTriggerError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.version_option(__version__, prog_name="formula-trigger")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Map formula column results onto status columns."""
    settings = load_settings(config_path)
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        secrets=(settings.monday.api_token, settings.webhook.signing_secret),
    )
    ctx.obj = settings


@cli.command()
@click.option("--port", type=int, default=None, help="Override the listening port")
@click.pass_obj
def serve(settings: Settings, port: int | None) -> None:
    """Run the webhook server until interrupted."""
    if port is not None:
        webhook = settings.webhook.model_copy(update={"port": port})
        settings = settings.model_copy(update={"webhook": webhook})
    asyncio.run(run(settings))


@cli.command("map-value")
@click.argument("value")
@click.pass_obj
def map_value(settings: Settings, value: str) -> None:
    """Show which status VALUE maps to under the configured rules."""
    number = parse_value(value)
    if number is None:
        raise click.ClickException(f"Could not parse a number from {value!r}")
    status = map_to_status(number, settings.status_rules)
    if status is None:
        click.echo(f"{number:g} -> no status (no rule matches)")
        return
    click.echo(f"{number:g} -> {status.label} (index {status.index}, {status.color})")


@cli.command()
@click.argument("board_id")
@click.pass_obj
def columns(settings: Settings, board_id: str) -> None:
    """List the columns of BOARD_ID (to find the status column id)."""
    result = _query(settings, lambda c: c.get_board_columns(board_id))
    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.argument("item_id")
@click.pass_obj
def item(settings: Settings, item_id: str) -> None:
    """Show ITEM_ID with its current column values."""
    result = _query(settings, lambda c: c.get_item(item_id))
    if result is None:
        raise click.ClickException(f"Item {item_id} not found")
    click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    cli()
