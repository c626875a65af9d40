"""Webhook HTTP server using aiohttp."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from aiohttp import web

from formula_trigger.config import Settings
from formula_trigger.core.bus import EventBus, FormulaChanged
from formula_trigger.utils.logging import get_logger
from formula_trigger.webhooks.handlers import (
    extract_event,
    should_process,
    validate_payload,
    verify_signature,
)

log = get_logger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"


class WebhookServer:
    """Acknowledges formula-change webhooks and queues them for processing."""

    def __init__(self, settings: Settings, bus: EventBus) -> None:
        self._settings = settings
        self._bus = bus
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        cfg = self._settings.webhook
        if not cfg.signing_secret:
            log.warning(
                "webhook_no_signing_secret",
                msg="No signing secret configured. Webhook signatures will not be verified.",
            )
        app = self.build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, cfg.bind, cfg.port)
        await site.start()
        log.info(
            "webhook_server_started",
            bind=cfg.bind,
            port=cfg.port,
            webhook_url=f"http://localhost:{cfg.port}/webhook",
            health_url=f"http://localhost:{cfg.port}/health",
        )

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("webhook_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/webhook", self._handle_webhook)
        app.router.add_get("/", self._handle_index)
        if STATIC_DIR.is_dir():
            app.router.add_static("/static", STATIC_DIR)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
        )

    async def _handle_index(self, request: web.Request) -> web.StreamResponse:
        index = STATIC_DIR / "index.html"
        if not index.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(index)

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        try:
            return await self._process_webhook(request)
        except Exception:
            if self._settings.logging.log_errors:
                log.exception("webhook_handler_error")
            return web.json_response({"error": "Internal server error"}, status=500)

    async def _process_webhook(self, request: web.Request) -> web.Response:
        body = await request.read()
        log_webhooks = self._settings.logging.log_webhooks

        if log_webhooks:
            log.info("webhook_received", body=body.decode("utf-8", errors="replace"))

        signature = request.headers.get("Authorization")
        if not verify_signature(body, signature, self._settings.webhook.signing_secret):
            log.error("webhook_invalid_signature")
            return web.json_response({"error": "Invalid signature"}, status=401)

        try:
            payload: Any = json.loads(body)
        except ValueError:
            log.error("webhook_invalid_json")
            return web.json_response({"error": "Invalid JSON"}, status=400)

        # Registration handshake: echo the challenge back
        if isinstance(payload, dict) and "challenge" in payload and "event" not in payload:
            log.info("webhook_challenge")
            return web.json_response({"challenge": payload["challenge"]})

        if not validate_payload(payload):
            log.error("webhook_invalid_payload")
            return web.json_response({"error": "Invalid payload"}, status=400)

        event = extract_event(payload)
        if event is None:
            return web.json_response({"error": "Invalid event data"}, status=400)

        if not should_process(event, self._settings.filter):
            if log_webhooks:
                log.info(
                    "webhook_event_ignored",
                    column_type=event.column_type,
                    item_id=event.item_id,
                )
            return web.json_response({"message": "Event ignored"})

        # Acknowledge now; the status update runs on the bus
        self._bus.publish(FormulaChanged(webhook=event))
        return web.json_response({"message": "Webhook received"})
