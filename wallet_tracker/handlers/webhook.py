"""Inbound webhook endpoint for enhanced transaction batches."""

from __future__ import annotations

import hmac
from typing import Optional

from aiohttp import web

from wallet_tracker.jobs.notifications import SwapPipeline
from wallet_tracker.utils.logging import get_logger

logger = get_logger(__name__)

PIPELINE_KEY = web.AppKey("pipeline", SwapPipeline)
AUTH_HEADER_KEY = web.AppKey("auth_header", str)


def create_webhook_app(
    pipeline: SwapPipeline, auth_header: Optional[str] = None
) -> web.Application:
    """Build the aiohttp application serving `POST /webhook`."""
    app = web.Application()
    app[PIPELINE_KEY] = pipeline
    app[AUTH_HEADER_KEY] = auth_header or ""
    app.router.add_post("/webhook", webhook_handler)
    return app


async def webhook_handler(request: web.Request) -> web.Response:
    expected = request.app[AUTH_HEADER_KEY]
    if expected:
        received = request.headers.get("Authorization", "")
        if not hmac.compare_digest(received.encode(), expected.encode()):
            logger.warning("webhook_unauthorized", remote=request.remote)
            return web.json_response({"error": "unauthorized"}, status=401)

    try:
        payload = await request.json()
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            raise ValueError(f"expected a JSON array, got {type(payload).__name__}")

        report = await request.app[PIPELINE_KEY].process_batch(payload)
    except Exception as exc:
        logger.error("webhook_failed", error=str(exc))
        return web.json_response(
            {"error": "Error processing webhook"}, status=500
        )

    return web.json_response({"status": "ok", **report.as_dict()})
