"""Application entrypoint."""

from __future__ import annotations

import asyncio
import signal
from functools import partial

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import BotCommand, BotCommandScopeDefault
from telegram.ext import ApplicationBuilder

from wallet_tracker.clients.dexscreener import DexscreenerClient
from wallet_tracker.clients.helius import HeliusClient
from wallet_tracker.config import load_settings
from wallet_tracker.handlers.commands import (
    COMMANDS,
    HandlerContext,
    send_timeout_notice,
    setup as setup_handlers,
)
from wallet_tracker.handlers.webhook import create_webhook_app
from wallet_tracker.jobs.allowlist import AllowlistSynchronizer
from wallet_tracker.jobs.notifications import NotificationDispatcher, SwapPipeline
from wallet_tracker.state import ConversationStateStore
from wallet_tracker.store.db import Database
from wallet_tracker.store.subscriptions import SubscriptionIndex
from wallet_tracker.swap_card import NotificationComposer
from wallet_tracker.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    db = Database(settings.database_url)
    db.connect()
    await db.init_models()

    application = ApplicationBuilder().token(settings.telegram_bot_token).build()
    await application.initialize()

    commands = [BotCommand(name, description) for name, description in COMMANDS.items()]
    await application.bot.set_my_commands(commands, scope=BotCommandScopeDefault())

    scheduler = AsyncIOScheduler()
    subscriptions = SubscriptionIndex(db)

    helius: HeliusClient | None = None
    if settings.allowlist_sync_enabled:
        helius = HeliusClient(
            api_key=settings.helius_api_key,
            webhook_id=settings.helius_webhook_id,
            webhook_url=str(settings.webhook_url),
            api_base=settings.helius_api_base,
            auth_header=settings.webhook_auth_header,
            timeout_seconds=settings.http_timeout_seconds,
        )
        synchronizer = AllowlistSynchronizer(
            helius,
            subscriptions,
            retries=settings.allowlist_sync_retries,
            retry_delay_seconds=settings.allowlist_sync_retry_delay_seconds,
        )
        subscriptions.synchronizer = synchronizer
        synchronizer.schedule_resync(scheduler, settings.allowlist_resync_minutes)
    else:
        logger.warning("allowlist_sync_disabled", reason="missing Helius settings")

    market_data = DexscreenerClient(
        api_base=settings.dexscreener_api_base,
        timeout_seconds=settings.http_timeout_seconds,
    )
    composer = NotificationComposer(market_data)
    dispatcher = NotificationDispatcher(application.bot, subscriptions)
    pipeline = SwapPipeline(subscriptions, composer, dispatcher)

    states = ConversationStateStore(
        scheduler,
        notify_timeout=partial(send_timeout_notice, application.bot),
        default_ttl_minutes=settings.state_ttl_minutes,
    )
    handler_context = HandlerContext(
        states=states,
        subscriptions=subscriptions,
        authorized_user_ids=settings.authorized_user_ids,
    )
    setup_handlers(application, handler_context)

    webhook_app = create_webhook_app(pipeline, auth_header=settings.webhook_auth_header)
    runner = web.AppRunner(webhook_app)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)

    scheduler.start()

    try:
        await site.start()
        logger.info("webhook_server_started", host=settings.host, port=settings.port)

        await application.start()
        if application.updater:
            await application.updater.start_polling()

        logger.info("bot_started", commands=len(commands))

        stop_event = asyncio.Event()

        def signal_handler(signum, frame):
            logger.info("shutdown_signal_received", signal=signum)
            stop_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        await stop_event.wait()

    finally:
        logger.info("bot_stopping")
        scheduler.shutdown(wait=False)
        if application.updater and application.updater.running:
            await application.updater.stop()
        if application.running:
            await application.stop()
        await application.shutdown()
        await runner.cleanup()
        await market_data.close()
        if helius is not None:
            await helius.close()
        await db.dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
