"""Telegram command, menu and reply handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackContext,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from wallet_tracker.errors import DuplicateSubscription, UpstreamUnavailable
from wallet_tracker.state import ConversationStateStore, ConversationStep
from wallet_tracker.store.subscriptions import SubscriptionIndex
from wallet_tracker.utils.formatting import escape_markdown, join_messages
from wallet_tracker.utils.logging import get_logger

logger = get_logger(__name__)

WELCOME = (
    "👋 Welcome to the Solana Wallet Tracker!\n\n"
    "🔍 Use the buttons below to manage your wallet subscriptions:"
)
TIMEOUT = "⏰ Operation timed out. Please try again."
ERROR = "❌ Error processing request. Please try again."
NO_WALLETS = "📝 You are not monitoring any wallets."
SETTINGS_SOON = "⚙️ Settings feature coming soon!"
ACCESS_DENIED = "⛔ You are not authorized to use this bot."
ADD_PROMPT = "👛 Enter the wallet address you want to monitor:"
REMOVE_PROMPT = "👛 Enter the wallet address you want to stop monitoring:"
SYNC_WARNING = (
    "⚠️ Your change was saved, but the watch list could not be updated right now. "
    "Notifications may be delayed until the next change."
)

COMMANDS = {
    "start": "Start the bot",
    "menu": "Show main menu",
    "help": "Show this help message",
}

ADD_WALLET = "add_wallet"
REMOVE_WALLET = "remove_wallet"
LIST_WALLETS = "list_wallets"
SETTINGS = "settings"
HELP = "help"


@dataclass
class HandlerContext:
    states: ConversationStateStore
    subscriptions: SubscriptionIndex
    authorized_user_ids: List[int] = field(default_factory=list)


def setup(application: Application, handler_context: HandlerContext) -> None:
    """Register handlers on the Telegram application."""
    application.bot_data["ctx"] = handler_context

    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("menu", start))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CallbackQueryHandler(menu_callback))
    application.add_handler(
        MessageHandler(filters.TEXT & ~filters.COMMAND, reply_handler)
    )
    application.add_error_handler(error_handler)


def get_ctx(context: CallbackContext) -> HandlerContext:
    return context.application.bot_data["ctx"]


def main_menu_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("➕ Add Wallet", callback_data=ADD_WALLET),
                InlineKeyboardButton("📋 List Wallets", callback_data=LIST_WALLETS),
            ],
            [
                InlineKeyboardButton("❌ Remove Wallet", callback_data=REMOVE_WALLET),
                InlineKeyboardButton("⚙️ Settings", callback_data=SETTINGS),
            ],
            [InlineKeyboardButton("ℹ️ Help", callback_data=HELP)],
        ]
    )


def help_text() -> str:
    command_list = "\n".join(f"/{cmd} - {desc}" for cmd, desc in COMMANDS.items())
    return f"Available Commands:\n\n{command_list}\n\nOr use the menu buttons below:"


async def send_timeout_notice(bot, chat_id: int) -> None:
    await bot.send_message(
        chat_id=chat_id, text=TIMEOUT, reply_markup=main_menu_keyboard()
    )


async def ensure_user(update: Update, context: CallbackContext) -> bool:
    """Reject users outside the configured allow-list, if one is set."""
    ctx = get_ctx(context)
    if not ctx.authorized_user_ids:
        return True

    user = update.effective_user
    if user is not None and user.id in ctx.authorized_user_ids:
        return True

    logger.warning(
        "unauthorized_access", user_id=user.id if user is not None else None
    )
    if update.callback_query is not None:
        await update.callback_query.answer()
    if update.effective_chat is not None:
        await context.bot.send_message(
            chat_id=update.effective_chat.id, text=ACCESS_DENIED
        )
    return False


async def show_menu(context: CallbackContext, chat_id: int) -> None:
    await context.bot.send_message(
        chat_id=chat_id, text=WELCOME, reply_markup=main_menu_keyboard()
    )


async def start(update: Update, context: CallbackContext) -> None:
    """Handle /start and /menu."""
    try:
        if not await ensure_user(update, context):
            return
        await show_menu(context, update.effective_chat.id)
    except Exception as exc:
        logger.error("start_command_failed", error=str(exc))


async def help_command(update: Update, context: CallbackContext) -> None:
    try:
        if not await ensure_user(update, context):
            return
        chat_id = update.effective_chat.id
        await context.bot.send_message(chat_id=chat_id, text=help_text())
        await show_menu(context, chat_id)
    except Exception as exc:
        logger.error("help_command_failed", error=str(exc))


async def menu_callback(update: Update, context: CallbackContext) -> None:
    """Dispatch inline menu buttons."""
    query = update.callback_query
    chat_id = update.effective_chat.id
    try:
        if not await ensure_user(update, context):
            return
        ctx = get_ctx(context)
        try:
            await query.answer()
        except Exception as exc:
            logger.debug("callback_answer_failed", error=str(exc))

        action = query.data
        if action == ADD_WALLET:
            ctx.states.set_state(chat_id, ConversationStep.AWAITING_WALLET_ADD)
            await context.bot.send_message(chat_id=chat_id, text=ADD_PROMPT)
        elif action == REMOVE_WALLET:
            ctx.states.set_state(chat_id, ConversationStep.AWAITING_WALLET_REMOVE)
            await context.bot.send_message(chat_id=chat_id, text=REMOVE_PROMPT)
        elif action == LIST_WALLETS:
            wallets = await ctx.subscriptions.list_wallets(chat_id)
            await context.bot.send_message(
                chat_id=chat_id,
                text=format_wallet_list(wallets),
                parse_mode="MarkdownV2",
            )
            await show_menu(context, chat_id)
        elif action == SETTINGS:
            await context.bot.send_message(chat_id=chat_id, text=SETTINGS_SOON)
            await show_menu(context, chat_id)
        elif action == HELP:
            await context.bot.send_message(chat_id=chat_id, text=help_text())
            await show_menu(context, chat_id)
        else:
            logger.warning("unknown_menu_action", action=action, chat_id=chat_id)
    except Exception as exc:
        logger.error("menu_callback_failed", chat_id=chat_id, error=str(exc))
        await _report_error(context, chat_id)


async def reply_handler(update: Update, context: CallbackContext) -> None:
    """Interpret free text as the answer to a pending step; ignore it otherwise."""
    chat_id = update.effective_chat.id
    ctx = get_ctx(context)
    step = ctx.states.get_state(chat_id)
    if step is ConversationStep.NONE:
        return

    try:
        if not await ensure_user(update, context):
            return
        ctx.states.clear_state(chat_id)

        wallet = (update.message.text or "").strip()
        if step is ConversationStep.AWAITING_WALLET_ADD:
            result = await ctx.subscriptions.add_wallet(chat_id, wallet)
            text = f"✅ Now monitoring wallet: {wallet}"
        else:
            result = await ctx.subscriptions.remove_wallet(chat_id, wallet)
            text = f"❌ Stopped monitoring wallet: {wallet}"

        await context.bot.send_message(chat_id=chat_id, text=text)
        if result.warning:
            await context.bot.send_message(chat_id=chat_id, text=SYNC_WARNING)
        await show_menu(context, chat_id)
    except DuplicateSubscription as exc:
        await context.bot.send_message(chat_id=chat_id, text=f"⚠️ {exc}")
        await show_menu(context, chat_id)
    except UpstreamUnavailable as exc:
        logger.error("reply_upstream_unavailable", chat_id=chat_id, error=str(exc))
        await _report_error(context, chat_id)
    except Exception as exc:
        logger.error("reply_handler_failed", chat_id=chat_id, error=str(exc))
        await _report_error(context, chat_id)


def format_wallet_list(wallets: List[str]) -> str:
    """MarkdownV2 list of monitored wallets, or the empty notice."""
    if not wallets:
        return escape_markdown(NO_WALLETS)
    lines = [f"`{escape_markdown(wallet)}`" for wallet in sorted(wallets)]
    return join_messages([escape_markdown("📝 Monitored wallets:"), "\n".join(lines)])


async def error_handler(update: object, context: CallbackContext) -> None:
    logger.error("telegram_handler_error", error=str(context.error))


async def _report_error(context: CallbackContext, chat_id: int) -> None:
    try:
        await context.bot.send_message(
            chat_id=chat_id, text=ERROR, reply_markup=main_menu_keyboard()
        )
    except Exception as exc:
        logger.error("error_notice_failed", chat_id=chat_id, error=str(exc))
