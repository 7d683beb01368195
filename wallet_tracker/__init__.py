"""Telegram bot that reports swaps made by followed Solana wallets."""

__version__ = "0.1.0"
