"""Error taxonomy shared across the bot and the webhook pipeline."""

from __future__ import annotations


class WalletTrackerError(Exception):
    """Base class for every error raised by this package."""


class DuplicateSubscription(WalletTrackerError):
    """The user already follows this wallet."""

    def __init__(self, user_id: int, wallet_address: str) -> None:
        super().__init__(f"Wallet already being monitored: {wallet_address}")
        self.user_id = user_id
        self.wallet_address = wallet_address


class UnparseableDescription(WalletTrackerError):
    """A transaction event could not be turned into a swap."""

    def __init__(self, signature: str | None, description: str | None) -> None:
        super().__init__(f"Unrecognised swap event {signature or '<unsigned>'}")
        self.signature = signature
        self.description = description


class ExternalSyncFailure(WalletTrackerError):
    """Pushing the wallet allowlist to the webhook provider failed."""


class DeliveryFailure(WalletTrackerError):
    """A notification could not be delivered to one recipient."""

    def __init__(self, user_id: int, reason: str) -> None:
        super().__init__(f"Delivery to {user_id} failed: {reason}")
        self.user_id = user_id
        self.reason = reason


class UpstreamUnavailable(WalletTrackerError):
    """The subscription store or the market-data service did not answer."""


__all__ = [
    "WalletTrackerError",
    "DuplicateSubscription",
    "UnparseableDescription",
    "ExternalSyncFailure",
    "DeliveryFailure",
    "UpstreamUnavailable",
]
