"""Exception taxonomy shared by every textwallet component."""

from __future__ import annotations


class WalletBotError(Exception):
    """Base class for all textwallet errors."""


class ConfigurationError(WalletBotError):
    """Configuration is missing a value or holds an invalid one."""


class NotRegistered(WalletBotError):
    """The operation needs a wallet record that does not exist."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"{identity} is not registered")
        self.identity = identity


class InvalidCommand(WalletBotError):
    """A command failed validation (bad amount, missing destination)."""


class GatewayFailure(WalletBotError):
    """A chain, bundler or paymaster call failed or timed out.

    ``retryable`` is set when the failure was a timeout or a transport
    problem and resending the same command may succeed.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class PersistenceFailure(WalletBotError):
    """Reading or writing the wallet store failed."""


class TransportFailure(WalletBotError):
    """Delivering a notification failed."""
