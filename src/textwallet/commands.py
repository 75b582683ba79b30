"""Command interpreter: turns raw message text into a typed command.

:func:`parse` is pure. Matching is case-insensitive on whitespace-normalised
text, but the transfer destination is taken verbatim from the original
message so mixed-case (checksummed) addresses survive.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

INVALID_MINT = "invalid mint amount"
INVALID_TRANSFER = "invalid transfer"


@dataclass(frozen=True)
class Register:
    pass


@dataclass(frozen=True)
class WalletInfo:
    pass


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Balance:
    pass


@dataclass(frozen=True)
class UsdcBalance:
    pass


@dataclass(frozen=True)
class MintUsdc:
    amount: Optional[Decimal] = None  # None = configured default


@dataclass(frozen=True)
class TransferUsdc:
    amount: Decimal
    destination: str


@dataclass(frozen=True)
class Unrecognized:
    reason: Optional[str] = None  # None = unrelated text, ignored silently


Command = Union[
    Register, WalletInfo, Help, Balance, UsdcBalance, MintUsdc, TransferUsdc, Unrecognized
]

_EXACT: dict[str, Command] = {
    "register": Register(),
    "wallet info": WalletInfo(),
    "help": Help(),
    "balance": Balance(),
    "usdc balance": UsdcBalance(),
}


def parse_amount(token: str | None) -> Decimal | None:
    """Parse a positive, finite decimal amount. Returns ``None`` otherwise."""
    if not token:
        return None
    try:
        amount = Decimal(token)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _token_after(words: list[str], keyword: str) -> int | None:
    """Index of the token right after the first literal *keyword*, if any."""
    try:
        index = words.index(keyword) + 1
    except ValueError:
        return None
    return index if index < len(words) else None


def parse(text: str | None) -> Command:
    """Parse message text into a :data:`Command`."""
    raw_tokens = (text or "").split()
    words = [t.lower() for t in raw_tokens]
    msg = " ".join(words)
    if not msg:
        return Unrecognized()

    exact = _EXACT.get(msg)
    if exact is not None:
        return exact

    if msg.startswith("mint") and "usdc" in msg:
        if msg == "mint usdc":
            return MintUsdc()
        index = _token_after(words, "mint")
        amount = parse_amount(words[index]) if index is not None else None
        if amount is None:
            return Unrecognized(reason=INVALID_MINT)
        return MintUsdc(amount=amount)

    if msg.startswith("transfer") and "usdc" in msg and "to" in msg:
        amount_index = _token_after(words, "transfer")
        amount = parse_amount(words[amount_index]) if amount_index is not None else None
        dest_index = _token_after(words, "to")
        destination = raw_tokens[dest_index] if dest_index is not None else None
        if amount is None or not destination:
            return Unrecognized(reason=INVALID_TRANSFER)
        return TransferUsdc(amount=amount, destination=destination)

    return Unrecognized()
