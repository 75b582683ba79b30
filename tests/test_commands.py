from decimal import Decimal

import pytest

from textwallet import commands
from textwallet.commands import (
    Balance,
    Help,
    MintUsdc,
    Register,
    TransferUsdc,
    Unrecognized,
    UsdcBalance,
    WalletInfo,
    parse,
    parse_amount,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("register", Register()),
        ("  REGISTER  ", Register()),
        ("wallet   info", WalletInfo()),
        ("Help", Help()),
        ("balance", Balance()),
        ("USDC Balance", UsdcBalance()),
    ],
)
def test_exact_commands_are_case_and_whitespace_insensitive(text, expected):
    assert parse(text) == expected


def test_mint_without_amount_uses_default():
    assert parse("mint usdc") == MintUsdc(amount=None)


def test_mint_with_amount():
    assert parse("mint 5 usdc") == MintUsdc(amount=Decimal("5"))
    assert parse("Mint 2.5 USDC") == MintUsdc(amount=Decimal("2.5"))


@pytest.mark.parametrize("text", ["mint -1 usdc", "mint 0 usdc", "mint abc usdc", "mint nan usdc", "mint inf usdc"])
def test_invalid_mint_amounts_are_rejected(text):
    assert parse(text) == Unrecognized(reason=commands.INVALID_MINT)


def test_transfer_keeps_destination_case():
    command = parse("transfer 3 usdc to 0xAbCdEf0000000000000000000000000000000001")
    assert command == TransferUsdc(
        amount=Decimal("3"),
        destination="0xAbCdEf0000000000000000000000000000000001",
    )


@pytest.mark.parametrize(
    "text",
    [
        "transfer usdc to 0xabc",
        "transfer -2 usdc to 0xabc",
        "transfer 5 usdc to",
        "transfer 5 usdc tomorrow",
    ],
)
def test_invalid_transfers_are_rejected(text):
    assert parse(text) == Unrecognized(reason=commands.INVALID_TRANSFER)


@pytest.mark.parametrize("text", ["", "   ", None, "hello there", "registering", "send money"])
def test_unrelated_text_is_silently_unrecognized(text):
    assert parse(text) == Unrecognized(reason=None)


def test_parse_amount():
    assert parse_amount("10") == Decimal("10")
    assert parse_amount("0.000001") == Decimal("0.000001")
    assert parse_amount("1e2") == Decimal("100")
    assert parse_amount("Infinity") is None
    assert parse_amount("0") is None
    assert parse_amount(None) is None
