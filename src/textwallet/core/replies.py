"""Reply texts sent back to users.

Each function returns the full message body for one reply.
"""

from __future__ import annotations

from decimal import Decimal

from textwallet.wallet.chains import Chain
from textwallet.wallet.registration import RegistrationInfo, WalletStatus
from textwallet.wallet.transactions import TxResult, UsdcBalance

NOT_REGISTERED = "❌ You are not registered. Send 'register' to create your wallet."
ALREADY_REGISTERED = (
    "✅ You are already registered!\n\n"
    "Send 'wallet info' to see your wallet details."
)
REGISTRATION_FAILED = (
    "❌ Registration Failed\n\n"
    "We could not create your wallet right now.\n"
    "Please try again later."
)
WALLET_INFO_FAILED = "❌ Could not load your wallet details. Please try again."
BALANCE_FAILED = "❌ Failed to check balance. Please try again."
LOOKUP_FAILED = "❌ Could not look up your wallet right now. Please try again later."
INVALID_MINT = "❌ Invalid mint command. Use: mint 5 usdc"
INVALID_TRANSFER = "❌ Invalid transfer command. Use: transfer 5 usdc to 0x123..."


def format_amount(amount: Decimal) -> str:
    """Render a Decimal without exponent notation or trailing zeros."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def registration_success(chain: Chain) -> str:
    return (
        "🎉 Registration Successful!\n\n"
        f"Your Account Abstraction wallet is ready on {chain.display_name}."
    )


def wallet_details(info: RegistrationInfo) -> str:
    status = (
        "Counterfactual (will deploy on first transaction)"
        if info.is_counterfactual
        else "Deployed"
    )
    return (
        "🏦 Your Wallet Details:\n\n"
        f"💼 Wallet Address:\n{info.wallet_address}\n\n"
        f"📊 Status: {status}\n\n"
        f"🌐 Network: {info.network}\n\n"
        f"🔍 Explorer:\n{info.explorer_url}\n\n"
        "📱 Available Commands:\n"
        '• "wallet info" - Check status\n'
        '• "balance" - Check native balance\n'
        '• "usdc balance" - Check USDC balance\n'
        '• "help" - Show all commands'
    )


def wallet_status(status: WalletStatus) -> str:
    deployed = "✅ Deployed" if status.is_deployed else "⏳ Counterfactual"
    registered = status.registered_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    return (
        "🏦 Your Wallet Status:\n\n"
        f"💼 AA Wallet:\n{status.wallet_address}\n\n"
        f"🔑 Signer:\n{status.signer_address}\n\n"
        f"📊 Status: {deployed}\n\n"
        f"💰 Balance: {format_amount(status.balance)} {status.currency}\n\n"
        f"🌐 Network: {status.network}\n\n"
        f"📅 Registered: {registered}\n\n"
        f"🔍 Explorer:\n{status.explorer_url}"
    )


def help_text(chain: Chain) -> str:
    return (
        "🤖 NERO Chain Wallet Bot\n\n"
        "📱 Available Commands:\n\n"
        '🆕 "register" - Create your wallet\n'
        'ℹ️  "wallet info" - Check wallet status\n'
        f'💰 "balance" - Check {chain.native_symbol} balance\n'
        '💵 "usdc balance" - Check USDC balance\n'
        '🪙 "mint usdc" - Mint USDC tokens\n'
        '🪙 "mint X usdc" - Mint X amount of USDC\n'
        '💸 "transfer X usdc to 0x..." - Transfer USDC\n'
        '❓ "help" - Show this message\n\n'
        f"🌐 Network: {chain.display_name}\n"
        f"🔗 Chain ID: {chain.chain_id}"
    )


def native_balance(status: WalletStatus) -> str:
    return f"💰 Your {status.currency} Balance: {format_amount(status.balance)}"


def usdc_balance(balance: UsdcBalance) -> str:
    return (
        "💵 Your Wallet Balances:\n\n"
        f"💰 USDC: {format_amount(balance.usdc)} USDC\n"
        f"💎 {balance.currency}: {format_amount(balance.native)} {balance.currency}\n\n"
        f"📍 Wallet: {balance.wallet_address}\n\n"
        f"🔍 Explorer:\n{balance.explorer_url}"
    )


def progress_notice(action: str) -> str:
    return f"⏳ Processing your USDC {action}. Gas is sponsored, no fees needed."


def mint_success(result: TxResult) -> str:
    return (
        "✅ USDC Mint Successful!\n\n"
        f"💰 Amount: {format_amount(result.amount)} USDC\n"
        f"📍 Wallet: {result.wallet_address}\n"
        f"🔗 Transaction: {result.transaction_id}\n"
        f"🔍 Explorer: {result.explorer_url}\n"
        "⛽ Gas: Sponsored by paymaster"
    )


def mint_failed(reason: str) -> str:
    return f"❌ USDC Mint Failed\n\nError: {reason}\n\nPlease try again later."


def transfer_success(result: TxResult) -> str:
    return (
        "✅ USDC Transfer Successful!\n\n"
        f"💰 Amount: {format_amount(result.amount)} USDC\n"
        f"📤 From: {result.wallet_address}\n"
        f"📥 To: {result.destination}\n"
        f"🔗 Transaction: {result.transaction_id}\n"
        f"🔍 Explorer: {result.explorer_url}\n"
        "⛽ Gas: Sponsored by paymaster"
    )


def transfer_failed(reason: str) -> str:
    return f"❌ USDC Transfer Failed\n\nError: {reason}\n\nPlease check your balance and try again."
