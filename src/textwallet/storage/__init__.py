"""textwallet storage layer -- async SQLite database and Pydantic models."""

from textwallet.storage.database import Database, get_database
from textwallet.storage.models import WalletRecord
from textwallet.storage.wallet_store import WalletStore

__all__ = [
    "Database",
    "get_database",
    "WalletRecord",
    "WalletStore",
]
