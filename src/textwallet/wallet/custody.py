"""Signer key generation and custody using eth-account.

The wallet store never sees a raw key: custody *seals* fresh key material
into the string kept on the wallet record and *unseals* it when a sponsored
operation has to be signed.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

from eth_account import Account

from textwallet.config import CustodyConfig
from textwallet.errors import ConfigurationError

logger = logging.getLogger("textwallet.wallet.custody")


class Custody(Protocol):
    """Seals signer keys for storage and unseals them for signing."""

    def seal(self, private_key: bytes) -> str: ...

    def unseal(self, sealed: str) -> bytes: ...


def generate_signer() -> tuple[bytes, str]:
    """Generate a new Ethereum keypair.

    Returns
    -------
    tuple[bytes, str]
        The raw 32-byte private key and its checksummed address.
    """
    acct = Account.create()
    return bytes(acct.key), acct.address


def signer_address(private_key: bytes) -> str:
    """Return the checksummed address controlled by *private_key*."""
    return Account.from_key(private_key).address


class PlaintextCustody:
    """Stores the key as ``0x``-prefixed hex. Needs at-rest protection elsewhere."""

    def seal(self, private_key: bytes) -> str:
        return "0x" + private_key.hex()

    def unseal(self, sealed: str) -> bytes:
        raw = sealed[2:] if sealed.startswith("0x") else sealed
        try:
            return bytes.fromhex(raw)
        except ValueError as exc:
            raise ValueError("Stored signer secret is not valid hex") from exc


class KeystoreCustody:
    """Encrypts the key into a V3 keystore JSON document.

    Parameters
    ----------
    password:
        Password used to encrypt and decrypt every signer key.
    """

    def __init__(self, password: str) -> None:
        if not password:
            raise ConfigurationError("Keystore custody requires a non-empty password.")
        self._password = password

    def seal(self, private_key: bytes) -> str:
        encrypted = Account.encrypt(private_key, self._password)
        return json.dumps(encrypted)

    def unseal(self, sealed: str) -> bytes:
        """Decrypt the private key from a sealed keystore document.

        Raises
        ------
        ValueError
            If the document is malformed or the password is incorrect.
        """
        try:
            data = json.loads(sealed)
        except json.JSONDecodeError as exc:
            raise ValueError("Stored signer secret is not a keystore document") from exc
        try:
            return bytes(Account.decrypt(data, self._password))
        except Exception as exc:
            raise ValueError(f"Failed to decrypt keystore: {exc}") from exc


def build_custody(config: CustodyConfig) -> Custody:
    """Return the custody implementation selected by *config*."""
    if config.mode == "keystore":
        return KeystoreCustody(config.keystore_password)
    logger.warning(
        "Signer secrets are stored as plaintext hex; protect the wallet store "
        "at rest or set custody.mode to 'keystore'."
    )
    return PlaintextCustody()
