import pytest

from textwallet.config import CustodyConfig
from textwallet.errors import ConfigurationError
from textwallet.wallet.custody import (
    KeystoreCustody,
    PlaintextCustody,
    build_custody,
    generate_signer,
    signer_address,
)


def test_generate_signer_returns_matching_address():
    key, address = generate_signer()

    assert len(key) == 32
    assert signer_address(key) == address
    assert address.startswith("0x")


def test_plaintext_custody_round_trip():
    key, _ = generate_signer()
    custody = PlaintextCustody()

    sealed = custody.seal(key)

    assert sealed == "0x" + key.hex()
    assert custody.unseal(sealed) == key


def test_plaintext_custody_rejects_garbage():
    with pytest.raises(ValueError):
        PlaintextCustody().unseal("not-hex")


def test_keystore_custody_encrypts():
    key, _ = generate_signer()
    custody = KeystoreCustody("correct horse")

    sealed = custody.seal(key)

    assert key.hex() not in sealed
    assert custody.unseal(sealed) == key
    with pytest.raises(ValueError):
        KeystoreCustody("wrong").unseal(sealed)


def test_build_custody():
    assert isinstance(build_custody(CustodyConfig()), PlaintextCustody)
    assert isinstance(
        build_custody(CustodyConfig(mode="keystore", keystore_password="pw")), KeystoreCustody
    )
    with pytest.raises(ConfigurationError):
        build_custody(CustodyConfig(mode="keystore"))
