import asyncio
import threading
from decimal import Decimal

import pytest
from conftest import FakeGateway, open_database

from textwallet.errors import GatewayFailure, NotRegistered
from textwallet.storage.wallet_store import WalletStore
from textwallet.wallet.chains import get_chain
from textwallet.wallet.custody import PlaintextCustody
from textwallet.wallet.registration import AlreadyRegistered, Registered, RegistrationManager

CHAIN = get_chain("nero-testnet")


def _run_with_manager(tmp_path, gateway, body, timeout=5.0):
    async def scenario():
        db = await open_database(tmp_path / "wallets.db")
        try:
            manager = RegistrationManager(
                WalletStore(db), gateway, PlaintextCustody(), CHAIN, timeout=timeout
            )
            return await body(manager)
        finally:
            await db.close()

    return asyncio.run(scenario())


def test_register_creates_record_once(tmp_path):
    gateway = FakeGateway()

    async def body(manager):
        first = await manager.register_if_needed("+15550001")
        calls_after_first = list(gateway.calls)
        second = await manager.register_if_needed("+15550001")
        return first, second, calls_after_first, await manager.list_registered()

    first, second, calls_after_first, identities = _run_with_manager(tmp_path, gateway, body)

    assert isinstance(first, Registered)
    assert first.info.is_counterfactual is True
    assert first.info.chain_id == 689
    assert first.info.network == "NERO Chain Testnet"
    assert first.info.explorer_url == f"https://testnet.neroscan.io/address/{first.info.wallet_address}"
    assert second == AlreadyRegistered("+15550001")
    assert gateway.calls == calls_after_first
    assert identities == ["+15550001"]


def test_concurrent_registrations_create_one_record(tmp_path):
    gateway = FakeGateway()

    async def body(manager):
        results = await asyncio.gather(
            manager.register_if_needed("+1"), manager.register_if_needed("+1")
        )
        return results, await manager.store.count()

    results, count = _run_with_manager(tmp_path, gateway, body)

    assert sorted(type(r).__name__ for r in results) == ["AlreadyRegistered", "Registered"]
    assert count == 1
    assert gateway.count("derive_wallet_address") == 1


def test_failed_derivation_leaves_no_record(tmp_path):
    gateway = FakeGateway()
    gateway.fail_derive = ConnectionError("rpc down")

    async def body(manager):
        with pytest.raises(GatewayFailure, match="rpc down"):
            await manager.register_if_needed("+1")
        return await manager.get_user_wallet("+1")

    assert _run_with_manager(tmp_path, gateway, body) is None


def test_slow_gateway_times_out_as_retryable(tmp_path):
    class SlowGateway(FakeGateway):
        async def derive_wallet_address(self, signer_address):
            await asyncio.sleep(1)
            return "0x" + "1" * 40

    async def body(manager):
        with pytest.raises(GatewayFailure) as info:
            await manager.register_if_needed("+1")
        return info.value, await manager.get_user_wallet("+1")

    error, record = _run_with_manager(tmp_path, SlowGateway(), body, timeout=0.05)

    assert error.retryable is True
    assert "timed out" in str(error)
    assert record is None


def test_signer_key_round_trips_through_custody(tmp_path):
    gateway = FakeGateway()

    async def body(manager):
        result = await manager.register_if_needed("+1")
        key = await manager.get_signer_key("+1")
        return result, key

    result, key = _run_with_manager(tmp_path, gateway, body)

    from textwallet.wallet.custody import signer_address

    assert signer_address(key) == result.info.signer_address


def test_wallet_status_persists_deployment_change(tmp_path):
    gateway = FakeGateway()
    gateway.balance = Decimal("1.25")

    async def body(manager):
        result = await manager.register_if_needed("+1")
        gateway.deployed.add(result.info.wallet_address)
        status = await manager.get_wallet_status("+1")
        manager.store.invalidate()
        stored = await manager.get_user_wallet("+1")
        return status, stored

    status, stored = _run_with_manager(tmp_path, gateway, body)

    assert status.is_deployed is True
    assert status.balance == Decimal("1.25")
    assert status.currency == "NERO"
    assert stored.is_deployed is True


def test_unregistered_status_raises_before_any_gateway_call(tmp_path):
    gateway = FakeGateway()

    async def body(manager):
        with pytest.raises(NotRegistered):
            await manager.get_wallet_status("+9")
        with pytest.raises(NotRegistered):
            await manager.get_signer_key("+9")

    _run_with_manager(tmp_path, gateway, body)
    assert gateway.calls == []


def test_unregister_user(tmp_path):
    gateway = FakeGateway()

    async def body(manager):
        await manager.register_if_needed("+1")
        removed = await manager.unregister_user("+1")
        removed_again = await manager.unregister_user("+1")
        return removed, removed_again, await manager.get_user_wallet("+1")

    assert _run_with_manager(tmp_path, gateway, body) == (True, False, None)


class ThreadRecordingCustody(PlaintextCustody):
    def __init__(self) -> None:
        self.threads = []

    def seal(self, private_key):
        self.threads.append(threading.get_ident())
        return super().seal(private_key)

    def unseal(self, sealed):
        self.threads.append(threading.get_ident())
        return super().unseal(sealed)


def test_custody_runs_off_the_event_loop_thread(tmp_path):
    custody = ThreadRecordingCustody()

    async def scenario():
        db = await open_database(tmp_path / "wallets.db")
        try:
            manager = RegistrationManager(WalletStore(db), FakeGateway(), custody, CHAIN)
            await manager.register_if_needed("+1")
            await manager.get_signer_key("+1")
            return threading.get_ident()
        finally:
            await db.close()

    loop_thread = asyncio.run(scenario())

    assert len(custody.threads) == 2
    assert loop_thread not in custody.threads
