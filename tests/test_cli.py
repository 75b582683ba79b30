import asyncio

from typer.testing import CliRunner

from textwallet.cli.app import app
from textwallet.config import BotConfig, load_config, save_config
from textwallet.messaging.store import ChatDbMessageStore
from textwallet.storage.database import Database
from textwallet.storage.models import WalletRecord
from textwallet.storage.wallet_store import WalletStore
from textwallet.wallet.registration import RegistrationManager

runner = CliRunner()


def _write_config(tmp_path):
    path = tmp_path / "textwallet.yaml"
    config = BotConfig.model_validate(
        {
            "storage": {"db_path": str(tmp_path / "wallets.db")},
            "messages": {"db_path": str(tmp_path / "chat.db")},
        }
    )
    save_config(config, path)
    return path, config


def _seed_wallet(config, identity="+15550001"):
    async def seed():
        db = Database(config.storage.path)
        await db.connect()
        try:
            await WalletStore(db).add(
                WalletRecord(
                    identity=identity,
                    signer_secret="0x" + "ab" * 32,
                    signer_address="0x" + "1" * 40,
                    wallet_address="0x" + "2" * 40,
                    chain_id=689,
                    network="NERO Chain Testnet",
                )
            )
        finally:
            await db.close()

    asyncio.run(seed())


def test_init_writes_config(tmp_path):
    path = tmp_path / "textwallet.yaml"

    result = runner.invoke(app, ["--config", str(path), "init", "--network", "nero-devnet"])

    assert result.exit_code == 0, result.output
    config = load_config(path)
    assert config.chain.network == "nero-devnet"

    again = runner.invoke(app, ["--config", str(path), "init"])
    assert again.exit_code == 1


def test_init_rejects_unknown_network(tmp_path):
    result = runner.invoke(app, ["--config", str(tmp_path / "c.yaml"), "init", "-n", "mainnet"])

    assert result.exit_code == 1
    assert not (tmp_path / "c.yaml").exists()


def test_parse_shows_command():
    result = runner.invoke(app, ["parse", "mint 5 USDC"])

    assert result.exit_code == 0
    assert "MintUsdc" in result.output


def test_send_appends_to_message_store(tmp_path):
    path, config = _write_config(tmp_path)

    result = runner.invoke(app, ["--config", str(path), "send", "+15550001", "register"])

    assert result.exit_code == 0, result.output
    messages = asyncio.run(ChatDbMessageStore(config.messages.path).read_recent(10))
    assert [(m.identity, m.text) for m in messages] == [("+15550001", "register")]


def test_users_commands(tmp_path):
    path, config = _write_config(tmp_path)
    _seed_wallet(config)

    listed = runner.invoke(app, ["--config", str(path), "users", "list"])
    assert listed.exit_code == 0, listed.output
    assert "+15550001" in listed.output

    shown = runner.invoke(app, ["--config", str(path), "users", "show", "+15550001"])
    assert shown.exit_code == 0, shown.output
    assert "0xabab..." in shown.output
    assert "ab" * 32 not in shown.output

    removed = runner.invoke(app, ["--config", str(path), "users", "unregister", "+15550001", "--yes"])
    assert removed.exit_code == 0, removed.output

    missing = runner.invoke(app, ["--config", str(path), "users", "show", "+15550001"])
    assert missing.exit_code == 1


def test_users_unregister_goes_through_registration_manager(tmp_path, monkeypatch):
    path, config = _write_config(tmp_path)
    _seed_wallet(config)
    calls = []
    original = RegistrationManager.unregister_user

    async def recording_unregister(self, identity):
        calls.append(identity)
        return await original(self, identity)

    monkeypatch.setattr(RegistrationManager, "unregister_user", recording_unregister)

    removed = runner.invoke(app, ["--config", str(path), "users", "unregister", "+15550001", "-y"])
    again = runner.invoke(app, ["--config", str(path), "users", "unregister", "+15550001", "-y"])

    assert removed.exit_code == 0, removed.output
    assert again.exit_code == 1
    assert calls == ["+15550001", "+15550001"]
