"""Configuration system for textwallet.

Loads the bot configuration from ``textwallet.yaml`` (or the path named by
``TEXTWALLET_CONFIG``), expands ``${ENV_VAR}`` placeholders, and validates the
result with pydantic models.  Every section has defaults, so a missing file
yields a working NERO testnet configuration with a dry-run channel.
"""

from __future__ import annotations

import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from textwallet.errors import ConfigurationError
from textwallet.wallet.chains import Chain, get_chain


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")

DEFAULT_CONFIG_PATH = Path("textwallet.yaml")
CONFIG_ENV_VAR = "TEXTWALLET_CONFIG"


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class ChainConfig(BaseModel):
    """Which network to talk to, with optional endpoint overrides."""

    network: str = "nero-testnet"
    rpc_url: Optional[str] = None
    explorer_url: Optional[str] = None


class AccountAbstractionConfig(BaseModel):
    """ERC-4337 contracts and the bundler / paymaster endpoints."""

    bundler_rpc: str = "https://bundler-testnet.nerochain.io/"
    paymaster_rpc: str = "https://paymaster-testnet.nerochain.io"
    paymaster_api_key: str = ""       # ${NERO_AA_API_KEY}
    paymaster_type: str = "0"         # 0 = sponsored (free gas)
    entry_point: str = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
    account_factory: str = "0x9406cc6185a346906296840746125a0e44976454"
    salt: int = 0


class GasPolicyConfig(BaseModel):
    """Fixed gas parameters for sponsored operations (no estimation)."""

    call_gas_limit: int = 0x88B8
    verification_gas_limit: int = 0x33450
    pre_verification_gas: int = 0xC350
    max_fee_per_gas: int = 0x435A6E7A
    max_priority_fee_per_gas: int = 0x435A6E6C


class TokenConfig(BaseModel):
    """The USDC test token minted and transferred by the bot."""

    usdc_address: str = "0xec690C24B7451B85B6167a06292e49B5DA822fBE"
    decimals: int = 6
    default_mint_amount: Decimal = Decimal("10")

    @field_validator("default_mint_amount")
    @classmethod
    def _positive(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("default_mint_amount must be a positive number")
        return value


class MessagesConfig(BaseModel):
    """Where incoming messages are read from and how often."""

    db_path: str = "~/Library/Messages/chat.db"
    poll_interval_ms: int = 1000
    batch_size: int = 100

    @property
    def path(self) -> Path:
        return Path(self.db_path).expanduser()


class NotificationsConfig(BaseModel):
    """Outbound reply channel."""

    channel: Literal["applescript", "webhook", "log"] = "log"
    service: str = "iMessage"
    webhook_url: str = ""
    webhook_token: str = ""          # ${TEXTWALLET_WEBHOOK_TOKEN}
    send_progress: bool = False      # notice before each sponsored submission


class StorageConfig(BaseModel):
    """Wallet store location."""

    db_path: str = "data/wallets.db"

    @property
    def path(self) -> Path:
        return Path(self.db_path).expanduser()


class CustodyConfig(BaseModel):
    """How signer secrets are sealed before they reach the wallet store."""

    mode: Literal["plaintext", "keystore"] = "plaintext"
    keystore_password: str = ""      # ${TEXTWALLET_KEYSTORE_PASSWORD}


class GatewayConfig(BaseModel):
    """Timeouts around remote chain calls."""

    timeout_seconds: float = 60.0
    receipt_timeout_seconds: float = 120.0
    receipt_poll_seconds: float = 2.0


class AdminConfig(BaseModel):
    """Admin HTTP API settings."""

    host: str = "127.0.0.1"
    port: int = 4000
    poll: bool = True                # run the message poller alongside the API


class BotConfig(BaseModel):
    """Root configuration object."""

    name: str = "textwallet"
    chain: ChainConfig = Field(default_factory=ChainConfig)
    account_abstraction: AccountAbstractionConfig = Field(default_factory=AccountAbstractionConfig)
    gas: GasPolicyConfig = Field(default_factory=GasPolicyConfig)
    token: TokenConfig = Field(default_factory=TokenConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    custody: CustodyConfig = Field(default_factory=CustodyConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)

    def resolve_chain(self) -> Chain:
        """Return the configured chain preset with any endpoint overrides applied."""
        try:
            chain = get_chain(self.chain.network)
        except KeyError as exc:
            raise ConfigurationError(str(exc)) from exc
        return chain.with_overrides(
            rpc_url=self.chain.rpc_url,
            explorer_url=self.chain.explorer_url,
        )

    def validate_runtime(self) -> None:
        """Check cross-field requirements that pydantic cannot express alone."""
        if self.custody.mode == "keystore" and not self.custody.keystore_password.strip():
            raise ConfigurationError(
                "custody.mode is 'keystore' but custody.keystore_password is empty."
            )
        if self.notifications.channel == "webhook" and not self.notifications.webhook_url:
            raise ConfigurationError(
                "notifications.channel is 'webhook' but notifications.webhook_url is empty."
            )
        if self.messages.batch_size <= 0:
            raise ConfigurationError("messages.batch_size must be positive.")
        if self.messages.poll_interval_ms <= 0:
            raise ConfigurationError("messages.poll_interval_ms must be positive.")


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def default_config_path() -> Path:
    """Return the config path from ``TEXTWALLET_CONFIG`` or ``./textwallet.yaml``."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(path: Path | None = None) -> BotConfig:
    """Load and validate the bot configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation.  A missing file yields the defaults.
    """
    path = path or default_config_path()
    if not path.exists():
        return BotConfig()
    raw_text = path.read_text(encoding="utf-8")
    try:
        raw_data = yaml.safe_load(raw_text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw_data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level.")
    expanded = _expand_env_recursive(raw_data)
    return BotConfig.model_validate(expanded)


def save_config(config: BotConfig, path: Path) -> None:
    """Serialize a :class:`BotConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
