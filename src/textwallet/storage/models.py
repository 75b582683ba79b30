"""Pydantic models mapping to the textwallet database tables."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, SecretStr


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WalletRecord(BaseModel):
    """Maps to the ``wallets`` table. One row per identity.

    ``signer_secret`` holds the custody-sealed key. ``SecretStr`` keeps it
    out of ``repr``, logs and default serialisation.
    """

    identity: str
    signer_secret: SecretStr
    signer_address: str
    wallet_address: str
    is_deployed: bool = False
    chain_id: int
    network: str
    registered_at: datetime = Field(default_factory=_utcnow)

    def masked_secret(self) -> str:
        """First six characters of the sealed secret followed by an ellipsis."""
        return self.signer_secret.get_secret_value()[:6] + "..."

    @classmethod
    def from_row(cls, row: dict) -> WalletRecord:
        return cls(
            identity=row["identity"],
            signer_secret=row["signer_secret"],
            signer_address=row["signer_address"],
            wallet_address=row["wallet_address"],
            is_deployed=bool(row["is_deployed"]),
            chain_id=row["chain_id"],
            network=row["network"],
            registered_at=row["registered_at"],
        )

    def to_row(self) -> tuple:
        """Column values in ``wallets`` table order."""
        return (
            self.identity,
            self.signer_secret.get_secret_value(),
            self.signer_address,
            self.wallet_address,
            int(self.is_deployed),
            self.chain_id,
            self.network,
            self.registered_at.isoformat(),
        )

    def public_view(self) -> dict:
        """Serialisable view for admin surfaces, secret masked."""
        data = self.model_dump(mode="json", exclude={"signer_secret"})
        data["signer_secret"] = self.masked_secret()
        return data
