"""Chain definitions for supported account-abstraction networks."""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Chain:
    """An EVM-compatible network with an ERC-4337 stack."""

    name: str
    display_name: str
    chain_id: int
    rpc_url: str
    native_symbol: str
    explorer_url: str

    def with_overrides(
        self, rpc_url: str | None = None, explorer_url: str | None = None
    ) -> Chain:
        """Return a copy with the given endpoints replaced (``None`` keeps the preset)."""
        return replace(
            self,
            rpc_url=rpc_url or self.rpc_url,
            explorer_url=(explorer_url or self.explorer_url).rstrip("/"),
        )

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"


CHAINS: dict[str, Chain] = {
    "nero-testnet": Chain(
        name="nero-testnet",
        display_name="NERO Chain Testnet",
        chain_id=689,
        rpc_url="https://rpc-testnet.nerochain.io",
        native_symbol="NERO",
        explorer_url="https://testnet.neroscan.io",
    ),
    "nero-devnet": Chain(
        name="nero-devnet",
        display_name="NERO Devnet",
        chain_id=50002,
        rpc_url="https://devnet.dplabs-internal.com",
        native_symbol="NERO",
        explorer_url="https://blockscan.xyz",
    ),
}


def get_chain(name: str) -> Chain:
    """Get a chain by name. Raises ``KeyError`` if not found."""
    if name not in CHAINS:
        raise KeyError(
            f"Unknown chain '{name}'. Available: {list_chain_names()}"
        )
    return CHAINS[name]


def list_chain_names() -> list[str]:
    """Return the names of all supported chains."""
    return list(CHAINS.keys())
