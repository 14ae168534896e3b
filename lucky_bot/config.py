"""
Configuration management for the Lucky bot.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from eth_account import Account
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Delay between two raffle runs, the phat contract needs time to settle
RAFFLE_POLL_INTERVAL_SECONDS = 30


class ConfigurationError(Exception):
    """Missing or invalid configuration."""


class Network(str, Enum):
    """Supported networks."""

    SHIBUYA = "shibuya"
    SHIDEN = "shiden"
    ASTAR = "astar"


class DappType(str, Enum):
    """Kind of smart contract registered in dApp staking."""

    EVM = "evm"
    WASM = "wasm"


class NetworkConfig(BaseModel):
    """Built-in parameters of a network."""

    name: Network
    rpc_url: str
    chain_id: int


NETWORKS: dict[Network, NetworkConfig] = {
    Network.SHIBUYA: NetworkConfig(
        name=Network.SHIBUYA,
        rpc_url="https://evm.shibuya.astar.network",
        chain_id=81,
    ),
    Network.SHIDEN: NetworkConfig(
        name=Network.SHIDEN,
        rpc_url="https://evm.shiden.astar.network",
        chain_id=336,
    ),
    Network.ASTAR: NetworkConfig(
        name=Network.ASTAR,
        rpc_url="https://evm.astar.network",
        chain_id=592,
    ),
}


class Settings(BaseSettings):
    """
    Environment-based settings.

    Every field can be overridden with a LUCKY_ prefixed variable,
    e.g. LUCKY_INDEXER_URL.
    """

    model_config = SettingsConfigDict(
        env_prefix="LUCKY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # EVM endpoint, falls back to the network preset when empty
    rpc_url: str = Field(default="", description="EVM RPC URL")
    private_key: str = Field(default="", description="Key used to sign claim transactions")
    gas_limit: int = Field(default=800_000, description="Gas limit of the claim transactions")

    # Off-chain services
    indexer_url: str = Field(default="", description="GraphQL endpoint of the indexer")
    phat_endpoint: str = Field(default="", description="Gateway used to trigger the phat contract")
    phat_contract_id: str = Field(default="", description="Id of the raffle phat contract")

    # Contracts
    dapp_address: str = Field(default="", description="Contract registered in dApp staking")
    dapp_type: DappType = Field(default=DappType.WASM)
    indexer_dapp_id: str = Field(
        default="",
        description="Id of the dApp in the indexer, defaults to dapp_address",
    )
    raffle_consumer_address: str = Field(default="", description="Raffle consumer contract")
    reward_manager_address: str = Field(default="", description="Reward manager contract")
    attestor_address: str = Field(default="", description="Address of the phat contract attestor")

    # Timing
    raffle_poll_interval_seconds: float = RAFFLE_POLL_INTERVAL_SECONDS
    http_timeout_seconds: float = 30.0
    tx_receipt_timeout_seconds: float = 120.0


@dataclass
class LuckyConfig:
    """Full bot configuration: network preset plus settings."""

    network: NetworkConfig
    settings: Settings

    @classmethod
    def from_env(cls, network: str, env_path: Optional[Path] = None) -> "LuckyConfig":
        """Load configuration for a network from environment."""
        try:
            net = Network(network)
        except ValueError:
            choices = ", ".join(n.value for n in Network)
            raise ConfigurationError(f"Unknown network '{network}' (expected one of: {choices})") from None

        settings = Settings(_env_file=env_path) if env_path else Settings()
        return cls(network=NETWORKS[net], settings=settings)

    @property
    def rpc_url(self) -> str:
        return self.settings.rpc_url or self.network.rpc_url

    @property
    def indexer_dapp_id(self) -> str:
        """Key of the dApp in the indexer, e.g. its SS58 address for wasm."""
        return self.settings.indexer_dapp_id or self.settings.dapp_address

    @property
    def chain_id(self) -> int:
        return self.network.chain_id

    @property
    def signer_address(self) -> Optional[str]:
        """Address derived from the private key, if any."""
        if not self.settings.private_key:
            return None
        return Account.from_key(self.settings.private_key).address

    def require(self, *fields: str) -> None:
        """Raise ConfigurationError if one of the settings fields is empty."""
        missing = [name for name in fields if not getattr(self.settings, name)]
        if missing:
            names = ", ".join(f"LUCKY_{name.upper()}" for name in missing)
            raise ConfigurationError(f"Missing configuration: {names}")

    def describe(self) -> list[tuple[str, str]]:
        """Rows shown by --display-configuration. Never includes the key."""
        s = self.settings
        return [
            ("Network", self.network.name.value),
            ("Chain id", str(self.chain_id)),
            ("RPC", self.rpc_url),
            ("Indexer", s.indexer_url or "-"),
            ("Phat endpoint", s.phat_endpoint or "-"),
            ("Phat contract", s.phat_contract_id or "-"),
            ("dApp", f"{s.dapp_address or '-'} ({s.dapp_type.value})"),
            ("Indexer dApp id", self.indexer_dapp_id or "-"),
            ("Raffle consumer", s.raffle_consumer_address or "-"),
            ("Reward manager", s.reward_manager_address or "-"),
            ("Attestor", s.attestor_address or "-"),
            ("Signer", self.signer_address or "-"),
        ]
