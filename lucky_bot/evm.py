"""
EVM utilities for interacting with dApp staking and the raffle contracts.
"""

from typing import Any, Optional

import structlog
from eth_account import Account
from pydantic import BaseModel
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.types import TxReceipt

from .config import DappType

logger = structlog.get_logger()

# dApp staking v3 precompile, same address on every Astar network
DAPP_STAKING_ADDRESS = "0x0000000000000000000000000000000000005001"

ATTESTOR_ROLE = Web3.keccak(text="ATTESTOR_ROLE")
REWARD_MANAGER_ROLE = Web3.keccak(text="REWARD_MANAGER_ROLE")


class EVMConfig(BaseModel):
    """Configuration for EVM connection."""

    rpc_url: str
    chain_id: int
    private_key: str = ""
    gas_limit: int = 800_000
    receipt_timeout: float = 120.0


class TransactionRevertedError(Exception):
    """Transaction mined with a failed status."""

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} reverted")


# Minimal ABIs for contracts we interact with
DAPP_STAKING_ABI = [
    {
        "inputs": [],
        "name": "protocol_state",
        "outputs": [
            {
                "components": [
                    {"name": "era", "type": "uint256"},
                    {
                        "components": [
                            {"name": "number", "type": "uint256"},
                            {"name": "subperiod", "type": "uint8"},
                        ],
                        "name": "period",
                        "type": "tuple",
                    },
                ],
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {
                "components": [
                    {"name": "contract_type", "type": "uint8"},
                    {"name": "contract_address", "type": "bytes"},
                ],
                "name": "smart_contract",
                "type": "tuple",
            },
            {"name": "era", "type": "uint256"},
        ],
        "name": "claim_dapp_reward",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

ACCESS_CONTROL_ABI = [
    {
        "inputs": [
            {"name": "role", "type": "bytes32"},
            {"name": "account", "type": "address"},
        ],
        "name": "hasRole",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
]

RAFFLE_CONSUMER_ABI = ACCESS_CONTROL_ABI + [
    {
        "inputs": [],
        "name": "getNextEra",
        "outputs": [{"name": "", "type": "uint32"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getDappsStakingDeveloperAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getRewardManagerAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def encode_smart_contract(address: str, dapp_type: DappType) -> tuple[int, bytes]:
    """
    Encode the dApp as the SmartContract struct of the precompile.

    EVM contracts are 20 bytes, wasm contracts are the 32 byte account id.
    """
    raw = bytes.fromhex(address.removeprefix("0x"))
    expected = 20 if dapp_type == DappType.EVM else 32
    if len(raw) != expected:
        raise ValueError(
            f"{dapp_type.value} contract address must be {expected} bytes, got {len(raw)}"
        )
    return (0 if dapp_type == DappType.EVM else 1, raw)


class EVMClient:
    """
    Async EVM client for dApp staking and the raffle contracts.
    """

    def __init__(self, config: EVMConfig, w3: Optional[AsyncWeb3] = None):
        self.config = config
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))
        self.account = Account.from_key(config.private_key) if config.private_key else None

    @property
    def address(self) -> str:
        """Get account address."""
        if not self.account:
            raise ValueError("No private key configured")
        return self.account.address

    def get_dapp_staking(self) -> Any:
        """Get dApp staking precompile instance."""
        return self.w3.eth.contract(address=DAPP_STAKING_ADDRESS, abi=DAPP_STAKING_ABI)

    def get_raffle_consumer(self, address: str) -> Any:
        """Get RaffleConsumer contract instance."""
        return self.w3.eth.contract(
            address=self.w3.to_checksum_address(address),
            abi=RAFFLE_CONSUMER_ABI,
        )

    def get_access_control(self, address: str) -> Any:
        """Get any contract exposing hasRole()."""
        return self.w3.eth.contract(
            address=self.w3.to_checksum_address(address),
            abi=ACCESS_CONTROL_ABI,
        )

    async def send_transaction(self, function: Any) -> TxReceipt:
        """
        Sign and send a contract call, wait for receipt.

        Raises TransactionRevertedError when the receipt status is not 1.
        """
        if not self.account:
            raise ValueError("No private key configured")

        nonce = await self.w3.eth.get_transaction_count(self.account.address)
        gas_price = await self.w3.eth.gas_price

        tx = await function.build_transaction(
            {
                "chainId": self.config.chain_id,
                "from": self.account.address,
                "nonce": nonce,
                "gas": self.config.gas_limit,
                "gasPrice": gas_price,
            }
        )

        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.debug("tx_sent", tx_hash=tx_hash.hex())

        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.config.receipt_timeout
        )
        if receipt["status"] != 1:
            logger.error("tx_reverted", tx_hash=tx_hash.hex())
            raise TransactionRevertedError(tx_hash.hex())

        logger.debug("tx_confirmed", tx_hash=tx_hash.hex(), gas_used=receipt["gasUsed"])
        return receipt

    # dApp staking

    async def get_current_era(self) -> int:
        """Get the current era from the dApp staking protocol state."""
        state = await self.get_dapp_staking().functions.protocol_state().call()
        era = int(state[0])
        logger.info("current_era", era=era)
        return era

    async def claim_dapp_reward(self, dapp_address: str, dapp_type: DappType, era: int) -> TxReceipt:
        """Claim the developer reward of the dApp for an era."""
        smart_contract = encode_smart_contract(dapp_address, dapp_type)
        function = self.get_dapp_staking().functions.claim_dapp_reward(smart_contract, era)
        receipt = await self.send_transaction(function)
        logger.info(
            "dapp_reward_claimed",
            era=era,
            tx_hash=receipt["transactionHash"].hex(),
            gas_used=receipt["gasUsed"],
        )
        return receipt

    # Raffle consumer

    async def get_next_era_in_raffle_consumer(self, consumer_address: str) -> int:
        """Get the next era the raffle consumer expects a raffle for."""
        era = await self.get_raffle_consumer(consumer_address).functions.getNextEra().call()
        logger.info("next_era_in_raffle_consumer", era=era)
        return int(era)

    async def get_consumer_developer_address(self, consumer_address: str) -> str:
        """Get the dApp staking developer address configured in the consumer."""
        contract = self.get_raffle_consumer(consumer_address)
        return await contract.functions.getDappsStakingDeveloperAddress().call()

    async def get_consumer_reward_manager(self, consumer_address: str) -> str:
        """Get the reward manager address configured in the consumer."""
        contract = self.get_raffle_consumer(consumer_address)
        return await contract.functions.getRewardManagerAddress().call()

    async def has_role(self, contract_address: str, role: bytes, account: str) -> bool:
        """Check an AccessControl grant."""
        contract = self.get_access_control(contract_address)
        return await contract.functions.hasRole(
            role, self.w3.to_checksum_address(account)
        ).call()
