"""
Lucky bot

Claims the dApp staking developer rewards of the Lucky dApp and triggers
the raffle phat contract for every era not processed yet, on Astar,
Shiden or Shibuya.

Usage:
    # Display configuration and on-chain progress
    lucky-bot --net shibuya --dc --di

    # Check grants and the raffle consumer configuration
    lucky-bot --net shibuya --checks

    # Claim all missing eras, then run all missing raffles
    lucky-bot --net astar --claim --raffle
"""

__version__ = "0.1.0"

from .config import ConfigurationError, LuckyConfig, Network, Settings
from .evm import EVMClient, EVMConfig
from .indexer import EraInfo, IndexerClient, SubPeriod
from .phat import PhatContractClient
from .reconciler import ClaimReconciler, EraActionError, RaffleReconciler, walk_eras

__all__ = [
    "__version__",
    "ConfigurationError",
    "LuckyConfig",
    "Network",
    "Settings",
    "EVMClient",
    "EVMConfig",
    "EraInfo",
    "IndexerClient",
    "SubPeriod",
    "PhatContractClient",
    "ClaimReconciler",
    "EraActionError",
    "RaffleReconciler",
    "walk_eras",
]
