"""
Era reconciliation: claim the dApp staking rewards and run the raffles
for every era the chain has not processed yet.

Nothing is stored locally. Each run reads the progress back from the
indexer and the contracts, so a failed run is resumed by running again.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from .config import RAFFLE_POLL_INTERVAL_SECONDS, DappType

logger = structlog.get_logger()

EraAction = Callable[[int], Awaitable[Any]]


class EraActionError(Exception):
    """The action of an era failed, eras after it were not attempted."""

    def __init__(self, subsystem: str, era: int):
        self.subsystem = subsystem
        self.era = era
        super().__init__(f"{subsystem} failed for era {era}")


async def walk_eras(subsystem: str, start_era: int, current_era: int, action: EraAction) -> int:
    """
    Run `action` for each era in [start_era, current_era), in order.

    The current era is still open on-chain and is never processed. Stops
    at the first failure and raises EraActionError for that era, since an
    era left behind could not be processed once later eras are done.

    Returns the number of eras processed.
    """
    era = start_era
    processed = 0

    while era < current_era:
        logger.info(f"{subsystem}_era_started", era=era, current_era=current_era)
        try:
            await action(era)
        except Exception as e:
            logger.error(f"{subsystem}_era_failed", era=era, error=str(e))
            raise EraActionError(subsystem, era) from e

        logger.info(f"{subsystem}_era_succeeded", era=era)
        era += 1
        processed += 1

    return processed


class ClaimReconciler:
    """
    Claims the developer rewards of every era since the last one received.
    """

    subsystem = "claim"

    def __init__(self, indexer: Any, evm: Any, dapp_address: str, dapp_type: DappType):
        self.indexer = indexer
        self.evm = evm
        self.dapp_address = dapp_address
        self.dapp_type = dapp_type

    async def claim_era(self, era: int) -> None:
        """Claim one era, voting sub-periods have nothing to claim."""
        era_info = await self.indexer.get_era_info(era)
        if not era_info.has_reward:
            logger.info("no_reward_for_voting_sub_period", era=era)
            return

        await self.evm.claim_dapp_reward(self.dapp_address, self.dapp_type, era_info.era)

    async def run(self) -> int:
        """Claim all missing eras. Returns the number of eras processed."""
        last_era_received_reward = await self.indexer.get_last_era_received_reward()
        current_era = await self.evm.get_current_era()

        start_era = last_era_received_reward + 1
        if start_era >= current_era:
            logger.info("claim_up_to_date", last_era=last_era_received_reward, current_era=current_era)
            return 0

        processed = await walk_eras(self.subsystem, start_era, current_era, self.claim_era)
        logger.info("claim_completed", eras=processed)
        return processed


@dataclass
class RaffleSummary:
    """Outcome of a raffle run."""

    attempts: int = 0
    failures: int = 0


class RaffleReconciler:
    """
    Runs the raffle until the consumer has caught up with the current era.

    The consumer contract owns the cursor, so both eras are read again
    after each attempt. A failed attempt is logged and retried after the
    delay, the phat contract may still be settling.
    """

    subsystem = "raffle"

    def __init__(
        self,
        evm: Any,
        phat: Any,
        consumer_address: str,
        poll_interval: float = RAFFLE_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.evm = evm
        self.phat = phat
        self.consumer_address = consumer_address
        self.poll_interval = poll_interval
        self._sleep = sleep

    async def _read_cursors(self) -> tuple[int, int]:
        next_era = await self.evm.get_next_era_in_raffle_consumer(self.consumer_address)
        current_era = await self.evm.get_current_era()
        return next_era, current_era

    async def run(self) -> RaffleSummary:
        """Run the raffle for all missing eras."""
        summary = RaffleSummary()
        next_era, current_era = await self._read_cursors()

        while next_era < current_era:
            logger.info("raffle_era_started", era=next_era, current_era=current_era)
            summary.attempts += 1
            try:
                await self.phat.run_raffle()
                logger.info("raffle_era_succeeded", era=next_era)
            except Exception as e:
                summary.failures += 1
                logger.error("raffle_era_failed", era=next_era, error=str(e))

            logger.debug("raffle_waiting", seconds=self.poll_interval)
            await self._sleep(self.poll_interval)

            next_era, current_era = await self._read_cursors()

        logger.info(
            "raffle_completed",
            next_era=next_era,
            current_era=current_era,
            attempts=summary.attempts,
            failures=summary.failures,
        )
        return summary
