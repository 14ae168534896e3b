"""
Tests for era reconciliation.

The chain and the indexer are replaced by in-memory fakes recording
every call, so ordering and stop conditions can be asserted directly.
"""

from typing import Optional

import pytest
from structlog.testing import capture_logs

from lucky_bot.config import DappType
from lucky_bot.indexer import EraInfo, SubPeriod
from lucky_bot.reconciler import (
    ClaimReconciler,
    EraActionError,
    RaffleReconciler,
    walk_eras,
)

DAPP = "0x" + "11" * 32


class FakeIndexer:
    """Indexer with a fixed last era and per-era sub-periods."""

    def __init__(self, last_era: int, voting_eras: Optional[set[int]] = None):
        self.last_era = last_era
        self.voting_eras = voting_eras or set()
        self.era_info_calls: list[int] = []

    async def get_last_era_received_reward(self) -> int:
        return self.last_era

    async def get_era_info(self, era: int) -> EraInfo:
        self.era_info_calls.append(era)
        sub_period = SubPeriod.VOTING if era in self.voting_eras else SubPeriod.BUILD_AND_EARN
        return EraInfo(era=era, sub_period=sub_period)


class FakeChain:
    """dApp staking and raffle consumer state."""

    def __init__(
        self,
        current_era: int,
        next_raffle_era: int = 0,
        failing_claims: Optional[set[int]] = None,
    ):
        self.current_era = current_era
        self.next_raffle_era = next_raffle_era
        self.failing_claims = failing_claims or set()
        self.claims: list[int] = []
        self.current_era_reads = 0

    async def get_current_era(self) -> int:
        self.current_era_reads += 1
        return self.current_era

    async def claim_dapp_reward(self, dapp_address: str, dapp_type: DappType, era: int) -> None:
        self.claims.append(era)
        if era in self.failing_claims:
            raise RuntimeError(f"claim reverted for era {era}")

    async def get_next_era_in_raffle_consumer(self, consumer_address: str) -> int:
        return self.next_raffle_era


class FakePhat:
    """Phat contract advancing the consumer of the chain on success."""

    def __init__(self, chain: FakeChain, outcomes: Optional[list[bool]] = None):
        self.chain = chain
        self.outcomes = list(outcomes or [])
        self.calls = 0

    async def run_raffle(self) -> None:
        self.calls += 1
        ok = self.outcomes.pop(0) if self.outcomes else True
        if not ok:
            raise RuntimeError("phat contract still settling")
        self.chain.next_raffle_era += 1


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def claim_reconciler(indexer: FakeIndexer, chain: FakeChain) -> ClaimReconciler:
    return ClaimReconciler(indexer, chain, DAPP, DappType.WASM)


class TestWalkEras:
    """Tests for the era walk."""

    @pytest.mark.asyncio
    async def test_processes_each_era_in_order(self) -> None:
        """Every era from start to current - 1, ascending."""
        seen: list[int] = []

        async def action(era: int) -> None:
            seen.append(era)

        processed = await walk_eras("test", 3, 7, action)

        assert seen == [3, 4, 5, 6]
        assert processed == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,current", [(5, 5), (6, 5), (0, 0)])
    async def test_nothing_outstanding(self, start: int, current: int) -> None:
        """start >= current performs no iteration."""
        seen: list[int] = []

        async def action(era: int) -> None:
            seen.append(era)

        assert await walk_eras("test", start, current, action) == 0
        assert seen == []

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self) -> None:
        """No era after the failing one is attempted."""
        seen: list[int] = []

        async def action(era: int) -> None:
            seen.append(era)
            if era == 4:
                raise ValueError("boom")

        with capture_logs() as logs, pytest.raises(EraActionError) as exc_info:
            await walk_eras("test", 2, 10, action)

        assert seen == [2, 3, 4]
        assert exc_info.value.era == 4
        assert exc_info.value.subsystem == "test"
        assert isinstance(exc_info.value.__cause__, ValueError)

        failures = [entry for entry in logs if entry["event"] == "test_era_failed"]
        assert len(failures) == 1
        assert failures[0]["era"] == 4
        assert failures[0]["log_level"] == "error"


class TestClaimReconciler:
    """Tests for the reward-claim reconciler."""

    @pytest.mark.asyncio
    async def test_scenario_a_claims_missing_eras(self) -> None:
        """last=10, current=13 claims eras 11 and 12 only."""
        indexer = FakeIndexer(last_era=10)
        chain = FakeChain(current_era=13)

        processed = await claim_reconciler(indexer, chain).run()

        assert chain.claims == [11, 12]
        assert processed == 2

    @pytest.mark.asyncio
    async def test_scenario_b_voting_era_is_not_claimed(self) -> None:
        """A voting era is processed without a claim transaction."""
        indexer = FakeIndexer(last_era=10, voting_eras={11})
        chain = FakeChain(current_era=13)

        processed = await claim_reconciler(indexer, chain).run()

        assert indexer.era_info_calls == [11, 12]
        assert chain.claims == [12]
        assert processed == 2

    @pytest.mark.asyncio
    async def test_scenario_c_failure_aborts_run(self) -> None:
        """A failed claim stops the run at that era."""
        indexer = FakeIndexer(last_era=10)
        chain = FakeChain(current_era=15, failing_claims={12})

        with pytest.raises(EraActionError) as exc_info:
            await claim_reconciler(indexer, chain).run()

        assert exc_info.value.era == 12
        assert chain.claims == [11, 12]
        assert indexer.era_info_calls == [11, 12]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("last,current", [(12, 13), (13, 13), (20, 13)])
    async def test_up_to_date(self, last: int, current: int) -> None:
        """last + 1 >= current performs no claim."""
        indexer = FakeIndexer(last_era=last)
        chain = FakeChain(current_era=current)

        assert await claim_reconciler(indexer, chain).run() == 0
        assert chain.claims == []
        assert indexer.era_info_calls == []

    @pytest.mark.asyncio
    async def test_current_era_read_once(self) -> None:
        """Both cursors are read once before looping."""
        indexer = FakeIndexer(last_era=0)
        chain = FakeChain(current_era=5)

        await claim_reconciler(indexer, chain).run()

        assert chain.current_era_reads == 1
        assert chain.claims == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_rerun_resumes_from_progress_source(self) -> None:
        """A second run starts from whatever the indexer reports."""
        indexer = FakeIndexer(last_era=10)
        chain = FakeChain(current_era=14, failing_claims={12})

        with pytest.raises(EraActionError):
            await claim_reconciler(indexer, chain).run()

        # era 11 was claimed on-chain, the indexer caught up
        indexer.last_era = 11
        chain.failing_claims.clear()
        chain.claims.clear()

        assert await claim_reconciler(indexer, chain).run() == 2
        assert chain.claims == [12, 13]


class TestRaffleReconciler:
    """Tests for the raffle reconciler."""

    def reconciler(self, chain: FakeChain, phat: FakePhat, sleep: RecordingSleep) -> RaffleReconciler:
        return RaffleReconciler(chain, phat, "0x" + "22" * 20, poll_interval=30, sleep=sleep)

    @pytest.mark.asyncio
    async def test_scenario_d_nothing_to_do(self) -> None:
        """next=5, current=5 exits without any raffle call."""
        chain = FakeChain(current_era=5, next_raffle_era=5)
        phat = FakePhat(chain)
        sleep = RecordingSleep()

        summary = await self.reconciler(chain, phat, sleep).run()

        assert phat.calls == 0
        assert sleep.delays == []
        assert summary.attempts == 0

    @pytest.mark.asyncio
    async def test_runs_until_consumer_catches_up(self) -> None:
        """One raffle and one delay per missing era."""
        chain = FakeChain(current_era=8, next_raffle_era=5)
        phat = FakePhat(chain)
        sleep = RecordingSleep()

        summary = await self.reconciler(chain, phat, sleep).run()

        assert phat.calls == 3
        assert sleep.delays == [30, 30, 30]
        assert chain.next_raffle_era == 8
        assert summary.attempts == 3
        assert summary.failures == 0

    @pytest.mark.asyncio
    async def test_failure_is_retried_after_delay(self) -> None:
        """A failed raffle does not stop the loop."""
        chain = FakeChain(current_era=7, next_raffle_era=5)
        phat = FakePhat(chain, outcomes=[False, True, False, True])
        sleep = RecordingSleep()

        with capture_logs() as logs:
            summary = await self.reconciler(chain, phat, sleep).run()

        assert phat.calls == 4
        assert sleep.delays == [30] * 4
        assert summary.failures == 2
        assert chain.next_raffle_era == 7

        failed_eras = [entry["era"] for entry in logs if entry["event"] == "raffle_era_failed"]
        assert failed_eras == [5, 6]
        succeeded_eras = [entry["era"] for entry in logs if entry["event"] == "raffle_era_succeeded"]
        assert succeeded_eras == [5, 6]

    @pytest.mark.asyncio
    async def test_current_era_reread_each_iteration(self) -> None:
        """An era closing during the run is picked up."""
        chain = FakeChain(current_era=6, next_raffle_era=5)
        phat = FakePhat(chain)

        class AdvancingSleep(RecordingSleep):
            async def __call__(self, seconds: float) -> None:
                await super().__call__(seconds)
                if len(self.delays) == 1:
                    chain.current_era = 7

        sleep = AdvancingSleep()
        summary = await self.reconciler(chain, phat, sleep).run()

        assert phat.calls == 2
        assert summary.attempts == 2
        assert chain.next_raffle_era == 7
