"""
Checks of the grants and of the raffle consumer configuration.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from .evm import ATTESTOR_ROLE, REWARD_MANAGER_ROLE

logger = structlog.get_logger()


@dataclass
class CheckResult:
    """Outcome of a single check."""

    name: str
    passed: bool
    detail: str = ""


class CheckFailedError(Exception):
    """One or more checks did not pass."""

    def __init__(self, failed: list[CheckResult]):
        self.failed = failed
        names = ", ".join(result.name for result in failed)
        super().__init__(f"Checks failed: {names}")


def _same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


async def check_grants(
    evm: Any,
    consumer_address: str,
    reward_manager_address: str,
    attestor_address: str,
) -> list[CheckResult]:
    """Check the roles granted between the raffle contracts."""
    results = []

    attestor_granted = await evm.has_role(consumer_address, ATTESTOR_ROLE, attestor_address)
    results.append(
        CheckResult(
            name="attestor_role",
            passed=attestor_granted,
            detail=f"consumer {consumer_address} grants ATTESTOR_ROLE to {attestor_address}",
        )
    )

    manager_granted = await evm.has_role(
        reward_manager_address, REWARD_MANAGER_ROLE, consumer_address
    )
    results.append(
        CheckResult(
            name="reward_manager_role",
            passed=manager_granted,
            detail=f"reward manager {reward_manager_address} grants REWARD_MANAGER_ROLE to {consumer_address}",
        )
    )

    return results


async def check_raffle_consumer_configuration(
    evm: Any,
    consumer_address: str,
    developer_address: str,
    reward_manager_address: str,
) -> list[CheckResult]:
    """Check the addresses configured in the raffle consumer."""
    developer = await evm.get_consumer_developer_address(consumer_address)
    manager = await evm.get_consumer_reward_manager(consumer_address)

    return [
        CheckResult(
            name="consumer_developer_address",
            passed=_same_address(developer, developer_address),
            detail=f"expected {developer_address}, got {developer}",
        ),
        CheckResult(
            name="consumer_reward_manager",
            passed=_same_address(manager, reward_manager_address),
            detail=f"expected {reward_manager_address}, got {manager}",
        ),
    ]


def report(results: list[CheckResult]) -> None:
    """Log every result, raise CheckFailedError if any failed."""
    for result in results:
        if result.passed:
            logger.info("check_passed", check=result.name, detail=result.detail)
        else:
            logger.error("check_failed", check=result.name, detail=result.detail)

    failed = [result for result in results if not result.passed]
    if failed:
        raise CheckFailedError(failed)
