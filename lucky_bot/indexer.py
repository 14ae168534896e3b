"""
Off-chain indexer access (GraphQL over HTTP).
"""

from enum import Enum
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()


class SubPeriod(str, Enum):
    """dApp staking sub-period of an era."""

    VOTING = "Voting"
    BUILD_AND_EARN = "BuildAndEarn"


class EraInfo(BaseModel):
    """Sub-period classification of an era."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    era: int
    sub_period: SubPeriod = Field(alias="subPeriod")

    @property
    def has_reward(self) -> bool:
        """No developer reward is minted during voting sub-periods."""
        return self.sub_period != SubPeriod.VOTING


class IndexerError(Exception):
    """Error returned by the indexer."""

    def __init__(self, message: str, errors: Optional[list[Any]] = None):
        self.errors = errors or []
        super().__init__(message)


ERA_INFO_QUERY = """
query EraInfo($era: BigFloat!) {
  eras(filter: { era: { equalTo: $era } }, first: 1) {
    nodes { era subPeriod }
  }
}
"""

LAST_DEVELOPER_REWARD_QUERY = """
query LastDeveloperReward($dapp: String!) {
  developerRewards(filter: { dApp: { equalTo: $dapp } }, orderBy: ERA_DESC, first: 1) {
    nodes { era }
  }
}
"""


class IndexerClient:
    """
    Async client for the GraphQL indexer.

    The indexer exposes the sub-period of every era and the developer
    rewards already received by the dApp.
    """

    def __init__(
        self,
        url: str,
        dapp_address: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.dapp_address = dapp_address
        self.timeout = timeout
        self._transport = transport

    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its data."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.url,
                json={"query": query, "variables": variables},
            )
            response.raise_for_status()
            result = response.json()

        if result.get("errors"):
            errors = result["errors"]
            message = errors[0].get("message", "Unknown error") if isinstance(errors[0], dict) else str(errors[0])
            raise IndexerError(f"Indexer error: {message}", errors)

        data = result.get("data")
        if data is None:
            raise IndexerError("Indexer returned no data")
        return data

    async def get_era_info(self, era: int) -> EraInfo:
        """Get the sub-period of an era."""
        data = await self._query(ERA_INFO_QUERY, {"era": str(era)})
        nodes = data.get("eras", {}).get("nodes", [])
        if not nodes:
            raise IndexerError(f"Era {era} not found in indexer")

        info = EraInfo(era=int(nodes[0]["era"]), sub_period=SubPeriod(nodes[0]["subPeriod"]))
        logger.debug("era_info", era=info.era, sub_period=info.sub_period.value)
        return info

    async def get_last_era_received_reward(self) -> int:
        """
        Get the last era for which the dApp received its developer reward.

        Returns 0 when no reward has been received yet.
        """
        data = await self._query(LAST_DEVELOPER_REWARD_QUERY, {"dapp": self.dapp_address})
        nodes = data.get("developerRewards", {}).get("nodes", [])
        era = int(nodes[0]["era"]) if nodes else 0
        logger.info("last_era_received_reward", era=era)
        return era
