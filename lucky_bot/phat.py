"""
Trigger of the raffle phat contract (off-chain compute).
"""

from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger()


class PhatContractError(Exception):
    """The phat contract rejected the request."""


class PhatContractClient:
    """
    Async client for the phat contract gateway.

    The phat contract reads the raffle consumer, picks the next era itself,
    runs the raffle and pushes the result back on-chain.
    """

    def __init__(
        self,
        endpoint: str,
        contract_id: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.contract_id = contract_id
        self.timeout = timeout
        self._transport = transport
        self._request_id = 0

    async def _call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Make a JSON-RPC call to the gateway."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": {"contractId": self.contract_id, **(params or {})},
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.endpoint, json=payload)
            response.raise_for_status()
            result = response.json()

        if result.get("error"):
            error = result["error"]
            raise PhatContractError(f"{method} failed: {error.get('message', 'Unknown error')}")

        return result.get("result")

    async def run_raffle(self) -> Any:
        """
        Ask the phat contract to answer the pending raffle request.

        No era is sent, the contract works on the next era of the consumer.
        """
        result = await self._call("answerRequest")
        if isinstance(result, dict) and result.get("ok") is False:
            raise PhatContractError(f"answerRequest rejected: {result.get('err', 'unknown')}")

        logger.debug("phat_contract_answered", contract=self.contract_id, result=result)
        return result
