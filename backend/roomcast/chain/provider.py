"""Ethereum JSON-RPC connectivity probe.

Asks a node for its chain id and latest block number. Used as a health
signal for the configured RPC endpoint; no retries, a failure is reported
once to the caller.
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel

from roomcast.errors import UpstreamError

logger = logging.getLogger(__name__)

# Well-known chain ids -> network names
KNOWN_NETWORKS = {
    1: "mainnet",
    10: "optimism",
    56: "bnb",
    137: "matic",
    8453: "base",
    42161: "arbitrum",
    421614: "arbitrum-sepolia",
    11155111: "sepolia",
}


class ChainStatus(BaseModel):
    """Result of a successful connectivity check."""
    network_name: str
    chain_id: int
    block_height: int


class ChainProbe:
    """Pings a JSON-RPC node and reports chain id and block height."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client
        self._request_id = 0

    async def check_connectivity(self) -> ChainStatus:
        """Query ``eth_chainId`` and ``eth_blockNumber``.

        Raises:
            UpstreamError: Transport failure, non-2xx status, JSON-RPC
                error object or a result that is not a hex quantity.
        """
        if self._client is not None:
            return await self._check(self._client)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._check(client)

    async def _check(self, client: httpx.AsyncClient) -> ChainStatus:
        chain_id = _parse_quantity(await self._call(client, "eth_chainId"), "eth_chainId")
        block_height = _parse_quantity(
            await self._call(client, "eth_blockNumber"), "eth_blockNumber"
        )
        status = ChainStatus(
            network_name=KNOWN_NETWORKS.get(chain_id, "unknown"),
            chain_id=chain_id,
            block_height=block_height,
        )
        logger.info(
            "Chain reachable: network=%s chain_id=%d block=%d",
            status.network_name, status.chain_id, status.block_height,
        )
        return status

    async def _call(
        self, client: httpx.AsyncClient, method: str, params: Optional[List[Any]] = None
    ) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        try:
            resp = await client.post(self.rpc_url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.error("RPC %s failed: %s", method, exc)
            raise UpstreamError(f"RPC {method} failed: {exc}") from exc

        if not resp.is_success:
            raise UpstreamError(f"RPC {method} returned HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"RPC {method} returned a non-JSON body") from exc

        if not isinstance(body, dict):
            raise UpstreamError(f"RPC {method} returned an unexpected body")
        if body.get("error"):
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise UpstreamError(f"RPC {method} error: {message}")
        if "result" not in body:
            raise UpstreamError(f"RPC {method} response has no result")
        return body["result"]


def _parse_quantity(value: Any, method: str) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise UpstreamError(f"RPC {method} returned a malformed quantity: {value!r}")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise UpstreamError(f"RPC {method} returned a malformed quantity: {value!r}") from exc
