"""Chain connectivity endpoint."""
import logging

from fastapi import APIRouter, Depends, Request

from .provider import ChainProbe
from roomcast.errors import UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chain", tags=["chain"])


def get_chain_probe(request: Request) -> ChainProbe:
    config = request.app.state.config
    return ChainProbe(config.chain.rpc_url, timeout=config.chain.timeout_seconds)


@router.get("/status")
async def chain_status(probe: ChainProbe = Depends(get_chain_probe)) -> dict:
    """Report whether the configured RPC node is reachable.

    Returns:
        dict: {success: true, network, chainId, blockNumber} on success,
              {success: false, error} otherwise.
    """
    try:
        status = await probe.check_connectivity()
    except UpstreamError as exc:
        logger.warning(f"[Chain] Connectivity check failed: {exc}")
        return {"success": False, "error": str(exc)}
    return {
        "success": True,
        "network": status.network_name,
        "chainId": status.chain_id,
        "blockNumber": status.block_height,
    }
