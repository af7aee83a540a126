"""Trending GIF endpoint."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .klipy import KlipyClient
from roomcast.errors import UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gifs", tags=["media"])


def get_klipy_client(request: Request) -> KlipyClient:
    config = request.app.state.config
    return KlipyClient(
        api_key=config.secrets.klipy.api_key,
        customer_id=config.secrets.klipy.customer_id,
        base_url=config.klipy.base_url,
        timeout=config.klipy.timeout_seconds,
    )


@router.get("/trending")
async def trending_gifs(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=50),
    locale: Optional[str] = Query(None, description="Locale, defaults to klipy.default_locale"),
    client: KlipyClient = Depends(get_klipy_client),
) -> dict:
    """Proxy one page of trending GIFs.

    Raises:
        HTTPException: 502 when Klipy is unreachable, misconfigured or errors.
    """
    locale = locale or request.app.state.config.klipy.default_locale
    try:
        items = await client.fetch_trending(page, per_page, locale)
    except UpstreamError as exc:
        logger.error(f"[GIF] Trending fetch failed: {exc}")
        raise HTTPException(status_code=502, detail=str(exc))
    return {"data": [item.model_dump() for item in items]}
