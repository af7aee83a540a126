"""Klipy trending-GIF client.

Thin async wrapper around the Klipy REST API:
1. GET {base_url}/{api_key}/gifs/trending with page, per_page, customer_id, locale
2. Normalize each item to id + media URL (+ optional title)
"""
import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel

from roomcast.errors import UpstreamError

logger = logging.getLogger(__name__)


class GifItem(BaseModel):
    """One trending GIF."""
    id: str
    mediaUrl: str
    title: Optional[str] = None


class KlipyClient:
    """Fetches trending GIFs from Klipy."""

    DEFAULT_BASE_URL = "https://api.klipy.com/api/v1"

    def __init__(
        self,
        api_key: Optional[str],
        customer_id: Optional[str],
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.customer_id = customer_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def fetch_trending(
        self, page: int = 1, per_page: int = 10, locale: str = "en"
    ) -> List[GifItem]:
        """Fetch one page of trending GIFs.

        Returns:
            Items in the order Klipy returned them.

        Raises:
            UpstreamError: Missing credentials, transport failure, non-2xx
                status, or a response body that is not the expected shape.
        """
        if not self.api_key or not self.customer_id:
            raise UpstreamError(
                "Missing Klipy API credentials. Set klipy.api_key and "
                "klipy.customer_id (or KLIPY_API_KEY / KLIPY_CUSTOMER_ID)"
            )

        url = f"{self.base_url}/{self.api_key}/gifs/trending"
        params = {
            "page": page,
            "per_page": per_page,
            "customer_id": self.customer_id,
            "locale": locale,
        }
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.error("Klipy request failed: %s", exc)
            raise UpstreamError(f"Klipy request failed: {exc}") from exc

        if not resp.is_success:
            raise UpstreamError(f"API Error: {resp.status_code} - {resp.reason_phrase}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError("Klipy returned a non-JSON body") from exc

        data = body.get("data") if isinstance(body, dict) else None
        # Some Klipy endpoints nest the list one level deeper
        if isinstance(data, dict):
            data = data.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise UpstreamError("Klipy response 'data' is not a list")

        items = [item for item in (_to_gif_item(raw) for raw in data) if item is not None]
        logger.debug("Fetched %d trending GIFs (page=%s, locale=%s)", len(items), page, locale)
        return items


def _to_gif_item(raw) -> Optional[GifItem]:
    if not isinstance(raw, dict):
        return None
    item_id = raw.get("id")
    media_url = raw.get("gif") or raw.get("mediaUrl") or raw.get("url")
    if item_id is None or not media_url or not isinstance(media_url, str):
        return None
    title = raw.get("title")
    return GifItem(
        id=str(item_id),
        mediaUrl=media_url,
        title=title if isinstance(title, str) else None,
    )
