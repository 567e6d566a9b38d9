import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from render_proxy.errors import UpstreamAssetError
from render_proxy.rewrite.normalizer import origin_of
from render_proxy.utils import random_user_agent
from render_proxy.vars import ASSET_MAX_REDIRECTS, ASSET_TIMEOUT

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class FetchedAsset:
    payload: bytes
    content_type: Optional[str]


class AssetFetcher:
    """Downloads sub-resources (images, fonts, scripts) without the renderer."""

    def __init__(
        self,
        timeout: float = ASSET_TIMEOUT,
        max_redirects: int = ASSET_MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport

    def headers_for(self, url: str) -> dict:
        return {
            "User-Agent": random_user_agent(),
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate",
            "Referer": origin_of(url),
        }

    async def fetch(self, url: str) -> FetchedAsset:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                max_redirects=self.max_redirects,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers=self.headers_for(url))
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamAssetError(
                f"Upstream returned {e.response.status_code} for {url}", url=url
            ) from e
        except httpx.TimeoutException as e:
            raise UpstreamAssetError(f"Timeout fetching {url}", url=url) from e
        except httpx.HTTPError as e:
            raise UpstreamAssetError(f"{type(e).__name__}: {e}", url=url) from e

        return FetchedAsset(
            payload=response.content,
            content_type=response.headers.get("content-type"),
        )
