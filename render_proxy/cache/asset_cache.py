import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from render_proxy.vars import ASSET_CACHE, ASSET_CACHE_TTL

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class CachedAsset:
    payload: bytes
    content_type: Optional[str]
    captured_at: float


class AssetCacheBase(ABC):
    """
    Asset store keyed by the exact asset URL.

    Entries older than the TTL are treated as absent; they are evicted by the
    lookup that finds them, there is no background sweep.
    """

    @abstractmethod
    def get(self, url: str) -> CachedAsset | None:
        pass

    @abstractmethod
    def put(self, url: str, payload: bytes, content_type: Optional[str]):
        pass

    @abstractmethod
    def clear(self):
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


def asset_cache(name: str = ASSET_CACHE, **kwargs) -> AssetCacheBase:
    if name == "InMemoryAssetCache":
        return InMemoryAssetCache(**kwargs)
    cls = globals().get(name)
    if isinstance(cls, type) and issubclass(cls, AssetCacheBase):
        return cls(**kwargs)
    else:
        raise ValueError(f"Unknown asset cache type: {name}")


class InMemoryAssetCache(AssetCacheBase):
    def __init__(
        self,
        ttl: float = ASSET_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._assets: dict[str, CachedAsset] = {}

    def get(self, url: str) -> CachedAsset | None:
        entry = self._assets.get(url)
        if entry is None:
            return None
        if self._clock() - entry.captured_at < self.ttl:
            return entry
        logger.debug(f"[Asset] Cache entry expired for {url}")
        self._assets.pop(url, None)
        return None

    def put(self, url: str, payload: bytes, content_type: Optional[str]):
        self._assets[url] = CachedAsset(
            payload=payload, content_type=content_type, captured_at=self._clock()
        )

    def clear(self):
        self._assets.clear()

    def __len__(self) -> int:
        return len(self._assets)
