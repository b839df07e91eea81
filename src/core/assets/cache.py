"""
Asset Cache
===========

Process-lifetime cache of resolved dynamic assets, keyed by the serialized
asset request. Entries are never evicted: a given (kind, text) pair always
resolves to the same asset, so repeated renders reuse the first fetch.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.models.schemas import Asset

logger = get_logger(__name__)


def key_for(kind: str, text: str) -> str:
    """Serialized identity of an asset request."""
    return json.dumps([kind, text], ensure_ascii=False)


class AssetCache:
    """Append-only asset cache with optional in-flight request sharing."""

    def __init__(self, dedupe_inflight: bool = True):
        self.dedupe_inflight = dedupe_inflight
        self.hits = 0
        self.misses = 0
        self._entries: Dict[str, Asset] = {}
        self._inflight: Dict[str, "asyncio.Future[Optional[Asset]]"] = {}
        self.logger: Any = logger.bind(component="asset_cache")

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Asset]:
        return self._entries.get(key)

    def put(self, key: str, asset: Asset) -> None:
        # Last write wins; values for a key are deterministic.
        self._entries[key] = asset

    async def get_or_compute(
        self, key: str, factory: Callable[[], Awaitable[Optional[Asset]]]
    ) -> Optional[Asset]:
        """
        Return the cached asset for ``key`` or compute and store it.

        A ``None`` result or an exception is never stored, so the next
        request for the same key computes again. With ``dedupe_inflight``
        concurrent callers for a missing key share a single computation.
        """
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        if not self.dedupe_inflight:
            self.misses += 1
            return await self._compute(key, factory)

        # misses counts computations started, not callers joining one
        pending = self._inflight.get(key)
        if pending is None:
            self.misses += 1
            pending = asyncio.ensure_future(self._compute(key, factory))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            self.logger.debug("Joining in-flight asset request", key=key)

        # A cancelled waiter must not cancel the shared computation
        return await asyncio.shield(pending)

    async def _compute(
        self, key: str, factory: Callable[[], Awaitable[Optional[Asset]]]
    ) -> Optional[Asset]:
        asset = await factory()
        if asset is not None:
            self.put(key, asset)
        return asset

    def clear(self) -> None:
        """Drop every entry. Only meant for tests and tooling."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0


# Global cache instance
_asset_cache: Optional[AssetCache] = None


def get_asset_cache() -> AssetCache:
    """Get or create the process-wide asset cache."""
    global _asset_cache
    if _asset_cache is None:
        _asset_cache = AssetCache(dedupe_inflight=get_settings().dedupe_inflight_assets)
    return _asset_cache
