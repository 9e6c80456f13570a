from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from .errors import UpstreamError
from .geo import filter_by_distance
from .utils import TTLCache
from .windy import WindyWebcamsClient, as_webcams, build_client_from_env

logger = logging.getLogger(__name__)


def make_cache_key(lat: float, lon: float, radius_km: float) -> str:
    # exact floats: the key must not merge values the filter tells apart
    return f"webcams:{float(lat)!r}:{float(lon)!r}:{float(radius_km)!r}"


def _copy_result(result: Dict[str, Any]) -> Dict[str, Any]:
    # callers get their own dict and list; the webcam records are shared
    out = dict(result)
    out["webcams"] = list(result.get("webcams") or [])
    return out


class WebcamRelay:
    """Nearby webcam search backed by the Windy API and a TTL cache.

    Only successful, filtered results are cached. Each call returns a fresh
    top-level dict and webcams list, so callers may modify them. Two concurrent
    misses for the same key may both reach the upstream; the later one
    overwrites the entry.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: Optional[WindyWebcamsClient] = None,
        client_factory: Callable[[], WindyWebcamsClient] = build_client_from_env,
    ):
        self.cache = cache
        self._client = client
        self._client_factory = client_factory

    def _get_client(self) -> WindyWebcamsClient:
        """Built on first use so the server still starts without an API key."""
        if self._client is None:
            try:
                self._client = self._client_factory()
            except RuntimeError as e:
                raise UpstreamError(str(e)) from e
        return self._client

    async def search(self, lat: float, lon: float, radius_km: float) -> Dict[str, Any]:
        cache_key = make_cache_key(lat, lon, radius_km)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("cache hit %s", cache_key)
            return _copy_result(cached)
        logger.debug("cache miss %s", cache_key)

        data = await self._get_client().fetch_nearby(lat, lon, radius_km)

        result = dict(data)
        result["webcams"] = filter_by_distance(as_webcams(data), lat, lon, radius_km)
        logger.info(
            "webcams near %.4f,%.4f within %gkm: %d of %d",
            lat,
            lon,
            radius_km,
            len(result["webcams"]),
            len(data.get("webcams") or []),
        )

        self.cache.set(cache_key, result)
        return _copy_result(result)
