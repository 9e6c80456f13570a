from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from .errors import UpstreamError

logger = logging.getLogger(__name__)

BASE_URL = "https://api.windy.com/webcams/api/v3"

# nearby search rejects anything wider
MAX_UPSTREAM_RADIUS_KM = 250


def _safe_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return default


def _fmt_coord(v: float) -> str:
    return f"{v:.6f}".rstrip("0").rstrip(".")


def as_webcams(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    # missing or null "webcams" is an empty result
    items = payload.get("webcams")
    if not items:
        return []
    if isinstance(items, dict):
        return [items]
    if not isinstance(items, list):
        raise UpstreamError(f"Windy API returned webcams as {type(items).__name__}, expected a list")
    return [w for w in items if isinstance(w, dict)]


class WindyWebcamsClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 15,
        limit: int = 50,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.limit = limit
        self._transport = transport

    async def fetch_nearby(self, lat: float, lon: float, radius_km: float) -> Dict[str, Any]:
        """One upstream nearby search. Raises UpstreamError on any failure."""
        radius = min(radius_km, MAX_UPSTREAM_RADIUS_KM)
        params = {
            "nearby": f"{_fmt_coord(lat)},{_fmt_coord(lon)},{_fmt_coord(radius)}",
            "limit": self.limit,
            "include": "location,player",
        }
        headers = {"x-windy-key": self.api_key}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}/webcams", params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Windy API request failed: %r", e)
            raise UpstreamError(f"Windy API request failed: {e!r}") from e

        logger.info("Windy API Response Status: %s", resp.status_code)

        if not resp.is_success:
            body = resp.text
            logger.error("Windy API Error: %s", body)
            raise UpstreamError(f"Windy API responded with status: {resp.status_code}, body: {body}")

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(f"Windy API returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise UpstreamError(f"Windy API returned {type(data).__name__}, expected an object")

        data["webcams"] = as_webcams(data)
        logger.debug("Windy API returned %d webcams", len(data["webcams"]))
        return data


def build_client_from_env(transport: Optional[httpx.AsyncBaseTransport] = None) -> WindyWebcamsClient:
    key = os.getenv("WINDY_API_KEY", "").strip()
    if not key:
        raise RuntimeError("WINDY_API_KEY is not set. Configure it in the environment or .env.")
    return WindyWebcamsClient(
        api_key=key,
        base_url=os.getenv("WINDY_API_BASE_URL", BASE_URL).strip() or BASE_URL,
        timeout=float(os.getenv("WINDY_TIMEOUT_SECONDS", "15")),
        limit=_safe_int(os.getenv("WINDY_RESULT_LIMIT", "50"), 50),
        transport=transport,
    )
