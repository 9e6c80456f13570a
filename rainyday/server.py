from __future__ import annotations

import json
import logging
import os
import traceback
from functools import wraps
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from mcp.server.fastmcp import FastMCP
from starlette.middleware.cors import CORSMiddleware

from .errors import RelayError, UpstreamError
from .geo import LAT_RANGE, LON_RANGE, parse_coordinate, parse_coordinates, parse_radius
from .utils import TTLCache
from .webcams import WebcamRelay

load_dotenv()

# -------------------------
# Logging
# -------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("rainyday")

# Puts the traceback into MCP tool error responses. Keep off in production.
DEBUG_TOOL_ERRORS = os.getenv("DEBUG_TOOL_ERRORS", "false").lower() in ("1", "true", "yes", "y")

DEFAULT_ORIGINS = "https://rainyday.live"


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("%s is not a number, using %s", name, default)
        return default


def _allow_origins() -> List[str]:
    raw = os.getenv("ALLOW_ORIGINS", DEFAULT_ORIGINS)
    return [o.strip() for o in raw.split(",") if o.strip()]


# -------------------------
# MCP error response helpers
# -------------------------
def _text_content(text: str) -> Dict[str, str]:
    return {"type": "text", "text": text}


def _tool_error_response(msg: str, detail: Optional[str] = None) -> Dict[str, Any]:
    if detail:
        text = f"{msg}\n\n[detail]\n{detail}"
    else:
        text = msg
    return {"content": [_text_content(text)], "isError": True}


def safe_tool(fn):
    """
    Turns exceptions raised by an MCP tool into the MCP error shape:
    - RelayError keeps its code and details
    - anything else is logged with traceback; the trace is only returned
      when DEBUG_TOOL_ERRORS is on
    """
    @wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except RelayError as e:
            logger.warning("[TOOL ERROR] tool=%s err=%s %s", fn.__name__, e.code, e.details)
            return _tool_error_response(e.code, detail=e.details or None)
        except Exception as e:
            tb = traceback.format_exc()
            try:
                kwargs_dump = json.dumps(kwargs, ensure_ascii=False)
            except (TypeError, ValueError):
                kwargs_dump = repr(kwargs)

            logger.error(
                "[TOOL ERROR] tool=%s kwargs=%s err=%s\n%s",
                fn.__name__,
                kwargs_dump,
                str(e),
                tb,
            )

            detail = f"tool={fn.__name__}\nerr={str(e)}"
            if DEBUG_TOOL_ERRORS:
                detail = f"{detail}\n\ntrace:\n{tb}"
            return _tool_error_response("error while calling tool", detail=detail)
    return wrapper


async def lookup_webcams(
    relay: WebcamRelay,
    lat: float,
    lon: float,
    max_distance_km: float,
) -> Dict[str, Any]:
    lat = parse_coordinate(lat, "lat", LAT_RANGE)
    lon = parse_coordinate(lon, "lon", LON_RANGE)
    radius_km = parse_radius(max_distance_km)
    return await relay.search(lat, lon, radius_km)


# -------------------------
# MCP server
# -------------------------
def build_mcp(relay: WebcamRelay, default_radius_km: float = 100.0) -> FastMCP:
    mcp = FastMCP(name="RainydayWebcams", stateless_http=True)

    @mcp.tool(description="Lists public webcams within max_distance_km of a latitude/longitude, with location and player data.")
    @safe_tool
    async def find_nearby_webcams(
        lat: float,
        lon: float,
        max_distance_km: float = default_radius_km,
    ) -> Dict[str, Any]:
        return await lookup_webcams(relay, lat, lon, max_distance_km)

    return mcp


# -------------------------
# ASGI app
# -------------------------
def create_app(relay: Optional[WebcamRelay] = None) -> FastAPI:
    if relay is None:
        relay = WebcamRelay(cache=TTLCache(_env_float("CACHE_TTL_SECONDS", 300)))
    default_radius_km = _env_float("DEFAULT_MAX_DISTANCE_KM", 100.0)

    mcp = build_mcp(relay, default_radius_km=default_radius_km)
    app = FastAPI(lifespan=lambda app: mcp.session_manager.run(), title="Rainyday Webcam Relay")
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allow_origins(),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )
    app.mount("/mcp", mcp.streamable_http_app())

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        if isinstance(exc, UpstreamError):
            logger.error("Detailed error: %s", exc.details or exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "Rainyday Backend Server is Running!"

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/webcams")
    async def webcams(
        request: Request,
        lat: Optional[str] = None,
        lon: Optional[str] = None,
        maxDistance: Optional[str] = None,
        radius: Optional[str] = None,
    ) -> Dict[str, Any]:
        lat_f, lon_f = parse_coordinates(lat, lon)
        radius_km = parse_radius(maxDistance, radius, default=default_radius_km)
        try:
            return await request.app.state.relay.search(lat_f, lon_f, radius_km)
        except RelayError:
            raise
        except Exception as e:
            logger.exception("unexpected error while fetching webcams")
            raise UpstreamError(str(e)) from e

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "3000"))
    uvicorn.run("rainyday.server:app", host="0.0.0.0", port=port, reload=False)
