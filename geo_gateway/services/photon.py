from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict

import aiohttp
from multidict import MultiDict
from yarl import URL

from geo_gateway.services.errors import ErrorKind, Outcome

logger = logging.getLogger(__name__)

_DEBUG_BODY_CHARS = 500


def photon_api_url(base: str) -> str:
    """Photon search endpoint for a base URL given with or without ``/api``."""
    root = re.sub(r"/api/?$", "", str(base), flags=re.IGNORECASE).rstrip("/")
    return root + "/api"


@dataclass(frozen=True)
class UpstreamReply:
    url: str
    data: Dict[str, Any]


class PhotonClient:
    """One bounded GET per call against Photon ``/api``."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str, *, timeout_s: float = 10.0, user_agent: str = "") -> None:
        self.session = session
        self.api_url = photon_api_url(base_url)
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self.headers = {"User-Agent": user_agent} if user_agent else {}

    def url_for(self, params: MultiDict) -> URL:
        return URL(self.api_url).with_query(params)

    async def forward(self, params: MultiDict, debug: bool = False) -> Outcome[UpstreamReply]:
        url = self.url_for(params)
        dbg = {"url": str(url)} if debug else None
        logger.debug("Photon GET %s", url)

        try:
            async with self.session.get(url, headers=self.headers, timeout=self.timeout) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.read()
                    logger.warning("Photon returned HTTP %s for %s", resp.status, url)
                    if dbg is not None:
                        dbg["body"] = body[:_DEBUG_BODY_CHARS].decode("utf-8", errors="replace")
                    return Outcome.failure(
                        ErrorKind.UPSTREAM_HTTP_ERROR,
                        "Upstream error",
                        details=f"Photon /api error: {resp.status}",
                        debug=dbg,
                    )
                raw = await resp.read()
        except asyncio.TimeoutError:
            logger.warning("Photon call timed out: %s", url)
            return Outcome.failure(
                ErrorKind.UPSTREAM_TIMEOUT, "Upstream timeout", details="Photon /api timed out", debug=dbg
            )
        except aiohttp.ClientError as e:
            logger.warning("Photon unreachable (%s): %s", e.__class__.__name__, url)
            return Outcome.failure(
                ErrorKind.UPSTREAM_UNREACHABLE, "Upstream unreachable", details=f"Photon /api fetch failed: {e}", debug=dbg
            )

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Photon returned a non-JSON body for %s", url)
            if dbg is not None:
                dbg["body"] = raw[:_DEBUG_BODY_CHARS].decode("utf-8", errors="replace")
            return Outcome.failure(
                ErrorKind.UPSTREAM_PARSE_ERROR, "Upstream error", details=f"Photon /api returned invalid JSON: {e}", debug=dbg
            )
        if not isinstance(data, dict):
            return Outcome.failure(
                ErrorKind.UPSTREAM_PARSE_ERROR,
                "Upstream error",
                details=f"Photon /api returned {type(data).__name__}, expected an object",
                debug=dbg,
            )

        return Outcome.success(UpstreamReply(url=str(url), data=data))
