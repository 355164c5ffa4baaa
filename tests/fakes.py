from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from geo_gateway.services.errors import Outcome
from geo_gateway.services.photon import UpstreamReply


def feature(osm_type: Optional[str], osm_id: Optional[int], name: str = "", **extra: Any) -> Dict[str, Any]:
    props: Dict[str, Any] = {"name": name}
    if osm_type is not None:
        props["osm_type"] = osm_type
    if osm_id is not None:
        props["osm_id"] = osm_id
    out = {"type": "Feature", "properties": props, "geometry": {"type": "Point", "coordinates": [18.06, 59.33]}}
    out.update(extra)
    return out


def collection(*features: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": list(features)}


class FakePhotonClient:
    """Stands in for PhotonClient; ``responder`` decides the outcome per call."""

    def __init__(self, responder: Callable[[Any], Awaitable[Outcome]]):
        self.responder = responder
        self.calls: List[Any] = []

    async def forward(self, params, debug: bool = False) -> Outcome:
        self.calls.append(params)
        return await self.responder(params)


def reply(data: Dict[str, Any], url: str = "http://photon.test/api?q=x") -> Outcome:
    return Outcome.success(UpstreamReply(url=url, data=data))


class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None):
        self.status = status
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body or b""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def text(self) -> str:
        return self._body.decode("utf-8")

    async def read(self) -> bytes:
        return self._body


class FakeSession:
    def __init__(self, response: Optional[FakeResponse] = None, exc: Optional[BaseException] = None):
        self.response = response
        self.exc = exc
        self.requests: List[Dict[str, Any]] = []

    def get(self, url, **kwargs):
        self.requests.append({"url": url, **kwargs})
        if self.exc is not None:
            raise self.exc
        return self.response

