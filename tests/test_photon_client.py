from __future__ import annotations

import asyncio

import aiohttp
import pytest
from multidict import MultiDict

from geo_gateway.services.errors import ErrorKind
from geo_gateway.services.photon import PhotonClient, photon_api_url

from fakes import FakeResponse, FakeSession, collection, feature


@pytest.mark.parametrize(
    "base",
    ["http://photon.test:2322", "http://photon.test:2322/", "http://photon.test:2322/api", "http://photon.test:2322/API/"],
)
def test_photon_api_url_normalizes_base(base):
    assert photon_api_url(base) == "http://photon.test:2322/api"


def _params() -> MultiDict:
    params = MultiDict(q="cafe", limit="5")
    params.add("osm_tag", "amenity:cafe")
    params.add("osm_tag", "amenity:bar")
    return params


@pytest.mark.asyncio
async def test_forward_returns_body_and_url():
    session = FakeSession(FakeResponse(200, collection(feature("N", 1))))
    client = PhotonClient(session, "http://photon.test:2322/", timeout_s=3.0, user_agent="tests")

    outcome = await client.forward(_params())

    assert outcome.ok
    assert outcome.value.data["features"][0]["properties"]["osm_id"] == 1
    url = session.requests[0]["url"]
    assert str(url).startswith("http://photon.test:2322/api?")
    assert url.query.getall("osm_tag") == ["amenity:cafe", "amenity:bar"]
    assert outcome.value.url == str(url)
    assert session.requests[0]["headers"] == {"User-Agent": "tests"}
    assert session.requests[0]["timeout"].total == 3.0


@pytest.mark.asyncio
async def test_non_2xx_is_http_error_with_debug_body():
    session = FakeSession(FakeResponse(503, "x" * 800))
    client = PhotonClient(session, "http://photon.test:2322")

    outcome = await client.forward(_params(), debug=True)

    assert not outcome.ok
    assert outcome.error.kind is ErrorKind.UPSTREAM_HTTP_ERROR
    assert outcome.error.details == "Photon /api error: 503"
    assert outcome.error.debug["url"].startswith("http://photon.test:2322/api?q=cafe")
    assert len(outcome.error.debug["body"]) == 500


@pytest.mark.asyncio
async def test_debug_payload_only_when_requested():
    client = PhotonClient(FakeSession(FakeResponse(500, "boom")), "http://photon.test:2322")

    outcome = await client.forward(_params())

    assert outcome.error.debug is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["<html>oops</html>", "[1, 2, 3]", ""])
async def test_malformed_body_is_parse_error(body):
    client = PhotonClient(FakeSession(FakeResponse(200, body)), "http://photon.test:2322")

    outcome = await client.forward(_params())

    assert outcome.error.kind is ErrorKind.UPSTREAM_PARSE_ERROR


@pytest.mark.asyncio
async def test_timeout_is_distinguished():
    client = PhotonClient(FakeSession(exc=asyncio.TimeoutError()), "http://photon.test:2322")

    outcome = await client.forward(_params())

    assert outcome.error.kind is ErrorKind.UPSTREAM_TIMEOUT
    assert outcome.error.kind.status_code == 504


@pytest.mark.asyncio
async def test_connection_failure_is_unreachable():
    client = PhotonClient(FakeSession(exc=aiohttp.ClientConnectionError("refused")), "http://photon.test:2322")

    outcome = await client.forward(_params())

    assert outcome.error.kind is ErrorKind.UPSTREAM_UNREACHABLE
    assert "refused" in outcome.error.details
    assert outcome.error.kind.status_code == 503


@pytest.mark.asyncio
async def test_undecodable_error_body_is_still_http_error():
    client = PhotonClient(FakeSession(FakeResponse(500, b"\xff\xfe\xfa bad")), "http://photon.test:2322")

    outcome = await client.forward(_params(), debug=True)

    assert outcome.error.kind is ErrorKind.UPSTREAM_HTTP_ERROR
    assert outcome.error.debug["body"].endswith(" bad")
    assert outcome.error.debug["url"].startswith("http://photon.test:2322/api")
