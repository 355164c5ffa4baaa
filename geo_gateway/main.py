from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Tuple

import aiohttp
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from geo_gateway.config import Settings, get_settings
from geo_gateway.services.dispatcher import PlanDefaults, run_search
from geo_gateway.services.errors import ErrorKind, GatewayError
from geo_gateway.services.forward_params import ForwardParamBuilder, build_category_table
from geo_gateway.services.normalizer import merge_inputs, to_canonical_query
from geo_gateway.services.photon import PhotonClient

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Geometry-aware search gateway in front of a Photon place-search engine.",
)


@lru_cache
def _category_table(extra: Tuple[Tuple[str, str], ...]) -> Mapping[str, str]:
    return build_category_table(dict(extra))


def get_param_builder(settings: Settings = Depends(get_settings)) -> ForwardParamBuilder:
    # One table per distinct extra_categories setting
    return ForwardParamBuilder(_category_table(tuple(sorted(settings.extra_categories.items()))))


async def get_photon_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[Optional[PhotonClient]]:
    if settings.photon_base_url is None:
        yield None
        return
    async with aiohttp.ClientSession() as session:
        yield PhotonClient(
            session,
            str(settings.photon_base_url),
            timeout_s=settings.http_timeout_s,
            user_agent=settings.user_agent,
        )


async def _read_body(request: Request) -> Dict[str, Any]:
    if request.method == "GET" or "application/json" not in request.headers.get("content-type", ""):
        return {}
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"Malformed JSON body: {e}") from e
    if not isinstance(body, dict):
        raise ValueError("JSON body must be an object.")
    return body


def _error_response(error: GatewayError, debug: bool = False) -> JSONResponse:
    return JSONResponse(status_code=error.kind.status_code, content=error.to_payload(include_debug=debug))


@app.get("/", tags=["Root"])
async def root():
    return {"ok": True, "service": settings.app_name, "version": settings.version}


@app.get("/health", tags=["Healthcheck"])
async def health():
    return {"ok": True}


@app.get("/api/categories", tags=["Api Categories"])
async def api_categories(builder: ForwardParamBuilder = Depends(get_param_builder)):
    return {"categories": builder.categories()}


@app.api_route("/search", methods=["GET", "POST"], include_in_schema=False)
@app.api_route("/api/search", methods=["GET", "POST"], tags=["Api Search"])
async def api_search(
    request: Request,
    settings: Settings = Depends(get_settings),
    builder: ForwardParamBuilder = Depends(get_param_builder),
    client: Optional[PhotonClient] = Depends(get_photon_client),
):
    """Search by mode: autocomplete, point (+radius), rectangle, or polyline corridor (+radius)."""
    if client is None:
        return JSONResponse(
            status_code=500,
            content={"error": "Missing upstream base URL", "details": "Set GATEWAY_PHOTON_BASE_URL."},
        )

    try:
        body = await _read_body(request)
        query = to_canonical_query(merge_inputs(request.query_params.multi_items(), body))
    except ValueError as e:
        return _error_response(GatewayError(kind=ErrorKind.INVALID_REQUEST, message=str(e)))

    try:
        outcome = await run_search(
            query,
            builder,
            client,
            deadline_s=settings.request_timeout_s,
            defaults=PlanDefaults(
                limit=settings.default_limit,
                max_polyline_points=settings.default_max_polyline_points,
                max_polyline_points_limit=settings.max_polyline_points_limit,
            ),
            max_concurrency=settings.max_concurrency,
            skip_failures=settings.corridor_skip_failures,
        )
    except Exception as e:
        logger.exception("Unexpected failure in %s search", query.mode)
        return JSONResponse(status_code=500, content={"error": "Unexpected error", "details": str(e)})

    if not outcome.ok:
        return _error_response(outcome.error, debug=query.debug)
    return outcome.value
