from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from multidict import MultiDict

from geo_gateway.models import SEARCH_MODES, CanonicalQuery
from geo_gateway.services.aggregate import aggregate_features
from geo_gateway.services.errors import ErrorKind, Outcome
from geo_gateway.services.forward_params import ForwardParamBuilder
from geo_gateway.services.geometry import (
    DegenerateRectangle,
    LatLon,
    bbox_around_point,
    densify_polyline_by_radius,
    rectangle_from_two_points,
)
from geo_gateway.services.photon import PhotonClient, UpstreamReply

logger = logging.getLogger(__name__)

MODES_HINT = "Use one of: " + ", ".join(SEARCH_MODES) + "."

SOURCE_FORWARD = "photon-forward"
SOURCE_BBOX = "photon-forward-bbox"
SOURCE_BBOX_MULTI = "photon-forward-bbox-multi"

MIN_PER_CALL_LIMIT = 5


@dataclass(frozen=True)
class SearchPlan:
    """Validated request: which upstream calls to make and how to shape the answer."""

    mode: str
    source: str
    calls: List[MultiDict]
    limit: int
    debug: bool = False
    radius: Optional[float] = None
    samples: List[LatLon] = field(default_factory=list)


@dataclass(frozen=True)
class PlanDefaults:
    limit: int = 20
    max_polyline_points: int = 200
    max_polyline_points_limit: int = 1000


def per_call_limit(total_limit: int) -> int:
    return max(MIN_PER_CALL_LIMIT, math.ceil(total_limit / 2))


def _with_point(params: MultiDict, lat: float, lon: float, radius: float) -> MultiDict:
    # Explicit lat/lon from the request keep precedence as the bias point
    if "lat" not in params:
        params["lat"] = str(lat)
    if "lon" not in params:
        params["lon"] = str(lon)
    params["bbox"] = bbox_around_point(lat, lon, radius).to_param()
    return params


def _radius_error(mode: str, query: CanonicalQuery) -> Optional[Outcome]:
    if query.radius is None or not query.radius > 0:
        return Outcome.failure(ErrorKind.MISSING_RADIUS, f"'{mode}' mode requires a positive `radius` (meters).")
    return None


def _plan_autocomplete(query: CanonicalQuery, builder: ForwardParamBuilder, defaults: PlanDefaults) -> Outcome[SearchPlan]:
    if query.has_geometry:
        return Outcome.failure(ErrorKind.GEOMETRY_NOT_ALLOWED, "`geometryList` not allowed in 'autocomplete' mode.")
    params, _ = builder.build(query)
    return Outcome.success(
        SearchPlan(mode="autocomplete", source=SOURCE_FORWARD, calls=[params], limit=query.limit or defaults.limit, debug=query.debug)
    )


def _plan_point(query: CanonicalQuery, builder: ForwardParamBuilder, defaults: PlanDefaults) -> Outcome[SearchPlan]:
    if not query.geometry_list or len(query.geometry_list) != 1:
        return Outcome.failure(
            ErrorKind.INVALID_GEOMETRY_CARDINALITY, "'point' mode requires geometryList with exactly 1 [lat,lon]."
        )
    failed = _radius_error("point", query)
    if failed:
        return failed

    lat, lon = query.geometry_list[0]
    params, _ = builder.build(query)
    return Outcome.success(
        SearchPlan(
            mode="point",
            source=SOURCE_BBOX,
            calls=[_with_point(params, lat, lon, query.radius)],
            limit=query.limit or defaults.limit,
            debug=query.debug,
            radius=query.radius,
            samples=[(lat, lon)],
        )
    )


def _plan_rectangle(query: CanonicalQuery, builder: ForwardParamBuilder, defaults: PlanDefaults) -> Outcome[SearchPlan]:
    if not query.geometry_list or len(query.geometry_list) != 2:
        return Outcome.failure(
            ErrorKind.INVALID_GEOMETRY_CARDINALITY, "'rectangle' mode requires geometryList with exactly 2 [lat,lon] points."
        )
    try:
        box = rectangle_from_two_points(*query.geometry_list)
    except DegenerateRectangle as e:
        return Outcome.failure(ErrorKind.DEGENERATE_RECTANGLE, str(e))

    params, _ = builder.build(query)
    params["bbox"] = box.to_param()
    return Outcome.success(
        SearchPlan(mode="rectangle", source=SOURCE_BBOX, calls=[params], limit=query.limit or defaults.limit, debug=query.debug)
    )


def _plan_polyline(query: CanonicalQuery, builder: ForwardParamBuilder, defaults: PlanDefaults) -> Outcome[SearchPlan]:
    if not query.geometry_list or len(query.geometry_list) < 2:
        return Outcome.failure(
            ErrorKind.INVALID_GEOMETRY_CARDINALITY, "'polyline' mode requires geometryList with 2 or more [lat,lon] points."
        )
    failed = _radius_error("polyline", query)
    if failed:
        return failed

    max_points = query.max_polyline_points or defaults.max_polyline_points
    if max_points > defaults.max_polyline_points_limit:
        return Outcome.failure(
            ErrorKind.INVALID_REQUEST,
            f"`maxPolylinePoints` must not exceed {defaults.max_polyline_points_limit}.",
        )
    samples = densify_polyline_by_radius(query.geometry_list, query.radius, max_points)
    total = query.limit or defaults.limit
    sub_query = query.model_copy(update={"limit": per_call_limit(total)})

    calls = []
    for lat, lon in samples:
        params, _ = builder.build(sub_query)
        calls.append(_with_point(params, lat, lon, query.radius))

    return Outcome.success(
        SearchPlan(
            mode="polyline",
            source=SOURCE_BBOX_MULTI,
            calls=calls,
            limit=total,
            debug=query.debug,
            radius=query.radius,
            samples=samples,
        )
    )


_PLANNERS: Dict[str, Callable[[CanonicalQuery, ForwardParamBuilder, PlanDefaults], Outcome[SearchPlan]]] = {
    "autocomplete": _plan_autocomplete,
    "point": _plan_point,
    "rectangle": _plan_rectangle,
    "polyline": _plan_polyline,
}


def plan_search(query: CanonicalQuery, builder: ForwardParamBuilder, defaults: Optional[PlanDefaults] = None) -> Outcome[SearchPlan]:
    """Validate the geometry for the requested mode and lay out the upstream calls."""
    mode = (query.mode or "").strip().lower()
    if not mode:
        return Outcome.failure(ErrorKind.MISSING_MODE, f"Missing required `mode`. {MODES_HINT}")
    planner = _PLANNERS.get(mode)
    if planner is None:
        return Outcome.failure(ErrorKind.UNSUPPORTED_MODE, f"Unsupported `mode`. {MODES_HINT}")
    return planner(query, builder, defaults or PlanDefaults())


def _envelope(plan: SearchPlan, data: Dict[str, Any], debug: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {"source": plan.source, "mode": plan.mode}
    if plan.debug and debug:
        out["debug"] = debug
    out["data"] = data
    return out


async def _fetch_features(client: PhotonClient, params: MultiDict, debug: bool) -> Outcome[UpstreamReply]:
    outcome = await client.forward(params, debug)
    if outcome.ok and not isinstance(outcome.value.data.get("features", []), list):
        return Outcome.failure(
            ErrorKind.UPSTREAM_PARSE_ERROR,
            "Upstream error",
            details="Photon /api returned a non-list `features` member",
            debug={"url": outcome.value.url} if debug else None,
        )
    return outcome


async def _execute_corridor(plan: SearchPlan, client: PhotonClient, max_concurrency: int, skip_failures: bool) -> Outcome[Dict[str, Any]]:
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def run(params: MultiDict) -> Outcome[UpstreamReply]:
        async with semaphore:
            return await _fetch_features(client, params, plan.debug)

    tasks = [asyncio.ensure_future(run(params)) for params in plan.calls]
    try:
        for next_done in asyncio.as_completed(tasks):
            outcome = await next_done
            if not outcome.ok and not skip_failures:
                return outcome
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # Merge in sample-point order, independent of completion order
    outcomes = [task.result() for task in tasks]
    succeeded = [o for o in outcomes if o.ok]
    if not succeeded:
        return outcomes[0]
    skipped = len(outcomes) - len(succeeded)
    if skipped:
        logger.warning("Corridor search skipped %d of %d sample points", skipped, len(outcomes))

    data = aggregate_features((o.value.data.get("features") for o in succeeded), plan.limit)
    debug: Dict[str, Any] = {
        "note": f"per-point /api with auto densify (radius={plan.radius}m, points={len(plan.samples)})",
    }
    if skip_failures:
        debug["skipped"] = skipped
    return Outcome.success(_envelope(plan, data, debug))


async def execute_plan(
    plan: SearchPlan,
    client: PhotonClient,
    *,
    max_concurrency: int = 8,
    skip_failures: bool = False,
) -> Outcome[Dict[str, Any]]:
    if len(plan.calls) > 1 or plan.mode == "polyline":
        return await _execute_corridor(plan, client, max_concurrency, skip_failures)

    outcome = await client.forward(plan.calls[0], plan.debug)
    if not outcome.ok:
        return outcome
    reply = outcome.value
    return Outcome.success(_envelope(plan, reply.data, {"url": reply.url}))


async def run_search(
    query: CanonicalQuery,
    builder: ForwardParamBuilder,
    client: PhotonClient,
    *,
    deadline_s: float,
    defaults: Optional[PlanDefaults] = None,
    max_concurrency: int = 8,
    skip_failures: bool = False,
) -> Outcome[Dict[str, Any]]:
    """Plan, then execute under one overall deadline."""
    planned = plan_search(query, builder, defaults)
    if not planned.ok:
        return Outcome(error=planned.error)

    plan = planned.value
    try:
        return await asyncio.wait_for(
            execute_plan(plan, client, max_concurrency=max_concurrency, skip_failures=skip_failures),
            timeout=deadline_s,
        )
    except asyncio.TimeoutError:
        logger.warning("%s search exceeded the %.1fs deadline (%d upstream calls)", plan.mode, deadline_s, len(plan.calls))
        return Outcome.failure(
            ErrorKind.UPSTREAM_TIMEOUT,
            "Upstream timeout",
            details=f"Search exceeded the {deadline_s}s request deadline",
        )
