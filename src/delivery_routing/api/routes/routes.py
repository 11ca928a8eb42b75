"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...persistence.filesystem import FileStorage
from ...schemas.routing import OptimizeRouteRequest, RouteResultModel
from ...services.outputs.routing_formatter import save_route_result
from ...services.routing.errors import FailureReason, OptimizationError
from ...services.routing.service import build_default_optimizer

router = APIRouter(prefix="/routes", tags=["routes"])

logger = logging.getLogger(__name__)

_FAILURE_STATUS = {
    FailureReason.INVALID_REQUEST: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureReason.ORIGIN_UNRESOLVED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureReason.NO_REACHABLE_DESTINATIONS: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureReason.UNKNOWN_VEHICLE: status.HTTP_404_NOT_FOUND,
    FailureReason.MATRIX_ERROR: status.HTTP_502_BAD_GATEWAY,
    FailureReason.CANCELLED: status.HTTP_408_REQUEST_TIMEOUT,
    FailureReason.INTERNAL_CONSISTENCY: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.post("/optimize", response_model=RouteResultModel, status_code=status.HTTP_200_OK)
def optimize(payload: OptimizeRouteRequest) -> RouteResultModel:
    try:
        optimizer = build_default_optimizer()
    except ValueError as exc:
        logger.error("Routing providers are not configured: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    try:
        result = optimizer.optimize_route(
            payload.vehicle_id,
            [destination.to_domain() for destination in payload.destinations],
            payload.departure_time,
            payload.fuel_rate_l_per_100km,
            origin=payload.origin.to_domain() if payload.origin else None,
            criterion=payload.criterion,
            timeout_seconds=payload.timeout_seconds,
        )
    except OptimizationError as exc:
        raise HTTPException(
            status_code=_FAILURE_STATUS[exc.reason],
            detail={"reason": exc.reason.value, "message": exc.detail},
        ) from exc

    output_dir = None
    if payload.persist:
        output_dir = str(save_route_result(result, FileStorage()))
    return RouteResultModel.from_result(result, output_dir=output_dir)
