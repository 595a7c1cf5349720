"""
Sentinel API routes.

This module provides endpoints for managing sentinels, controlling their
monitoring loops, and reading their activity history.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sentinel.api.deps import get_monitoring_service, get_sentinel_store
from sentinel.core.networks import NetworkName
from sentinel.schemas.activity import ActivityListResponse, ActivityStats, CheckOutcome
from sentinel.schemas.sentinel import (
    MonitoringStatus,
    SentinelCreate,
    SentinelInfo,
    SentinelListResponse,
    SentinelUpdate,
)
from sentinel.services.monitoring_service import MonitoringService
from sentinel.services.sentinel_store import SentinelStore

router = APIRouter()
logger = logging.getLogger(__name__)


async def _load(store: SentinelStore, sentinel_id: UUID) -> SentinelInfo:
    sentinel = await store.get_sentinel(sentinel_id)
    if sentinel is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sentinel {sentinel_id} not found",
        )
    return sentinel


@router.post(
    "",
    response_model=SentinelInfo,
    status_code=status.HTTP_201_CREATED,
    summary="Create a sentinel",
)
async def create_sentinel(
    body: SentinelCreate,
    store: SentinelStore = Depends(get_sentinel_store),
) -> SentinelInfo:
    """Create a sentinel. It starts paused; activate it to begin monitoring."""
    return await store.create_sentinel(body)


@router.get("", response_model=SentinelListResponse, summary="List sentinels")
async def list_sentinels(
    user_id: str | None = Query(default=None, description="Filter by owner"),
    is_active: bool | None = Query(default=None, description="Filter by active flag"),
    network: NetworkName | None = Query(default=None, description="Filter by network"),
    store: SentinelStore = Depends(get_sentinel_store),
) -> SentinelListResponse:
    sentinels = await store.list_sentinels(
        user_id=user_id,
        is_active=is_active,
        network=network.value if network else None,
    )
    return SentinelListResponse(sentinels=sentinels, total=len(sentinels))


@router.get(
    "/monitoring/status",
    response_model=MonitoringStatus,
    summary="Scheduler status",
)
async def monitoring_status(
    monitoring: MonitoringService = Depends(get_monitoring_service),
) -> MonitoringStatus:
    return MonitoringStatus(**monitoring.status())


@router.get("/{sentinel_id}", response_model=SentinelInfo, summary="Get a sentinel")
async def get_sentinel(
    sentinel_id: UUID,
    store: SentinelStore = Depends(get_sentinel_store),
) -> SentinelInfo:
    return await _load(store, sentinel_id)


@router.patch("/{sentinel_id}", response_model=SentinelInfo, summary="Update a sentinel")
async def update_sentinel(
    sentinel_id: UUID,
    body: SentinelUpdate,
    store: SentinelStore = Depends(get_sentinel_store),
    monitoring: MonitoringService = Depends(get_monitoring_service),
) -> SentinelInfo:
    """
    Update threshold, condition, payment method or notification target.

    A running loop is restarted so the next cycle uses the new configuration.
    """
    await _load(store, sentinel_id)
    try:
        updated = await store.update_sentinel(sentinel_id, body.to_patch())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Sentinel {sentinel_id} not found")

    if monitoring.is_monitoring(sentinel_id):
        await monitoring.stop(sentinel_id)
        await monitoring.start(updated, exclusive=False)

    return updated


@router.delete("/{sentinel_id}", summary="Delete a sentinel")
async def delete_sentinel(
    sentinel_id: UUID,
    store: SentinelStore = Depends(get_sentinel_store),
    monitoring: MonitoringService = Depends(get_monitoring_service),
) -> dict[str, Any]:
    """Stop the sentinel's loop, then delete it with its activity."""
    await _load(store, sentinel_id)
    await monitoring.stop(sentinel_id, forget=True)
    await store.delete_sentinel(sentinel_id)
    return {"success": True, "message": f"Sentinel {sentinel_id} deleted"}


@router.post("/{sentinel_id}/activate", summary="Activate a sentinel")
async def activate_sentinel(
    sentinel_id: UUID,
    store: SentinelStore = Depends(get_sentinel_store),
    monitoring: MonitoringService = Depends(get_monitoring_service),
) -> dict[str, Any]:
    """
    Mark the sentinel active and start its monitoring loop.

    In single mode the user's other sentinels on the same network are
    stopped and deactivated.
    """
    await _load(store, sentinel_id)
    sentinel = await store.update_sentinel(sentinel_id, {"is_active": True})
    started = await monitoring.start(sentinel)
    return {
        "success": True,
        "sentinel": sentinel.model_dump(mode="json"),
        "monitoring": monitoring.is_monitoring(sentinel_id),
        "started": started,
    }


@router.post("/{sentinel_id}/pause", summary="Pause a sentinel")
async def pause_sentinel(
    sentinel_id: UUID,
    store: SentinelStore = Depends(get_sentinel_store),
    monitoring: MonitoringService = Depends(get_monitoring_service),
) -> dict[str, Any]:
    await _load(store, sentinel_id)
    handle = await monitoring.stop(sentinel_id)
    sentinel = await store.update_sentinel(sentinel_id, {"is_active": False})
    return {
        "success": True,
        "sentinel": sentinel.model_dump(mode="json"),
        "cycles": handle.cycles if handle else 0,
    }


@router.post("/{sentinel_id}/check", summary="Run one check now")
async def run_check(
    sentinel_id: UUID,
    store: SentinelStore = Depends(get_sentinel_store),
    monitoring: MonitoringService = Depends(get_monitoring_service),
) -> dict[str, Any]:
    """
    Run one paid check cycle immediately.

    Skipped when a cycle for this sentinel is already in flight.
    """
    sentinel = await _load(store, sentinel_id)
    outcome: CheckOutcome | None = await monitoring.run_cycle(sentinel)
    return {
        "executed": outcome is not None,
        "outcome": outcome.model_dump(mode="json") if outcome else None,
        "state": monitoring.state(sentinel_id).value,
    }


@router.get(
    "/{sentinel_id}/activities",
    response_model=ActivityListResponse,
    summary="Activity history",
)
async def list_activities(
    sentinel_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: SentinelStore = Depends(get_sentinel_store),
) -> ActivityListResponse:
    await _load(store, sentinel_id)
    activities, total = await store.list_activities(sentinel_id, limit=limit, offset=offset)
    return ActivityListResponse(activities=activities, total=total, offset=offset, limit=limit)


@router.get("/{sentinel_id}/stats", response_model=ActivityStats, summary="Activity statistics")
async def activity_stats(
    sentinel_id: UUID,
    store: SentinelStore = Depends(get_sentinel_store),
) -> ActivityStats:
    await _load(store, sentinel_id)
    return await store.get_activity_stats(sentinel_id)
