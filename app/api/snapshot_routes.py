"""JSON API routes for inspecting collected telemetry."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies import get_collector
from app.schemas import SnapshotOut
from app.services.collector import Collector

router = APIRouter(tags=["telemetry"])


@router.get("/snapshot", response_model=SnapshotOut)
async def latest_snapshot(
    collector: Collector = Depends(get_collector),
) -> SnapshotOut:
    """Return the last published snapshot without triggering a collection cycle."""
    snapshot = await collector.store.get()
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No snapshot has been collected yet",
        )
    return SnapshotOut.from_snapshot(snapshot)


@router.get("/status")
async def collection_status(
    collector: Collector = Depends(get_collector),
) -> Dict[str, Any]:
    """Collection statistics since startup.

    Returns mode, target, session state and cycle/block counters
    (total, aborted and timed-out cycles, per-block failures, durations).
    """
    return {
        "mode": collector.mode.value,
        "target": collector.target,
        "session_state": collector.session.state.value,
        "word_order": collector.word_order.value,
        "cycle_timeout_seconds": collector.cycle_timeout,
        "collection": collector.metrics.as_dict(),
    }


@router.get("/register-map")
async def register_map(
    collector: Collector = Depends(get_collector),
) -> Dict[str, Any]:
    """Return the active register map."""
    return collector.register_map.to_dict()
