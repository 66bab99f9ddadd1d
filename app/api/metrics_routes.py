"""Prometheus scrape endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from prometheus_client import CONTENT_TYPE_LATEST

from app.core.logging_config import get_logger
from app.dependencies import get_collector
from app.services.collector import CollectionError, Collector
from app.services.publisher import render_snapshot

logger = get_logger(__name__)

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def scrape(collector: Collector = Depends(get_collector)) -> Response:
    """Expose the current snapshot in Prometheus text format.

    On-demand mode collects before responding; background mode serves the
    last published snapshot. Returns 503 when there is nothing to serve,
    never a zero-filled set of gauges.
    """
    logger.debug("scrape_started", target=collector.target, mode=collector.mode.value)
    try:
        snapshot = await collector.get_snapshot()
    except CollectionError as exc:
        logger.warning("scrape_failed", target=collector.target, error=str(exc))
        return Response(
            content=f"# scrape failed: {exc}\n",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            media_type="text/plain; charset=utf-8",
        )

    return Response(
        content=render_snapshot(collector.register_map, snapshot),
        media_type=CONTENT_TYPE_LATEST,
    )
