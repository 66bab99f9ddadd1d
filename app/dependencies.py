"""FastAPI dependency helpers for shared services."""

from __future__ import annotations

from fastapi import Request

from app.services.collector import Collector


def get_collector(request: Request) -> Collector:
    collector = getattr(request.app.state, "collector", None)
    if collector is None:
        raise RuntimeError("Collector is not initialized")
    return collector
