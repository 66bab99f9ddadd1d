"""Pydantic response models for the JSON API."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.snapshot import TelemetrySnapshot


class TelemetryValueOut(BaseModel):
    point_id: str
    metric: str
    value: float
    unit: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)


class BlockResultOut(BaseModel):
    block: str
    address: int
    count: int
    success: bool
    error: Optional[str] = None
    skipped: List[str] = Field(default_factory=list)


class SnapshotOut(BaseModel):
    target: str
    captured_at: datetime
    age_seconds: float
    duration_seconds: float
    complete: bool = Field(..., description="Every block read and every point decoded.")
    values: List[TelemetryValueOut]
    blocks: List[BlockResultOut]

    @classmethod
    def from_snapshot(cls, snapshot: TelemetrySnapshot) -> "SnapshotOut":
        return cls(
            target=snapshot.target,
            captured_at=snapshot.captured_at,
            age_seconds=round(snapshot.age_seconds(), 3),
            duration_seconds=snapshot.duration_seconds,
            complete=snapshot.is_complete,
            values=[
                TelemetryValueOut(
                    point_id=v.point_id,
                    metric=v.metric,
                    value=v.value,
                    unit=v.unit,
                    labels=v.label_dict,
                )
                for v in snapshot.values
            ],
            blocks=[
                BlockResultOut(
                    block=b.block,
                    address=b.address,
                    count=b.count,
                    success=b.success,
                    error=b.error,
                    skipped=list(b.skipped),
                )
                for b in snapshot.blocks
            ],
        )
