"""Telemetry snapshots and the holder for the most recent one."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from app.core.register_map import Labels, ReadBlock, RegisterPoint


@dataclass(frozen=True)
class TelemetryValue:
    """One decoded, scaled reading."""

    point_id: str
    metric: str
    value: float
    labels: Labels = ()
    unit: str = ""

    @property
    def label_dict(self) -> Dict[str, str]:
        return dict(self.labels)


@dataclass(frozen=True)
class BlockResult:
    """Outcome of reading one block during a cycle.

    ``skipped`` lists the points of a successful block that could not be
    decoded; a failed block contributes no values at all.
    """

    block: str
    address: int
    count: int
    success: bool
    error: Optional[str] = None
    skipped: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Immutable result of one collection cycle."""

    target: str
    captured_at: datetime
    duration_seconds: float
    values: Tuple[TelemetryValue, ...]
    blocks: Tuple[BlockResult, ...]

    def get(self, point_id: str) -> Optional[TelemetryValue]:
        for value in self.values:
            if value.point_id == point_id:
                return value
        return None

    def value_of(self, point_id: str) -> Optional[float]:
        found = self.get(point_id)
        return found.value if found else None

    @property
    def failed_blocks(self) -> List[BlockResult]:
        return [b for b in self.blocks if not b.success]

    @property
    def is_complete(self) -> bool:
        return all(b.success and not b.skipped for b in self.blocks)

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.captured_at).total_seconds()


@dataclass
class SnapshotBuilder:
    """Collects values for one cycle; produces a snapshot exactly once."""

    target: str
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _values: Dict[Tuple[str, Labels], TelemetryValue] = field(default_factory=dict, init=False)
    _blocks: List[BlockResult] = field(default_factory=list, init=False)

    def add_value(self, point: RegisterPoint, value: float) -> None:
        key = (point.id, point.labels)
        if key in self._values:
            raise ValueError(f"Duplicate value for point '{point.id}' {point.label_dict}")
        self._values[key] = TelemetryValue(
            point_id=point.id,
            metric=point.metric,
            value=value,
            labels=point.labels,
            unit=point.unit,
        )

    def record_success(self, block: ReadBlock, skipped: Tuple[str, ...] = ()) -> None:
        self._blocks.append(
            BlockResult(block.name, block.address, block.count, True, skipped=skipped)
        )

    def record_failure(self, block: ReadBlock, error: str) -> None:
        self._blocks.append(
            BlockResult(block.name, block.address, block.count, False, error=error)
        )

    def build(self, duration_seconds: float) -> TelemetrySnapshot:
        return TelemetrySnapshot(
            target=self.target,
            captured_at=self.captured_at,
            duration_seconds=duration_seconds,
            values=tuple(self._values.values()),
            blocks=tuple(self._blocks),
        )


class SnapshotStore:
    """Holds the last published snapshot; replaced only as a whole."""

    def __init__(self) -> None:
        self._current: Optional[TelemetrySnapshot] = None
        self._lock = asyncio.Lock()

    async def publish(self, snapshot: TelemetrySnapshot) -> None:
        async with self._lock:
            self._current = snapshot

    async def get(self) -> Optional[TelemetrySnapshot]:
        async with self._lock:
            return self._current

    async def clear(self) -> None:
        async with self._lock:
            self._current = None
