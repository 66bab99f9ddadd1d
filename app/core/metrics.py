"""Counters describing how collection cycles have been going."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict


@dataclass
class CollectionMetrics:
    """Per-collector cycle and block statistics."""

    total_cycles: int = 0
    completed_cycles: int = 0
    aborted_cycles: int = 0
    timed_out_cycles: int = 0
    block_reads: int = 0
    block_failures: int = 0
    skipped_points: int = 0
    total_cycle_duration_ms: float = 0.0
    last_cycle_time: datetime | None = None
    last_success_time: datetime | None = None
    last_error: str | None = None
    failures_by_block: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record_completed(
        self,
        block_results,
        duration_ms: float,
    ) -> None:
        """Record a cycle that connected and attempted every block."""
        self._record_cycle(duration_ms)
        self.completed_cycles += 1
        self.last_success_time = self.last_cycle_time
        for result in block_results:
            self.block_reads += 1
            self.skipped_points += len(result.skipped)
            if not result.success:
                self.block_failures += 1
                self.failures_by_block[result.block] += 1
                self.last_error = f"{result.block}: {result.error}"

    def record_aborted(self, error: str, duration_ms: float, timed_out: bool = False) -> None:
        """Record a cycle that produced no snapshot."""
        self._record_cycle(duration_ms)
        self.aborted_cycles += 1
        if timed_out:
            self.timed_out_cycles += 1
        self.last_error = error

    def _record_cycle(self, duration_ms: float) -> None:
        self.total_cycles += 1
        self.total_cycle_duration_ms += duration_ms
        self.last_cycle_time = datetime.now(timezone.utc)

    def get_average_cycle_duration_ms(self) -> float:
        if self.total_cycles == 0:
            return 0.0
        return self.total_cycle_duration_ms / self.total_cycles

    def get_block_success_rate(self) -> float:
        """Block read success rate as percentage (0-100)."""
        if self.block_reads == 0:
            return 100.0
        return ((self.block_reads - self.block_failures) / self.block_reads) * 100.0

    def as_dict(self) -> Dict:
        return {
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds(),
            "total_cycles": self.total_cycles,
            "completed_cycles": self.completed_cycles,
            "aborted_cycles": self.aborted_cycles,
            "timed_out_cycles": self.timed_out_cycles,
            "block_reads": self.block_reads,
            "block_failures": self.block_failures,
            "block_success_rate_percent": round(self.get_block_success_rate(), 2),
            "skipped_points": self.skipped_points,
            "failures_by_block": dict(self.failures_by_block),
            "average_cycle_duration_ms": round(self.get_average_cycle_duration_ms(), 2),
            "last_cycle_time": self.last_cycle_time.isoformat() if self.last_cycle_time else None,
            "last_success_time": (
                self.last_success_time.isoformat() if self.last_success_time else None
            ),
            "last_error": self.last_error,
        }
