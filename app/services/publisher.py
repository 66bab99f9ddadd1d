"""Render telemetry snapshots in the Prometheus text exposition format."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from app.core.register_map import RegisterMap
from app.core.snapshot import TelemetrySnapshot

BLOCK_SUCCESS_METRIC = "d500_block_read_success"
SNAPSHOT_TIMESTAMP_METRIC = "d500_snapshot_timestamp_seconds"
COLLECTION_DURATION_METRIC = "d500_collection_duration_seconds"


class SnapshotCollector(Collector):
    """Exposes one snapshot as gauges, one family per register-map metric.

    Families whose points were not read (failed block, skipped point) are
    emitted without samples rather than with zeros.
    """

    def __init__(self, register_map: RegisterMap, snapshot: Optional[TelemetrySnapshot]) -> None:
        self.register_map = register_map
        self.snapshot = snapshot

    def _families(self) -> dict:
        return {
            point.metric: GaugeMetricFamily(
                point.metric,
                point.help or point.metric,
                labels=list(point.label_names),
            )
            for point in self.register_map.metric_families()
        }

    def describe(self) -> Iterable[Metric]:
        yield from self._families().values()
        yield GaugeMetricFamily(BLOCK_SUCCESS_METRIC, "Whether the last read of a register block succeeded", labels=["block"])
        yield GaugeMetricFamily(SNAPSHOT_TIMESTAMP_METRIC, "Unix time the published snapshot was captured")
        yield GaugeMetricFamily(COLLECTION_DURATION_METRIC, "Duration of the cycle that produced the snapshot")

    def collect(self) -> Iterator[Metric]:
        if self.snapshot is None:
            return
        families = self._families()
        for value in self.snapshot.values:
            family = families.get(value.metric)
            if family is None:
                continue
            family.add_metric([v for _, v in value.labels], value.value)
        yield from families.values()

        blocks = GaugeMetricFamily(
            BLOCK_SUCCESS_METRIC,
            "Whether the last read of a register block succeeded",
            labels=["block"],
        )
        for result in self.snapshot.blocks:
            blocks.add_metric([result.block], 1.0 if result.success else 0.0)
        yield blocks

        yield GaugeMetricFamily(
            SNAPSHOT_TIMESTAMP_METRIC,
            "Unix time the published snapshot was captured",
            value=self.snapshot.captured_at.timestamp(),
        )
        yield GaugeMetricFamily(
            COLLECTION_DURATION_METRIC,
            "Duration of the cycle that produced the snapshot",
            value=self.snapshot.duration_seconds,
        )


def render_snapshot(register_map: RegisterMap, snapshot: Optional[TelemetrySnapshot]) -> bytes:
    """Render ``snapshot`` into a fresh registry; no process-wide state is touched."""
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SnapshotCollector(register_map, snapshot))
    return generate_latest(registry)
