"""Collection cycles and the two snapshot refresh strategies.

A cycle opens the session, reads every block of the register map, decodes
the points of each successful block and closes the session again. A failing
block only loses its own points; a failing connect loses the whole cycle.

Strategies:
- ``OnDemandCollector``: every scrape runs a fresh cycle.
- ``BackgroundCollector``: a loop refreshes on a fixed interval and scrapes
  are served from the last published snapshot.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import suppress
from typing import Optional, Tuple

from app.config.registers import load_register_map
from app.core.config import CollectionMode, Settings
from app.core.decoder import WordOrder, decode_point
from app.core.logging_config import get_logger
from app.core.metrics import CollectionMetrics
from app.core.modbus_client import ConnectError, ModbusSession, ReadError
from app.core.register_map import ReadBlock, RegisterMap
from app.core.snapshot import SnapshotBuilder, SnapshotStore, TelemetrySnapshot

logger = get_logger(__name__)


class CollectionError(Exception):
    """Base exception for cycles that produced no snapshot."""


class CycleAbortedError(CollectionError):
    """The session could not be opened; nothing was read."""


class CycleTimeoutError(CollectionError):
    """The cycle exceeded its time budget and was abandoned."""


class SnapshotUnavailableError(CollectionError):
    """No cycle has completed yet."""


def _decode_block(
    block: ReadBlock,
    words,
    word_order: WordOrder,
    builder: SnapshotBuilder,
) -> Tuple[str, ...]:
    """Add every decodable point of ``block`` to ``builder``; return skipped ids."""
    skipped = []
    for point in block.points:
        value = decode_point(words, point, word_order)
        if value is None:
            skipped.append(point.id)
            continue
        builder.add_value(point, value)
    return tuple(skipped)


def collect_once(
    session,
    register_map: RegisterMap,
    word_order: WordOrder,
) -> TelemetrySnapshot:
    """Run one blocking collection cycle against ``session``.

    Raises:
        ConnectError: the session could not be opened. No snapshot is built.
    """
    started = time.monotonic()
    builder = SnapshotBuilder(target=session.target)
    logger.debug(
        "collection_cycle_started",
        target=session.target,
        register_map=register_map.name,
        blocks=len(register_map),
    )

    try:
        session.open()
        for block in register_map:
            try:
                words = session.read(block.address, block.count, block=block.name)
            except ReadError as exc:
                logger.warning(
                    "block_read_failed",
                    target=session.target,
                    block=block.name,
                    address=block.address,
                    count=block.count,
                    error=exc.cause,
                )
                builder.record_failure(block, exc.cause)
                continue

            if len(words) < block.count:
                error = f"short response: {len(words)} of {block.count} registers"
                logger.warning("block_read_failed", target=session.target, block=block.name, error=error)
                builder.record_failure(block, error)
                continue

            skipped = _decode_block(block, words, word_order, builder)
            if skipped:
                logger.warning("points_skipped", block=block.name, points=list(skipped))
            builder.record_success(block, skipped)
    finally:
        session.close()

    snapshot = builder.build(time.monotonic() - started)
    logger.info(
        "collection_cycle_completed",
        target=session.target,
        values=len(snapshot.values),
        failed_blocks=[b.block for b in snapshot.failed_blocks],
        duration_ms=round(snapshot.duration_seconds * 1000, 1),
    )
    return snapshot


class Collector(ABC):
    """Runs serialized, time-bounded cycles and publishes their snapshots."""

    mode: CollectionMode

    def __init__(
        self,
        session,
        register_map: RegisterMap,
        word_order: WordOrder = WordOrder.LOW_FIRST,
        cycle_timeout: float = 30.0,
        store: Optional[SnapshotStore] = None,
    ) -> None:
        self.session = session
        self.register_map = register_map
        self.word_order = word_order
        self.cycle_timeout = cycle_timeout
        self.store = store or SnapshotStore()
        self.metrics = CollectionMetrics()
        # One in-flight cycle per session.
        self._lock = asyncio.Lock()

    @property
    def target(self) -> str:
        return self.session.target

    async def collect(self) -> TelemetrySnapshot:
        """Run one cycle, publish the snapshot and return it.

        ``cycle_timeout`` covers the whole call, including time spent queued
        behind a cycle that is already running.
        """
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.cycle_timeout)
        except asyncio.TimeoutError:
            raise self._timed_out(started, "collection_cycle_queue_timeout") from None
        try:
            remaining = self.cycle_timeout - (time.monotonic() - started)
            if remaining <= 0:
                raise self._timed_out(started, "collection_cycle_queue_timeout")
            return await self._run_cycle(started, remaining)
        finally:
            self._lock.release()

    def _timed_out(self, started: float, event: str) -> CycleTimeoutError:
        error = f"collection cycle exceeded {self.cycle_timeout}s"
        self.metrics.record_aborted(error, self._elapsed_ms(started), timed_out=True)
        logger.warning(event, target=self.target, timeout=self.cycle_timeout)
        return CycleTimeoutError(error)

    async def _run_cycle(self, started: float, budget: float) -> TelemetrySnapshot:
        worker = asyncio.ensure_future(
            asyncio.to_thread(collect_once, self.session, self.register_map, self.word_order)
        )
        try:
            snapshot = await asyncio.wait_for(asyncio.shield(worker), timeout=budget)
        except asyncio.TimeoutError:
            await self._abandon(worker)
            raise self._timed_out(started, "collection_cycle_timeout") from None
        except asyncio.CancelledError:
            await self._abandon(worker)
            raise
        except ConnectError as exc:
            self.metrics.record_aborted(str(exc), self._elapsed_ms(started))
            logger.warning("collection_cycle_aborted", target=self.target, error=exc.cause)
            raise CycleAbortedError(str(exc)) from exc
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            self.metrics.record_aborted(error, self._elapsed_ms(started))
            logger.error(
                "collection_cycle_error",
                target=self.target,
                exception_type=type(exc).__name__,
                exception=str(exc),
                exc_info=True,
            )
            raise CollectionError(f"collection cycle failed: {error}") from exc

        self.metrics.record_completed(snapshot.blocks, self._elapsed_ms(started))
        await self.store.publish(snapshot)
        return snapshot

    async def _abandon(self, worker: asyncio.Future) -> None:
        # Force-close so the worker's remaining reads fail fast, then wait for it
        # so the session is idle before the lock is released.
        self.session.close()
        await asyncio.gather(worker, return_exceptions=True)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.monotonic() - started) * 1000

    @abstractmethod
    async def get_snapshot(self) -> TelemetrySnapshot:
        """Return the snapshot a scrape should be served from."""

    async def start(self) -> None:
        logger.info("collector_started", mode=self.mode.value, target=self.target)

    async def stop(self) -> None:
        await asyncio.to_thread(self.session.close)
        logger.info("collector_stopped", mode=self.mode.value, target=self.target)


class OnDemandCollector(Collector):
    """Collects synchronously for every scrape; data is never older than the scrape."""

    mode = CollectionMode.ON_DEMAND

    async def get_snapshot(self) -> TelemetrySnapshot:
        return await self.collect()


class BackgroundCollector(Collector):
    """Refreshes on a fixed interval; scrapes never touch the network."""

    mode = CollectionMode.BACKGROUND

    def __init__(self, *args, interval_seconds: float = 30.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.interval_seconds = interval_seconds if interval_seconds > 0 else 1.0
        self._task: Optional[asyncio.Task] = None

    async def get_snapshot(self) -> TelemetrySnapshot:
        snapshot = await self.store.get()
        if snapshot is None:
            raise SnapshotUnavailableError("No snapshot has been collected yet")
        return snapshot

    async def run(self) -> None:
        """Refresh loop; runs until cancelled."""
        logger.info(
            "background_collection_started",
            target=self.target,
            interval_seconds=self.interval_seconds,
        )
        try:
            while True:
                started = time.monotonic()
                try:
                    await self.collect()
                except CollectionError as exc:
                    logger.warning(
                        "collection_cycle_failed",
                        target=self.target,
                        error=str(exc),
                        message="Keeping previous snapshot",
                    )
                except Exception as exc:
                    logger.error(
                        "collection_cycle_unexpected_error",
                        target=self.target,
                        exception_type=type(exc).__name__,
                        exception=str(exc),
                        exc_info=True,
                    )
                elapsed = time.monotonic() - started
                await asyncio.sleep(max(0.0, self.interval_seconds - elapsed))
        except asyncio.CancelledError:
            logger.info("background_collection_cancelled", target=self.target)
            raise

    async def start(self) -> None:
        await super().start()
        self._task = asyncio.create_task(self.run(), name="d500-collector")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await super().stop()


def build_collector(
    app_settings: Settings,
    session=None,
    register_map: Optional[RegisterMap] = None,
) -> Collector:
    """Create the collector selected by ``COLLECTION_MODE``."""
    if session is None:
        session = ModbusSession(
            host=app_settings.DATAKOM_HOST,
            port=app_settings.DATAKOM_PORT,
            unit_id=app_settings.MODBUS_UNIT_ID,
            timeout=app_settings.MODBUS_TIMEOUT_SECONDS,
        )
    if register_map is None:
        register_map = load_register_map(app_settings.REGISTER_MAP_FILE)

    common = dict(
        word_order=app_settings.WORD_ORDER,
        cycle_timeout=app_settings.CYCLE_TIMEOUT_SECONDS,
    )
    if app_settings.COLLECTION_MODE is CollectionMode.BACKGROUND:
        return BackgroundCollector(
            session,
            register_map,
            interval_seconds=app_settings.POLL_INTERVAL_SECONDS,
            **common,
        )
    return OnDemandCollector(session, register_map, **common)
