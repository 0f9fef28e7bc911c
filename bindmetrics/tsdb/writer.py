"""Background TSDB sender with buffering, chunking and age-bounded retry."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Iterator, List, Mapping, Optional

from bindmetrics.tsdb.base import Point, SenderConfigError, TimeseriesStore
from bindmetrics.tsdb.influxdb import InfluxDbTimeseriesStore

if TYPE_CHECKING:
    from bindmetrics.config import AppConfig

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_MAX_POINT_AGE = timedelta(minutes=10)
DEFAULT_FLUSH_INTERVAL_SECONDS = 10.0
DEFAULT_ERROR_BUFFER_SIZE = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryError(RuntimeError):
    """One chunk write failed.

    The points that were still young enough have been put back into the
    pending batch; the rest were dropped.
    """

    def __init__(self, cause: BaseException, chunk_size: int, requeued: int, expired: int) -> None:
        self.cause = cause
        self.chunk_size = chunk_size
        self.requeued = requeued
        self.expired = expired
        super().__init__(
            f"writing chunk of {chunk_size} points failed ({requeued} requeued, {expired} expired): {cause}"
        )


@dataclass
class FlushResult:
    """Outcome of one flush cycle."""

    chunks: int = 0
    failed_chunks: int = 0
    delivered: int = 0
    requeued: int = 0
    expired: int = 0


def iter_chunks(points: List[Point], size: int) -> Iterator[List[Point]]:
    for start in range(0, len(points), size):
        yield points[start : start + size]


class MetricsSender:
    """Buffer points and flush them to a store from a background thread.

    Producers call :meth:`enqueue` from any thread. The flush cycle swaps the
    pending batch out under the lock and writes outside of it, so a slow or
    failing store never blocks producers. Failed chunks are reported on the
    error queue and their unexpired points are merged back into whatever batch
    is pending at that moment.
    """

    def __init__(
        self,
        store: TimeseriesStore,
        database: str,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_point_age: timedelta = DEFAULT_MAX_POINT_AGE,
        error_buffer_size: int = DEFAULT_ERROR_BUFFER_SIZE,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not database:
            raise SenderConfigError("database name must not be empty")
        if flush_interval_seconds <= 0:
            raise SenderConfigError("flush interval must be positive")
        if chunk_size < 1:
            raise SenderConfigError("chunk size must be at least 1")
        if max_point_age <= timedelta(0):
            raise SenderConfigError("max point age must be positive")
        if error_buffer_size < 1:
            raise SenderConfigError("error buffer size must be at least 1")

        self.store = store
        self.database = database
        self.flush_interval = float(flush_interval_seconds)
        self.chunk_size = int(chunk_size)
        self.max_point_age = max_point_age
        self.clock = clock
        self.monotonic = monotonic
        self.logger = logger or logging.getLogger(__name__)
        self._batch: List[Point] = []
        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._errors: "queue.Queue[DeliveryError]" = queue.Queue(maxsize=error_buffer_size)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_write_at: Optional[datetime] = None

    def start(self) -> None:
        if self._thread:
            return
        self._thread = threading.Thread(target=self._run, name="metrics-sender", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> FlushResult:
        """Stop the flush thread, make one last delivery attempt and close the store."""

        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        result = self.flush()
        self.store.close()
        pending = self.queue_depth
        if pending:
            self.logger.warning("Stopping with %s undelivered points", pending)
        return result

    def errors(self) -> "queue.Queue[DeliveryError]":
        """Bounded stream of delivery failures. Consumers should only ``get``."""

        return self._errors

    def enqueue(self, measurement: str, tags: Mapping[str, str], fields: Mapping[str, object]) -> Point:
        point = Point(
            measurement=measurement,
            ts=self.clock(),
            tags=tags,
            fields=fields,
            captured_at=self.monotonic(),
        )
        with self._lock:
            self._batch.append(point)
        return point

    def flush(self) -> FlushResult:
        with self._cycle_lock:
            with self._lock:
                batch = self._batch
                self._batch = []

            result = FlushResult()
            for chunk in iter_chunks(batch, self.chunk_size):
                result.chunks += 1
                try:
                    self.store.write_points(chunk, self.database)
                except Exception as exc:  # pylint: disable=broad-except
                    result.failed_chunks += 1
                    self._handle_failed_chunk(chunk, exc, result)
                    continue
                result.delivered += len(chunk)
                self.last_write_at = _utcnow()

        if result.chunks:
            self.logger.debug(
                "Flushed %s chunks: delivered=%s failed_chunks=%s requeued=%s expired=%s",
                result.chunks,
                result.delivered,
                result.failed_chunks,
                result.requeued,
                result.expired,
            )
        return result

    def _handle_failed_chunk(self, chunk: List[Point], exc: Exception, result: FlushResult) -> None:
        survivors = self._filter_expired(chunk)
        expired = len(chunk) - len(survivors)
        self._report(DeliveryError(exc, len(chunk), len(survivors), expired))
        if survivors:
            with self._lock:
                self._batch.extend(survivors)
        result.requeued += len(survivors)
        result.expired += expired

    def _filter_expired(self, points: List[Point]) -> List[Point]:
        # monotonic, so wall-clock steps do not change a point's age
        now = self.monotonic()
        max_age = self.max_point_age.total_seconds()
        return [p for p in points if now - p.captured_at < max_age]

    def _report(self, err: DeliveryError) -> None:
        err.__cause__ = err.cause
        try:
            self._errors.put_nowait(err)
        except queue.Full:
            self.logger.warning("Error queue full, dropping delivery error: %s", err)

    def _run(self) -> None:
        while not self._stop.wait(self.flush_interval):
            try:
                self.flush()
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("Unexpected error in flush cycle")

    @property
    def queue_depth(self) -> int:
        with self._lock:
            return len(self._batch)


def create_sender(config: "AppConfig", logger: Optional[logging.Logger] = None) -> MetricsSender:
    """Build the InfluxDB store and a started sender from configuration."""

    store = InfluxDbTimeseriesStore(
        config.influx_host,
        username=config.influx_user,
        password=config.influx_pass,
        timeout=config.timeout_seconds,
    )
    try:
        sender = MetricsSender(
            store,
            config.influx_db_name,
            flush_interval_seconds=config.flush_interval_seconds,
            chunk_size=config.chunk_size,
            max_point_age=timedelta(seconds=config.max_point_age_seconds),
            error_buffer_size=config.error_buffer_size,
            logger=logger,
        )
    except SenderConfigError:
        store.close()
        raise
    sender.start()
    return sender
