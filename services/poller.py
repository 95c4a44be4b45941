"""Scheduled polling of the sensor network."""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import lru_cache
from threading import Event, Lock, Thread
from typing import Dict, Optional

from app.schemas import BoundingBoxSchema, PollerStatus, TickStatus
from datastore.device_store import DeviceStore, build_default_store
from models.records import BoundingBox
from services.columnar import DecodeError, parse_columnar, to_records
from services.fetcher import Fetched, RateLimited, SensorNetworkClient, TransportFailure
from services.geo import bounding_box
from services.reconciler import Reconciler, options_for_variant
from settings import get_settings

DEFAULT_INTERVAL_SECONDS = 35.0


class Poller:
    """Runs the fetch, parse, decode and reconcile pipeline on a fixed period."""

    def __init__(
        self,
        client: SensorNetworkClient,
        reconciler: Reconciler,
        box: BoundingBox,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not math.isfinite(interval) or interval <= 0:
            raise ValueError(f"Poll interval must be a positive number of seconds, got {interval!r}.")
        self.client = client
        self.reconciler = reconciler
        self.box = box
        self.interval = interval
        self.logger = logger or logging.getLogger(__name__)
        self._tick_lock = Lock()
        self._status_lock = Lock()
        self._stop = Event()
        self._thread: Optional[Thread] = None
        # Two workers so a tick that overruns the period does not hold up the
        # next dispatch, which then finds the guard taken and skips.
        self.executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="poller")
        self._tick_count = 0
        self._last_status: Optional[TickStatus] = None
        self._last_tick_at: Optional[datetime] = None
        self._status_counts: Dict[str, int] = {}

    def run_once(self) -> TickStatus:
        """Execute one tick unless another is still in flight."""
        if not self._tick_lock.acquire(blocking=False):
            self.logger.warning("Previous poll still in flight, skipping tick")
            status = TickStatus.skipped
        else:
            try:
                status = self._tick()
            finally:
                self._tick_lock.release()
        self._record(status)
        return status

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = Thread(target=self._schedule, name="poller-timer", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._thread = None
        # Let an in-flight tick finish before the caller closes the client.
        self.executor.shutdown(wait=True, cancel_futures=True)

    def shutdown(self) -> None:
        """Stop scheduling and release the HTTP client."""
        self.stop()
        self.client.close()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop.is_set()

    def status(self) -> PollerStatus:
        with self._status_lock:
            return PollerStatus(
                running=self.running,
                interval_seconds=self.interval,
                bounding_box=BoundingBoxSchema(
                    nw_lat=self.box.nw_lat,
                    nw_lng=self.box.nw_lng,
                    se_lat=self.box.se_lat,
                    se_lng=self.box.se_lng,
                ),
                tick_count=self._tick_count,
                last_status=self._last_status,
                last_tick_at=self._last_tick_at,
                status_counts=dict(self._status_counts),
            )

    def _schedule(self) -> None:
        self._dispatch()
        while not self._stop.wait(self.interval):
            self._dispatch()

    def _dispatch(self) -> None:
        try:
            self.executor.submit(self._guarded_tick)
        except RuntimeError:
            # Executor already shut down.
            self._stop.set()

    def _guarded_tick(self) -> None:
        try:
            self.run_once()
        except Exception:  # noqa: BLE001 - keep the schedule alive
            self.logger.exception("Unexpected error during poll")
            self._record(TickStatus.failed)

    def _tick(self) -> TickStatus:
        start_time = time.perf_counter()
        outcome = self.client.poll(self.box)

        if isinstance(outcome, RateLimited):
            self.logger.debug("Rate limit exceeded, waiting for next interval")
            return TickStatus.rate_limited
        if isinstance(outcome, TransportFailure):
            self.logger.error(
                "Poll failed: %s",
                outcome.reason,
                extra={"status_code": outcome.status_code},
            )
            return TickStatus.transport_error
        assert isinstance(outcome, Fetched)

        try:
            payload = parse_columnar(outcome.text)
        except DecodeError as exc:
            self.logger.error("Could not decode response: %s | raw=%s", exc, exc.raw)
            return TickStatus.decode_error

        records = to_records(payload)
        self.logger.debug("Decoded records", extra={"record_count": len(records)})
        summary = self.reconciler.reconcile(records)

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        self.logger.info(
            "Poll completed: %d new, %d updated, %d skipped",
            summary.created,
            summary.updated,
            summary.skipped,
            extra={"record_count": summary.seen, "elapsed_ms": elapsed_ms},
        )
        return TickStatus.completed

    def _record(self, status: TickStatus) -> None:
        with self._status_lock:
            self._tick_count += 1
            self._last_status = status
            self._last_tick_at = datetime.now(timezone.utc)
            self._status_counts[status.value] = self._status_counts.get(status.value, 0) + 1


def build_poller(store: DeviceStore) -> Poller:
    """Wire a poller against ``store`` using the configured region and variant."""
    settings = get_settings()
    options = options_for_variant(settings.variant)
    box = bounding_box(settings.latitude, settings.longitude, settings.radius_km)
    client = SensorNetworkClient(
        base_url=settings.base_url,
        fields=options.request_fields(),
        timeout=settings.http_timeout,
    )
    return Poller(
        client=client,
        reconciler=Reconciler(store, options),
        box=box,
        interval=settings.poll_interval,
    )


@lru_cache
def build_default_poller() -> Poller:
    """Factory that wires the poller to the shared device store."""
    return build_poller(build_default_store())
