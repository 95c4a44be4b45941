import json
import logging
import threading
from typing import List, Optional

from app.schemas import TickStatus
from datastore.device_store import DeviceStore
from models.records import BoundingBox
from services.fetcher import FetchOutcome, Fetched, RateLimited, TransportFailure
from services.poller import Poller
from services.reconciler import Reconciler

BOX = BoundingBox(nw_lat=40.8, nw_lng=-74.2, se_lat=40.6, se_lng=-73.9)

BODY = json.dumps(
    {
        "fields": ["ID", "Label", "pm_0"],
        "data": [[101, "Harbor", 12], [202, "Roof", 35.4]],
    }
)


class StubClient:
    def __init__(self, outcomes: List[FetchOutcome], default: Optional[FetchOutcome] = None) -> None:
        self.outcomes = list(outcomes)
        self.default = default or RateLimited()
        self.boxes: List[BoundingBox] = []
        self.closed = False
        self.polled = threading.Event()

    def poll(self, box: BoundingBox) -> FetchOutcome:
        self.boxes.append(box)
        self.polled.set()
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default

    def close(self) -> None:
        self.closed = True


class CountingStore(DeviceStore):
    def __init__(self) -> None:
        super().__init__()
        self.mutations = 0

    def notify_device_added(self, sensor) -> None:
        self.mutations += 1
        super().notify_device_added(sensor)

    def create_property(self, device_id, name, description, capability) -> None:
        self.mutations += 1
        super().create_property(device_id, name, description, capability)

    def set_cached_value(self, device_id, name, value) -> None:
        self.mutations += 1
        super().set_cached_value(device_id, name, value)


def _poller(client: StubClient, store: DeviceStore, interval: float = 35.0) -> Poller:
    return Poller(client=client, reconciler=Reconciler(store), box=BOX, interval=interval)


def test_tick_reconciles_fetched_records() -> None:
    store = DeviceStore()
    poller = _poller(StubClient([Fetched(BODY)]), store)

    status = poller.run_once()

    assert status is TickStatus.completed
    devices = sorted(store.scan(), key=lambda device: device.device_id)
    assert [device.title for device in devices] == ["Harbor", "Roof"]
    assert devices[0].properties["aqi"].value == 50
    assert devices[1].properties["aqi"].value == 100
    poller.shutdown()


def test_tick_recovers_malformed_payload() -> None:
    store = DeviceStore()
    body = '{"fields":["ID","Label","pm_0"],"data":[],[101,"Harbor",12]]}'
    poller = _poller(StubClient([Fetched(body)]), store)

    assert poller.run_once() is TickStatus.completed
    assert store.get_by_sensor_id("101") is not None
    poller.shutdown()


def test_rate_limited_tick_leaves_registry_untouched(caplog) -> None:
    store = CountingStore()
    poller = _poller(StubClient([RateLimited()]), store)

    with caplog.at_level(logging.DEBUG, logger="services.poller"):
        status = poller.run_once()

    assert status is TickStatus.rate_limited
    assert store.mutations == 0
    assert store.scan() == []
    rate_records = [record for record in caplog.records if "Rate limit" in record.getMessage()]
    assert rate_records and all(record.levelno == logging.DEBUG for record in rate_records)
    poller.shutdown()


def test_decode_error_is_logged_with_raw_payload(caplog) -> None:
    store = CountingStore()
    raw = '{"fields":["ID"],"data":[[1]'
    poller = _poller(StubClient([Fetched(raw)]), store)

    with caplog.at_level(logging.ERROR, logger="services.poller"):
        status = poller.run_once()

    assert status is TickStatus.decode_error
    assert store.mutations == 0
    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert errors
    assert raw in errors[0].getMessage()
    poller.shutdown()


def test_transport_failure_is_logged(caplog) -> None:
    poller = _poller(StubClient([TransportFailure("Unexpected response status 502", 502)]), DeviceStore())

    with caplog.at_level(logging.ERROR, logger="services.poller"):
        status = poller.run_once()

    assert status is TickStatus.transport_error
    assert any(getattr(record, "status_code", None) == 502 for record in caplog.records)
    poller.shutdown()


def test_errors_do_not_affect_next_tick() -> None:
    store = DeviceStore()
    client = StubClient([TransportFailure("boom"), Fetched("not json"), RateLimited(), Fetched(BODY)])
    poller = _poller(client, store)

    statuses = [poller.run_once() for _ in range(4)]

    assert statuses == [
        TickStatus.transport_error,
        TickStatus.decode_error,
        TickStatus.rate_limited,
        TickStatus.completed,
    ]
    assert len(store.scan()) == 2
    assert all(box is BOX for box in client.boxes)

    status = poller.status()
    assert status.tick_count == 4
    assert status.last_status is TickStatus.completed
    assert status.status_counts == {
        "transport_error": 1,
        "decode_error": 1,
        "rate_limited": 1,
        "completed": 1,
    }
    poller.shutdown()


def test_overlapping_tick_is_skipped() -> None:
    release = threading.Event()

    class BlockingClient(StubClient):
        def poll(self, box: BoundingBox) -> FetchOutcome:
            self.polled.set()
            release.wait(timeout=5)
            return RateLimited()

    client = BlockingClient([])
    poller = _poller(client, DeviceStore())
    worker = threading.Thread(target=poller.run_once)
    worker.start()
    try:
        assert client.polled.wait(timeout=5)
        assert poller.run_once() is TickStatus.skipped
    finally:
        release.set()
        worker.join(timeout=5)

    assert poller.status().status_counts == {"skipped": 1, "rate_limited": 1}
    poller.shutdown()


def test_start_polls_immediately_and_stop_halts() -> None:
    client = StubClient([Fetched(BODY)])
    store = DeviceStore()
    poller = _poller(client, store, interval=60.0)

    poller.start()
    try:
        assert client.polled.wait(timeout=5)
        assert poller.running is True
    finally:
        poller.shutdown()

    assert poller.running is False
    assert client.closed is True


def test_schedule_repeats_on_interval() -> None:
    ticks = threading.Semaphore(0)

    class CountingClient(StubClient):
        def poll(self, box: BoundingBox) -> FetchOutcome:
            ticks.release()
            return TransportFailure("down")

    poller = _poller(CountingClient([]), DeviceStore(), interval=0.05)
    poller.start()
    try:
        for _ in range(3):
            assert ticks.acquire(timeout=5)
    finally:
        poller.shutdown()


def test_unexpected_exception_is_contained(caplog) -> None:
    class ExplodingClient(StubClient):
        def poll(self, box: BoundingBox) -> FetchOutcome:
            raise RuntimeError("kaboom")

    poller = _poller(ExplodingClient([]), DeviceStore())

    with caplog.at_level(logging.ERROR, logger="services.poller"):
        poller._guarded_tick()  # type: ignore[attr-defined]

    assert poller.status().last_status is TickStatus.failed
    assert any("Unexpected error" in record.getMessage() for record in caplog.records)
    poller.shutdown()


def test_non_finite_or_non_positive_interval_is_rejected() -> None:
    for interval in (float("inf"), float("nan"), 0.0, -5.0):
        client = StubClient([])
        try:
            _poller(client, DeviceStore(), interval=interval)
        except ValueError as exc:
            assert "Poll interval" in str(exc)
        else:
            raise AssertionError(f"interval {interval!r} was accepted")


def test_running_is_false_once_timer_thread_exits() -> None:
    poller = _poller(StubClient([]), DeviceStore(), interval=60.0)
    poller._schedule = lambda: None  # type: ignore[method-assign]

    poller.start()
    poller._thread.join(timeout=5)  # type: ignore[union-attr]

    assert poller.running is False
    assert poller.status().running is False
    poller.shutdown()


def test_shutdown_waits_for_in_flight_tick_before_closing_client() -> None:
    release = threading.Event()
    events: List[str] = []

    class SlowClient(StubClient):
        def poll(self, box: BoundingBox) -> FetchOutcome:
            self.polled.set()
            release.wait(timeout=5)
            events.append("poll-done")
            return RateLimited()

        def close(self) -> None:
            events.append("closed")
            super().close()

    client = SlowClient([])
    poller = _poller(client, DeviceStore(), interval=60.0)
    poller.start()
    assert client.polled.wait(timeout=5)

    stopper = threading.Thread(target=poller.shutdown)
    stopper.start()
    try:
        assert client.closed is False
    finally:
        release.set()
        stopper.join(timeout=5)

    assert events == ["poll-done", "closed"]
