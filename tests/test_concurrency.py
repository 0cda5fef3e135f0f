import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from nearask.config.settings import Settings
from nearask.domain.errors import AlreadyAnswered, InvalidTransition, LifecycleError
from nearask.domain.models import Coordinate, RequestDraft
from nearask.lifecycle.service import RequestService
from nearask.storage.base import LockRegistry
from nearask.storage.json_store import JsonDirectoryStore
from nearask.storage.memory import InMemoryRequestStore


class RacingMemoryStore(InMemoryRequestStore):
    """Holds every `get_request` caller at a barrier so all racers pass the pre-check together."""

    def __init__(self, parties: int):
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=5)
        self.armed = False

    def get_request(self, request_id):
        request = super().get_request(request_id)
        if self.armed:
            self.barrier.wait()
        return request


class RacingJsonStore(JsonDirectoryStore):
    def __init__(self, base_dir, parties: int):
        super().__init__(base_dir)
        self.barrier = threading.Barrier(parties, timeout=5)
        self.armed = False

    def get_request(self, request_id):
        request = super().get_request(request_id)
        if self.armed:
            self.barrier.wait()
        return request


def _race(service: RequestService, request_id: str, responders: list[str]) -> list[object]:
    def attempt(responder: str):
        try:
            return service.submit_response(request_id, responder, f"answer from {responder}")
        except LifecycleError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(responders)) as pool:
        return list(pool.map(attempt, responders))


@pytest.mark.parametrize("backend", ["memory", "json"])
def test_two_concurrent_answers_have_exactly_one_winner(backend, tmp_path):
    store = RacingMemoryStore(parties=2) if backend == "memory" else RacingJsonStore(tmp_path, parties=2)
    service = RequestService(store, settings=Settings())
    rid = service.create_request(
        "alice", RequestDraft(title="Is it raining?", location=Coordinate(lat=35.6812, lon=139.7671))
    ).id

    store.armed = True
    results = _race(service, rid, ["bob", "carol"])
    store.armed = False

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyAnswered)

    detail = service.get_request_detail(rid)
    assert detail.request.status == "answered"
    assert detail.response.id == winners[0].id
    answered = service.list_responder_responses("bob") + service.list_responder_responses("carol")
    assert len(answered) == 1


def test_many_unsynchronized_answers_leave_a_single_response():
    service = RequestService(InMemoryRequestStore(), settings=Settings())
    rid = service.create_request("alice", {"title": "Queue length?", "location": {"lat": 1.0, "lon": 1.0}}).id

    responders = [f"user{i}" for i in range(16)]
    results = _race(service, rid, responders)

    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    for r in results:
        if isinstance(r, Exception):
            # Lost either at the pre-check or inside the atomic unit.
            assert isinstance(r, (AlreadyAnswered, InvalidTransition))
    assert sum(len(service.list_responder_responses(u)) for u in responders) == 1


class SharedBarrierJsonStore(JsonDirectoryStore):
    """Separate store instance (own in-process locks) that waits at a barrier shared with its rivals."""

    def __init__(self, base_dir, barrier: threading.Barrier):
        super().__init__(base_dir)
        self.barrier = barrier

    def get_request(self, request_id):
        request = super().get_request(request_id)
        self.barrier.wait()
        return request


def test_json_stores_sharing_a_directory_have_exactly_one_winner(tmp_path):
    # Two instances stand in for two processes: only the file lock is shared between them.
    rid = (
        RequestService(JsonDirectoryStore(tmp_path), settings=Settings())
        .create_request("alice", {"title": "Is the gym busy?", "location": {"lat": 35.0, "lon": 139.0}})
        .id
    )
    barrier = threading.Barrier(2, timeout=5)
    services = {
        "bob": RequestService(SharedBarrierJsonStore(tmp_path, barrier), settings=Settings()),
        "carol": RequestService(SharedBarrierJsonStore(tmp_path, barrier), settings=Settings()),
    }

    def attempt(responder: str):
        try:
            return services[responder].submit_response(rid, responder, f"answer from {responder}")
        except LifecycleError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(attempt, ["bob", "carol"]))

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1 and isinstance(losers[0], AlreadyAnswered)

    stored = RequestService(JsonDirectoryStore(tmp_path), settings=Settings()).get_request_detail(rid)
    assert stored.response.id == winners[0].id
    assert stored.response.responder_id == winners[0].responder_id
    assert not list((tmp_path / "requests").glob("*.tmp"))


def test_lock_registry_hands_out_independent_locks_and_forgets_them():
    registry = LockRegistry()

    with registry.hold("a"):
        assert len(registry) == 1
        # Holding one request's lock does not block another request's.
        with registry.hold("b"):
            assert len(registry) == 2
        assert len(registry) == 1
    assert len(registry) == 0


def test_lock_registry_serializes_holders_of_the_same_key():
    registry = LockRegistry()
    inside = []
    entered = threading.Event()
    release = threading.Event()

    def first():
        with registry.hold("rid"):
            inside.append("first")
            entered.set()
            release.wait(timeout=5)

    def second():
        entered.wait(timeout=5)
        with registry.hold("rid"):
            inside.append("second")

    t1 = threading.Thread(target=first)
    t2 = threading.Thread(target=second)
    t1.start()
    t2.start()
    entered.wait(timeout=5)
    t2.join(timeout=0.2)
    assert inside == ["first"]

    release.set()
    t1.join(timeout=5)
    t2.join(timeout=5)
    assert inside == ["first", "second"]
    assert len(registry) == 0


def test_deleted_requests_do_not_leave_locks_behind():
    store = InMemoryRequestStore()
    service = RequestService(store, settings=Settings())
    for _ in range(5):
        rid = service.create_request("alice", {"title": "q", "location": {"lat": 0, "lon": 0}}).id
        service.submit_response(rid, "bob", "a")
        service.delete_request(rid, "alice")
    assert len(store._locks) == 0
