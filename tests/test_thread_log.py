import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.errors import BadRequest, InternalError, ThreadNotFound
from data.models import Role
from data.repo import StoreConflict


@pytest.fixture
def thread_id(relay):
    return relay.register("pico-log").thread_id


def test_concurrent_appends_get_gapless_ids(relay, repo, thread_id):
    def send(i):
        sender = Role.DEVICE if i % 2 else Role.WEB
        return relay.threads.append(thread_id, sender, f"msg {i}").msg_id

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(send, range(40)))

    assert sorted(ids) == list(range(1, 41))
    assert repo.get_thread(thread_id).last_msg_id == 40

    page = relay.threads.read_since(thread_id, 0, 100)
    assert [m.msg_id for m in page.msgs] == list(range(1, 41))
    assert page.latest == 40


def test_read_since_is_strictly_after_and_ascending(relay, thread_id):
    for i in range(6):
        relay.threads.append(thread_id, Role.DEVICE, f"m{i}")

    page = relay.threads.read_since(thread_id, 2, 10)
    ids = [m.msg_id for m in page.msgs]
    assert ids == [3, 4, 5, 6]
    assert all(a < b for a, b in zip(ids, ids[1:]))
    assert page.latest == 6


def test_read_since_limit_and_empty_page(relay, thread_id):
    for i in range(4):
        relay.threads.append(thread_id, Role.WEB, f"m{i}")

    page = relay.threads.read_since(thread_id, 0, 2)
    assert [m.msg_id for m in page.msgs] == [1, 2]
    assert page.latest == 2

    page = relay.threads.read_since(thread_id, 4, 2)
    assert page.msgs == []
    assert page.latest == 4   # cursor handed back unchanged


def test_repeated_reads_return_same_prefix(relay, thread_id):
    relay.threads.append(thread_id, Role.DEVICE, "a")
    relay.threads.append(thread_id, Role.WEB, "b")

    first = relay.threads.read_since(thread_id, 0, 20)
    second = relay.threads.read_since(thread_id, 0, 20)
    assert first == second

    relay.threads.append(thread_id, Role.DEVICE, "c")
    third = relay.threads.read_since(thread_id, 0, 20)
    assert third.msgs[:2] == first.msgs
    assert third.msgs[2].text == "c"


def test_text_length_limits(relay, thread_id):
    with pytest.raises(BadRequest):
        relay.threads.append(thread_id, Role.DEVICE, "")
    with pytest.raises(BadRequest):
        relay.threads.append(thread_id, Role.DEVICE, "x" * 281)
    with pytest.raises(BadRequest):
        relay.threads.append(thread_id, Role.DEVICE, None)

    assert relay.threads.append(thread_id, Role.DEVICE, "x").msg_id == 1
    assert relay.threads.append(thread_id, Role.DEVICE, "é" * 280).msg_id == 2


def test_rejected_text_does_not_consume_an_id(relay, repo, thread_id):
    with pytest.raises(BadRequest):
        relay.threads.append(thread_id, Role.DEVICE, "x" * 300)
    assert repo.get_thread(thread_id).last_msg_id == 0


def test_ts_is_assigned_by_server(relay, thread_id):
    t0 = int(time.time() * 1000)
    res = relay.threads.append(thread_id, Role.WEB, "now")
    t1 = int(time.time() * 1000)
    assert t0 <= res.ts <= t1
    assert relay.threads.read_since(thread_id, 0, 1).msgs[0].ts == res.ts


def test_append_to_missing_thread(relay):
    with pytest.raises(ThreadNotFound) as exc:
        relay.threads.append("ghost", Role.DEVICE, "hello?")
    assert isinstance(exc.value, InternalError)
    assert exc.value.status_code == 500


def test_append_retries_after_conflict(relay, repo, thread_id, monkeypatch):
    real = repo.append_message
    calls = []

    def flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise StoreConflict("database is locked")
        return real(*args, **kwargs)

    monkeypatch.setattr(repo, "append_message", flaky)
    assert relay.threads.append(thread_id, Role.DEVICE, "eventually").msg_id == 1
    assert len(calls) == 2


def test_append_gives_up_after_attempts(relay, repo, thread_id, monkeypatch):
    def locked(*args, **kwargs):
        raise StoreConflict("database is locked")

    monkeypatch.setattr(repo, "append_message", locked)
    with pytest.raises(StoreConflict):
        relay.threads.append(thread_id, Role.DEVICE, "never")

    token = repo.get_device("pico-log").token
    with pytest.raises(InternalError) as exc:
        relay.device_send(token, "never")
    assert exc.value.detail == "Send failed"
