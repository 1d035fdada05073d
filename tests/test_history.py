import threading
from datetime import timedelta

import pytest

from rocm_monitor.collector import HistoryStore, NoDataError
from rocm_monitor.collector.history import ReadWriteLock

from conftest import make_sample


def test_snapshot_keeps_insertion_order(now):
    store = HistoryStore(10)
    # deliberately out of timestamp order
    items = [make_sample(now), make_sample(now - timedelta(minutes=1)), make_sample(now + timedelta(minutes=1))]
    for s in items:
        store.append(s)
    assert store.snapshot() == items


def test_capacity_evicts_oldest_first(now):
    store = HistoryStore(3)
    items = [make_sample(now + timedelta(seconds=i)) for i in range(7)]
    for s in items:
        store.append(s)
    assert len(store) == 3
    assert store.snapshot() == items[-3:]


def test_non_positive_capacity_uses_default():
    assert HistoryStore(0).capacity == 1000


def test_latest(samples):
    store = HistoryStore()
    with pytest.raises(NoDataError):
        store.latest()
    for s in samples:
        store.append(s)
    assert store.latest() is samples[-1]


def test_snapshot_is_a_copy(samples):
    store = HistoryStore()
    for s in samples:
        store.append(s)
    snap = store.snapshot()
    snap.clear()
    assert len(store) == len(samples)


def test_window_returns_recent_suffix(now):
    store = HistoryStore()
    for minutes in (10, 3, 1):
        store.append(make_sample(now - timedelta(minutes=minutes)))
    recent = store.window(timedelta(minutes=5), now=now)
    assert [s.timestamp for s in recent] == [now - timedelta(minutes=3), now - timedelta(minutes=1)]
    assert len(store.window(300, now=now)) == 2
    assert store.window(30, now=now) == []


def test_clear(samples):
    store = HistoryStore()
    for s in samples:
        store.append(s)
    store.clear()
    assert store.snapshot() == []
    with pytest.raises(NoDataError):
        store.latest()


def test_stats(now):
    store = HistoryStore(50)
    assert store.stats() == {"history_size": 0, "max_history": 50}

    store.append(make_sample(now, temp=40.0, power=100.0, gpu=10.0, vram=2.0, devices=2))
    store.append(make_sample(now + timedelta(seconds=5), temp=60.0, power=200.0, gpu=30.0, vram=4.0))
    stats = store.stats()
    assert stats["history_size"] == 2
    assert stats["oldest_timestamp"] == now
    assert stats["newest_timestamp"] == now + timedelta(seconds=5)
    # three device-samples: 40, 40, 60
    assert stats["avg_temperature"] == pytest.approx(140.0 / 3)
    assert stats["avg_power"] == pytest.approx(400.0 / 3)
    assert stats["avg_gpu_usage"] == pytest.approx(50.0 / 3)
    assert stats["avg_vram_usage"] == pytest.approx(8.0 / 3)


def test_concurrent_readers_and_writer(now):
    store = HistoryStore(100)
    errors = []

    def write():
        for i in range(500):
            store.append(make_sample(now + timedelta(milliseconds=i)))

    def read():
        try:
            for _ in range(200):
                snap = store.snapshot()
                assert len(snap) <= 100
                assert all(a.timestamp <= b.timestamp for a, b in zip(snap, snap[1:]))
                store.stats()
        except AssertionError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=write)] + [threading.Thread(target=read) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert not errors
    assert len(store) == 100


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    barrier = threading.Barrier(2, timeout=5)
    passed = []

    def reader():
        with lock.read():
            barrier.wait()  # only possible if both readers hold the lock at once
            passed.append(True)

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert passed == [True, True]


def test_writer_excludes_readers():
    lock = ReadWriteLock()
    events = []
    inside = threading.Event()
    release = threading.Event()

    def writer():
        with lock.write():
            inside.set()
            release.wait(5)
            events.append("write done")

    def reader():
        with lock.read():
            events.append("read")

    w = threading.Thread(target=writer)
    w.start()
    inside.wait(5)
    r = threading.Thread(target=reader)
    r.start()
    r.join(0.2)
    assert events == []
    release.set()
    w.join()
    r.join()
    assert events == ["write done", "read"]
