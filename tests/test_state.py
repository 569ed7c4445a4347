"""Tests for the thread cache, watermarks, atomic files and locks."""

import json
import threading
import time

import pytest

from yammer2slack.error_handling import PersistenceError
from yammer2slack.models import Network, Thread
from yammer2slack.state import (
    FileLock,
    KeyedLock,
    LockError,
    ThreadCache,
    WatermarkTracker,
    read_json,
    write_json_atomic,
)


class TestStorage:
    def test_write_then_read(self, tmp_path):
        path = tmp_path / "sub" / "state.json"
        write_json_atomic(path, {"a": 1})

        assert read_json(path) == {"a": 1}
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_missing_file_returns_default(self, tmp_path):
        assert read_json(tmp_path / "nope.json", default={}) == {}

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{oops")

        with pytest.raises(PersistenceError):
            read_json(path)

    def test_unserializable_data_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "state.json"

        with pytest.raises(PersistenceError):
            write_json_atomic(path, {"a": object()})

        assert list(tmp_path.iterdir()) == []


class TestThreadCache:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = ThreadCache.load(path)
        cache.replace_networks([Network(id=1, name="Contoso"), Network(id=2, name="Fabrikam")])
        cache.put_thread(42, Thread(channel_id="C1", channel_name="contoso-dm", ts="1.000001"))
        cache.put_thread(7, Thread(channel_id="C2", channel_name="fabrikam-ops", ts="2.5"))

        reloaded = ThreadCache.load(path)

        assert reloaded.networks == cache.networks
        assert reloaded.thread_map == cache.thread_map
        assert reloaded.get_thread(42) == Thread("C1", "contoso-dm", "1.000001")

    def test_file_layout(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = ThreadCache.load(path)
        cache.replace_networks([Network(id=1, name="Contoso")])
        cache.put_thread(42, Thread(channel_id="C1", channel_name="contoso-dm", ts="1.2"))

        assert json.loads(path.read_text()) == {
            "Networks": [{"ID": 1, "Name": "Contoso"}],
            "ThreadMap": {"42": {"ChannelID": "C1", "ChannelName": "contoso-dm", "TS": "1.2"}},
        }

    def test_missing_file_is_empty(self, tmp_path):
        cache = ThreadCache.load(tmp_path / "cache.json")

        assert cache.networks == []
        assert cache.get_thread(42) is None
        assert cache.find_network(1) is None

    @pytest.mark.parametrize(
        "content",
        ['{"ThreadMap": {"abc": {}}}', '{"Networks": [{"Name": "x"}]}', "[]"],
    )
    def test_malformed_file(self, tmp_path, content):
        path = tmp_path / "cache.json"
        path.write_text(content)

        with pytest.raises(PersistenceError):
            ThreadCache.load(path)

    def test_unwritable_cache_is_fatal(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        cache = ThreadCache(blocker / "cache.json")

        with pytest.raises(PersistenceError) as exc_info:
            cache.put_thread(1, Thread("C1", "x"))

        assert exc_info.value.recoverable is False


class TestWatermarkTracker:
    def test_defaults_to_zero(self, tmp_path):
        assert WatermarkTracker(tmp_path / "w.json").get("received") == 0

    def test_advance_never_moves_back(self, tmp_path):
        tracker = WatermarkTracker(tmp_path / "w.json")

        assert tracker.advance("received", 10)
        assert not tracker.advance("received", 5)
        assert not tracker.advance("received", 10)
        assert tracker.get("received") == 10

    def test_persists_per_feed(self, tmp_path):
        path = tmp_path / "w.json"
        tracker = WatermarkTracker(path)
        tracker.advance("received", 10)
        tracker.advance("private", 3)
        tracker.save()

        reloaded = WatermarkTracker(path)

        assert reloaded.to_dict() == {"received": 10, "private": 3}
        assert json.loads(path.read_text()) == {"received": 10, "private": 3}

    def test_unsaved_advance_is_not_persisted(self, tmp_path):
        path = tmp_path / "w.json"
        WatermarkTracker(path).advance("received", 10)

        assert WatermarkTracker(path).get("received") == 0

    @pytest.mark.parametrize("content", ["[1]", '{"received": "abc"}'])
    def test_malformed_file(self, tmp_path, content):
        path = tmp_path / "w.json"
        path.write_text(content)

        with pytest.raises(PersistenceError):
            WatermarkTracker(path)


class TestFileLock:
    def test_exclusive(self, tmp_path):
        path = tmp_path / "relay.lock"
        with FileLock(path) as first:
            assert first.locked
            with pytest.raises(LockError):
                FileLock(path, timeout=0.2).acquire()

        # Released on exit
        second = FileLock(path, timeout=0.2)
        assert second.acquire()
        second.release()
        assert not second.locked


class TestKeyedLock:
    def test_same_key_serialized(self):
        locks = KeyedLock()
        active = []
        overlaps = []

        def work():
            with locks.hold("thread-42"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(len(active))
                time.sleep(0.02)
                active.pop()

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert len(locks) == 0

    def test_different_keys_run_in_parallel(self):
        locks = KeyedLock()
        entered = threading.Barrier(2, timeout=2)

        def work(key):
            with locks.hold(key):
                entered.wait()

        threads = [threading.Thread(target=work, args=(k,)) for k in (1, 2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # The barrier would have broken if the second key waited on the first
        assert not entered.broken
