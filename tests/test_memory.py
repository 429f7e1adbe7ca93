from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from relaybot.memory.chat_history import ChatHistoryBuffer
from relaybot.memory.engine import MemoryEngine
from relaybot.memory.event_log import EventLogStore
from relaybot.memory.expiring_store import ExpiringStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


class MemoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = MemoryEngine(Path(self._tmp.name) / "nested" / "relay.db")
        self.engine.initialize()
        self.clock = FakeClock()
        self.conn = self.engine.connect()
        self.store = ExpiringStore(self.conn, clock=self.clock)

    def tearDown(self) -> None:
        self.engine.close()
        self._tmp.cleanup()


class ExpiringStoreTests(MemoryTestCase):
    def test_value_expires_after_ttl(self) -> None:
        self.store.set("k", "v", 60)
        self.assertEqual(self.store.get("k"), "v")
        self.clock.now += 59
        self.assertEqual(self.store.get("k"), "v")
        self.clock.now += 1
        self.assertIsNone(self.store.get("k"))

    def test_overwrite_resets_ttl(self) -> None:
        self.store.set("k", "a", 10)
        self.clock.now += 8
        self.store.set("k", "b", 10)
        self.clock.now += 8
        self.assertEqual(self.store.get("k"), "b")

    def test_without_ttl_never_expires(self) -> None:
        self.store.set("k", "v")
        self.clock.now += 10_000_000
        self.assertEqual(self.store.get("k"), "v")

    def test_purge_removes_only_expired(self) -> None:
        self.store.set("old", "x", 1)
        self.store.set("fresh", "y", 100)
        self.clock.now += 5
        self.assertEqual(self.store.purge_expired(), 1)
        self.assertEqual(self.store.get("fresh"), "y")

    def test_missing_key(self) -> None:
        self.assertIsNone(self.store.get("nothing"))


class ChatHistoryBufferTests(MemoryTestCase):
    def test_never_exceeds_capacity(self) -> None:
        history = ChatHistoryBuffer(self.store, capacity=8, ttl_seconds=300)
        history.update(1, "q0", restart=True)
        for i in range(1, 10):
            result = history.update(1, f"q{i}", restart=False)
            self.assertLessEqual(len(result), 8)
        self.assertEqual(result, [f"q{i}" for i in range(2, 10)])
        self.assertEqual(history.load(1), result)

    def test_nine_continuation_turns_keep_last_eight(self) -> None:
        history = ChatHistoryBuffer(self.store)
        for i in range(9):
            result = history.update(3, f"turn {i}", restart=False)
        self.assertEqual(result, [f"turn {i}" for i in range(1, 9)])

    def test_restart_discards_previous_turns(self) -> None:
        history = ChatHistoryBuffer(self.store)
        history.update(1, "a", restart=True)
        history.update(1, "b", restart=False)
        self.assertEqual(history.update(1, "c", restart=True), ["c"])

    def test_buffer_expires(self) -> None:
        history = ChatHistoryBuffer(self.store, ttl_seconds=300)
        history.update(1, "a", restart=True)
        self.clock.now += 301
        self.assertEqual(history.load(1), [])
        self.assertEqual(history.update(1, "b", restart=False), ["b"])

    def test_chats_do_not_share_history(self) -> None:
        history = ChatHistoryBuffer(self.store)
        history.update(1, "mine", restart=True)
        self.assertEqual(history.load(2), [])

    def test_capacity_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            ChatHistoryBuffer(self.store, capacity=0)


class EventLogStoreTests(MemoryTestCase):
    def test_latest_newest_first_with_filter(self) -> None:
        events = EventLogStore(self.conn)
        events.record("command_handled", {"command": "qa"})
        events.record("llm_error", {"error": "boom"}, outcome="error")
        events.record("command_handled", {"command": "code"})

        latest = events.latest(limit=2)
        self.assertEqual([e["event_type"] for e in latest], ["command_handled", "llm_error"])
        self.assertEqual(latest[0]["payload"], {"command": "code"})

        errors = events.latest(event_type="llm_error")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0]["outcome"], "error")


if __name__ == "__main__":
    unittest.main()
