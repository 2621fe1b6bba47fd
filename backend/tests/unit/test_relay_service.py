"""
Unit tests for RelayService: operations, lifecycle and concurrency.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from vaultrelay.core.errors import Conflict, InvalidInput, NotFound, PermissionDenied
from vaultrelay.services.relay_service import RelayService


def assert_referential_integrity(relay, recipients):
    for recipient in recipients:
        for message_id in relay.inboxes.pending_ids(recipient):
            assert relay.store.get(message_id) is not None


class TestSend:
    def test_send_returns_id_and_enqueues(self, relay):
        message_id = relay.send("alice", "bob", "hi")

        stored = relay.store.get(message_id)
        assert stored.sender == "alice"
        assert stored.recipient == "bob"
        assert stored.content == "hi"
        assert stored.verified is False
        assert relay.inboxes.pending_ids("bob") == [message_id]

    @pytest.mark.parametrize(
        "sender,recipient,content",
        [("", "bob", "hi"), ("alice", "", "hi"), ("alice", "bob", ""), (None, "bob", "hi")],
    )
    def test_send_rejects_empty_fields(self, relay, sender, recipient, content):
        with pytest.raises(InvalidInput):
            relay.send(sender, recipient, content)
        assert relay.store.count() == 0

    def test_send_accepts_self_addressed(self, relay):
        message_id = relay.send("alice", "alice", "note to self")
        assert [m.id for m in relay.fetch("alice")] == [message_id]

    def test_send_rejects_oversized_content(self):
        relay = RelayService(max_content_bytes=8)
        with pytest.raises(InvalidInput):
            relay.send("alice", "bob", "x" * 9)
        assert relay.store.count() == 0

    def test_conversational_length_content(self, relay):
        content = "lorem ipsum " * 500
        message_id = relay.send("alice", "bob", content)
        assert relay.get_message(message_id).content == content

    def test_resend_with_same_id_is_noop(self, relay):
        first = relay.send("alice", "bob", "hi", message_id="client-1")
        second = relay.send("alice", "bob", "hi", message_id="client-1")

        assert first == second == "client-1"
        assert relay.store.count() == 1
        assert len(relay.fetch("bob")) == 1

    def test_resend_with_same_id_different_message_conflicts(self, relay):
        relay.send("alice", "bob", "hi", message_id="client-1")
        with pytest.raises(Conflict):
            relay.send("alice", "carol", "hi", message_id="client-1")
        assert relay.fetch("carol") == []

    @pytest.mark.parametrize("message_id", ["a/b", "abc\n", "\nabc", "a b", "x" * 129])
    def test_rejects_non_url_safe_client_id(self, relay, message_id):
        with pytest.raises(InvalidInput):
            relay.send("alice", "bob", "hi", message_id=message_id)
        assert relay.store.count() == 0

    def test_removed_id_can_be_reused_as_fresh_message(self, relay):
        relay.send("alice", "bob", "old", message_id="reuse")
        relay.remove("bob", "reuse")

        relay.send("carol", "dave", "new", message_id="reuse")

        assert relay.fetch("bob") == []
        fresh = relay.fetch("dave")[0]
        assert fresh.content == "new"
        assert fresh.verified is False


class TestDeliveryLifecycle:
    def test_full_scenario(self, relay):
        m1 = relay.send("alice", "bob", "hi")

        inbox = relay.fetch("bob")
        assert [(m.id, m.content, m.verified) for m in inbox] == [(m1, "hi", False)]

        relay.acknowledge(m1)
        inbox = relay.fetch("bob")
        assert [(m.id, m.verified) for m in inbox] == [(m1, True)]

        relay.remove("bob", m1)
        assert relay.fetch("bob") == []

        with pytest.raises(NotFound):
            relay.remove("bob", m1)

    def test_fetch_is_repeatable(self, relay):
        relay.send("alice", "bob", "one")
        relay.send("alice", "bob", "two")

        assert relay.fetch("bob") == relay.fetch("bob")
        assert [m.content for m in relay.fetch("bob")] == ["one", "two"]

    def test_fetch_requires_user(self, relay):
        with pytest.raises(InvalidInput):
            relay.fetch("")

    def test_no_cross_delivery(self, relay):
        relay.send("alice", "bob", "for bob")
        relay.send("bob", "alice", "for alice")

        assert [m.content for m in relay.fetch("bob")] == ["for bob"]
        assert [m.content for m in relay.fetch("alice")] == ["for alice"]
        assert relay.fetch("carol") == []

    def test_acknowledge_is_idempotent(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        relay.acknowledge(m1)
        relay.acknowledge(m1)
        assert relay.get_message(m1).verified is True
        assert relay.inboxes.contains("bob", m1)

    def test_acknowledge_unknown_raises_not_found(self, relay):
        with pytest.raises(NotFound):
            relay.acknowledge("ghost")

    def test_acknowledge_after_remove_raises_not_found(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        relay.remove("bob", m1)
        with pytest.raises(NotFound):
            relay.acknowledge(m1)
        assert relay.store.count() == 0

    @pytest.mark.parametrize("acknowledge_first", [True, False])
    def test_remove_with_or_without_acknowledge(self, relay, acknowledge_first):
        m1 = relay.send("alice", "bob", "hi")
        if acknowledge_first:
            relay.acknowledge(m1)

        relay.remove("bob", m1)

        assert relay.store.get(m1) is None
        assert relay.inboxes.pending_ids("bob") == []
        assert relay.health() == {"messageCount": 0, "inboxCount": 0, "pendingCount": 0}

    def test_remove_unknown_has_no_side_effects(self, relay):
        relay.send("alice", "bob", "hi")
        before = relay.health()

        with pytest.raises(NotFound):
            relay.remove("carol", "unknown_id")

        assert relay.health() == before
        assert set(relay.inboxes._slots) == {"bob"}

    def test_reads_of_unknown_recipients_allocate_nothing(self, relay):
        for i in range(100):
            assert relay.fetch(f"nobody{i}") == []
            with pytest.raises(NotFound):
                relay.remove(f"carol{i}", "unknown_id")
            assert relay.clear_inbox(f"dave{i}") == 0

        assert relay.inboxes._slots == {}

    def test_emptied_inbox_is_reclaimed(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        assert "bob" in relay.inboxes._slots

        relay.remove("bob", m1)

        assert relay.inboxes._slots == {}
        assert relay.fetch("bob") == []

    def test_remove_from_wrong_inbox_is_not_found(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        with pytest.raises(NotFound):
            relay.remove("alice", m1)
        assert relay.store.get(m1) is not None

    def test_crash_between_acknowledge_and_remove(self, relay):
        """A restarted client sees the message again, already verified."""
        m1 = relay.send("alice", "bob", "pay invoice")
        relay.acknowledge(m1)

        # client dies here; after restart it fetches again
        redelivered = relay.fetch("bob")
        assert [(m.id, m.verified) for m in redelivered] == [(m1, True)]

        relay.remove("bob", m1)
        assert relay.fetch("bob") == []


class TestExtensions:
    def test_get_message(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        assert relay.get_message(m1).content == "hi"
        with pytest.raises(NotFound):
            relay.get_message("ghost")

    def test_messages_for_includes_sent_and_received(self, relay):
        relay.send("alice", "bob", "1")
        relay.send("bob", "carol", "2")
        relay.send("carol", "dave", "3")

        assert sorted(m.content for m in relay.messages_for("bob")) == ["1", "2"]

    def test_delete_message_by_sender_or_recipient(self, relay):
        m1 = relay.send("alice", "bob", "1")
        m2 = relay.send("alice", "bob", "2")

        relay.delete_message(m1, requester="alice")
        relay.delete_message(m2, requester="bob")

        assert relay.fetch("bob") == []
        assert relay.store.count() == 0

    def test_delete_message_permission_denied(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        with pytest.raises(PermissionDenied):
            relay.delete_message(m1, requester="mallory")
        assert relay.inboxes.contains("bob", m1)

    @staticmethod
    def _resend_before_lock(relay, monkeypatch):
        """Remove "x" from bob and re-send it to carol right before bob's lock is taken."""
        original_locked = relay.inboxes.locked
        fired = []

        def locked(recipient):
            if recipient == "bob" and not fired:
                fired.append(True)
                relay.remove("bob", "x")
                relay.send("dave", "carol", "new", message_id="x")
            return original_locked(recipient)

        monkeypatch.setattr(relay.inboxes, "locked", locked)
        return fired

    def test_delete_message_rechecks_permission_after_resend(self, relay, monkeypatch):
        relay.send("alice", "bob", "old", message_id="x")
        fired = self._resend_before_lock(relay, monkeypatch)

        with pytest.raises(PermissionDenied):
            relay.delete_message("x", requester="alice")

        assert fired
        assert relay.inboxes.pending_ids("carol") == ["x"]
        assert relay.get_message("x").content == "new"
        assert_referential_integrity(relay, ["bob", "carol"])

    def test_delete_message_follows_resent_record(self, relay, monkeypatch):
        relay.send("alice", "bob", "old", message_id="x")
        fired = self._resend_before_lock(relay, monkeypatch)

        deleted = relay.delete_message("x", requester="dave")

        assert fired
        assert deleted.recipient == "carol"
        assert relay.inboxes.pending_ids("carol") == []
        assert relay.store.get("x") is None
        assert_referential_integrity(relay, ["bob", "carol"])

    def test_delete_message_twice(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        relay.delete_message(m1)
        with pytest.raises(NotFound):
            relay.delete_message(m1)

    def test_clear_inbox_keeps_records(self, relay):
        m1 = relay.send("alice", "bob", "1")
        relay.send("alice", "bob", "2")

        assert relay.clear_inbox("bob") == 2
        assert relay.fetch("bob") == []
        assert relay.store.count() == 2

        # Record is no longer pending, so Remove reports NotFound ...
        with pytest.raises(NotFound):
            relay.remove("bob", m1)
        # ... while the delete flow still cleans it up
        relay.delete_message(m1, requester="bob")
        assert relay.store.count() == 1

    def test_clear_inbox_with_purge(self, relay):
        relay.send("alice", "bob", "1")
        relay.send("alice", "carol", "2")

        assert relay.clear_inbox("bob", purge=True) == 1
        assert relay.store.count() == 1
        assert len(relay.fetch("carol")) == 1

    def test_health(self, relay):
        relay.send("alice", "bob", "1")
        relay.send("alice", "bob", "2")
        relay.send("bob", "carol", "3")

        assert relay.health() == {"messageCount": 3, "inboxCount": 2, "pendingCount": 3}


class TestSubscriptions:
    def test_subscribe_notified_on_send(self, relay):
        with relay.subscribe("bob") as sub:
            m1 = relay.send("alice", "bob", "hi")
            assert sub.get(timeout=1) == m1

    def test_wait_for_messages_returns_immediately_when_pending(self, relay):
        relay.send("alice", "bob", "hi")
        start = time.monotonic()
        assert len(relay.wait_for_messages("bob", timeout=5)) == 1
        assert time.monotonic() - start < 1

    def test_wait_for_messages_wakes_on_send(self, relay):
        timer = threading.Timer(0.1, relay.send, args=("alice", "bob", "late"))
        timer.start()
        try:
            messages = relay.wait_for_messages("bob", timeout=5)
        finally:
            timer.join()

        assert [m.content for m in messages] == ["late"]

    def test_wait_for_messages_times_out_empty(self, relay):
        assert relay.wait_for_messages("bob", timeout=0.05) == []
        assert relay.inboxes._subscribers == {}


class TestConcurrency:
    def test_concurrent_sends_produce_distinct_ids(self, relay):
        def send(i):
            return relay.send(f"user{i % 7}", f"inbox{i % 5}", f"msg {i}")

        with ThreadPoolExecutor(max_workers=16) as pool:
            ids = list(pool.map(send, range(1000)))

        assert len(set(ids)) == 1000
        assert relay.store.count() == 1000
        assert sum(len(relay.fetch(f"inbox{i}")) for i in range(5)) == 1000

    def test_concurrent_sends_to_same_recipient_not_lost(self, relay):
        barrier = threading.Barrier(2)

        def send(sender, content):
            barrier.wait()
            return relay.send(sender, "x", content)

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(send, "a", "1"), pool.submit(send, "b", "2")]
            ids = {f.result() for f in futures}

        inbox = relay.fetch("x")
        assert {m.id for m in inbox} == ids
        assert sorted(m.content for m in inbox) == ["1", "2"]

    def test_concurrent_removes_succeed_exactly_once(self, relay):
        m1 = relay.send("alice", "bob", "hi")
        barrier = threading.Barrier(8)

        def remove(_):
            barrier.wait()
            try:
                relay.remove("bob", m1)
                return True
            except NotFound:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(remove, range(8)))

        assert results.count(True) == 1
        assert relay.store.count() == 0

    def test_integrity_under_mixed_load(self, relay):
        recipients = [f"r{i}" for i in range(4)]
        stop = threading.Event()
        violations = []

        def writer(n):
            for i in range(200):
                recipient = recipients[(n + i) % len(recipients)]
                message_id = relay.send(f"w{n}", recipient, str(i))
                if i % 2:
                    relay.acknowledge(message_id)
                if i % 3:
                    relay.remove(recipient, message_id)

        def reader():
            while not stop.is_set():
                for recipient in recipients:
                    for msg in relay.fetch(recipient):
                        if msg.recipient != recipient:
                            violations.append(msg.id)

        readers = [threading.Thread(target=reader) for _ in range(2)]
        for t in readers:
            t.start()
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(writer, range(4)))
        stop.set()
        for t in readers:
            t.join()

        assert violations == []
        assert_referential_integrity(relay, recipients)
        pending = sum(len(relay.fetch(r)) for r in recipients)
        assert pending == relay.store.count()
