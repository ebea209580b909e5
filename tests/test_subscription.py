"""
Tests for the log subscription manager.

Tests cover:
- Attach/detach lifecycle and refusal of double attach
- Whole-snapshot replacement in delivery order
- Delivery errors keep the last good snapshot
- Notifications after detach are ignored
- Detach on identity loss
"""

import asyncio

import pytest

from chatsync.errors import SubscriptionError
from chatsync.schemas import MessageDraft
from chatsync.session import Identity, Session, TokenIdentityProvider
from chatsync.storage import Subscription
from chatsync.subscription import AttachmentState, LogSubscriptionManager

from conftest import make_message

ALICE = Identity(subject_id="alice")


class FakeLog:
    """Message log stand-in that lets tests push notifications by hand."""

    def __init__(self):
        self.subscriptions = []
        self.unsubscribed = []

    async def subscribe(self, on_change, on_error):
        subscription = Subscription(on_change, on_error)
        self.subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription):
        subscription.active = False
        self.unsubscribed.append(subscription)


@pytest.fixture
def fake_log():
    return FakeLog()


@pytest.fixture
def manager(fake_log):
    return LogSubscriptionManager(fake_log)


class TestLifecycle:
    """Test attach/detach transitions."""

    @pytest.mark.asyncio
    async def test_attach(self, manager, fake_log):
        assert manager.state is AttachmentState.DETACHED

        assert await manager.attach(ALICE) is True

        assert manager.state is AttachmentState.ATTACHED
        assert manager.attached
        assert len(fake_log.subscriptions) == 1
        manager.detach()

    @pytest.mark.asyncio
    async def test_attach_while_attached_refused(self, manager, fake_log):
        await manager.attach(ALICE)

        assert await manager.attach(ALICE) is False

        assert len(fake_log.subscriptions) == 1
        manager.detach()

    @pytest.mark.asyncio
    async def test_detach_is_idempotent(self, manager, fake_log):
        await manager.attach(ALICE)

        manager.detach()
        manager.detach()

        assert manager.state is AttachmentState.DETACHED
        assert len(fake_log.unsubscribed) == 1

    def test_detach_without_attach(self, manager, fake_log):
        manager.detach()

        assert manager.state is AttachmentState.DETACHED
        assert fake_log.unsubscribed == []

    @pytest.mark.asyncio
    async def test_reattach_after_detach(self, manager, fake_log):
        await manager.attach(ALICE)
        manager.detach()

        assert await manager.attach(ALICE) is True

        assert len(fake_log.subscriptions) == 2
        manager.detach()


class TestDelivery:
    """Test snapshot replacement."""

    @pytest.mark.asyncio
    async def test_snapshots_replace_in_order(self, manager, fake_log):
        await manager.attach(ALICE)
        subscription = fake_log.subscriptions[0]
        first = (make_message(1, "alice", "bob"),)
        second = first + (make_message(2, "bob", "alice"),)
        third = second + (make_message(3, "alice", "bob"),)

        for snapshot in (first, second, third):
            subscription.on_change(snapshot)
        await manager.drain()

        assert manager.snapshot is third
        manager.detach()

    @pytest.mark.asyncio
    async def test_snapshot_is_replaced_not_merged(self, manager, fake_log):
        await manager.attach(ALICE)
        subscription = fake_log.subscriptions[0]

        subscription.on_change((make_message(1, "alice", "bob"), make_message(2, "alice", "bob")))
        subscription.on_change((make_message(3, "alice", "bob"),))
        await manager.drain()

        assert [m.created_at for m in manager.snapshot] == [3]
        manager.detach()

    @pytest.mark.asyncio
    async def test_error_keeps_last_snapshot(self, fake_log):
        errors = []
        manager = LogSubscriptionManager(fake_log, error_sink=errors.append)
        await manager.attach(ALICE)
        subscription = fake_log.subscriptions[0]
        good = (make_message(1, "alice", "bob"),)

        subscription.on_change(good)
        subscription.on_error(RuntimeError("stream broke"))
        await manager.drain()

        assert manager.snapshot is good
        assert manager.attached
        assert len(errors) == 1
        assert isinstance(errors[0], SubscriptionError)
        manager.detach()

    @pytest.mark.asyncio
    async def test_late_notification_after_detach_ignored(self, manager, fake_log):
        await manager.attach(ALICE)
        subscription = fake_log.subscriptions[0]
        good = (make_message(1, "alice", "bob"),)
        subscription.on_change(good)
        await manager.drain()

        manager.detach()
        subscription.on_change(good + (make_message(2, "bob", "alice"),))
        subscription.on_error(RuntimeError("late"))
        await asyncio.sleep(0)

        assert manager.snapshot is good

    @pytest.mark.asyncio
    async def test_queued_notification_dropped_by_detach(self, manager, fake_log):
        await manager.attach(ALICE)
        subscription = fake_log.subscriptions[0]

        subscription.on_change((make_message(1, "alice", "bob"),))
        manager.detach()
        await asyncio.sleep(0)

        assert manager.snapshot == ()

    @pytest.mark.asyncio
    async def test_drain_returns_when_detach_discards_queue(self, manager, fake_log):
        await manager.attach(ALICE)
        subscription = fake_log.subscriptions[0]
        # Let the dispatcher block on the empty queue.
        await asyncio.sleep(0)

        async def detach_now():
            manager.detach()

        # Run order: drain() blocks on the queued echo, detach runs, then the dispatcher would wake.
        waiter = asyncio.create_task(manager.drain())
        detacher = asyncio.create_task(detach_now())
        subscription.on_change((make_message(1, "alice", "bob"),))

        await asyncio.wait_for(waiter, timeout=1)
        await detacher

        assert manager.state is AttachmentState.DETACHED
        assert manager.snapshot == ()

    @pytest.mark.asyncio
    async def test_drain_without_attachment(self, manager):
        await manager.drain()
        assert manager.snapshot == ()


class TestWithMessageLog:
    """Test against the real message log."""

    @pytest.mark.asyncio
    async def test_append_round_trips_into_snapshot(self, message_log):
        manager = LogSubscriptionManager(message_log)
        await manager.attach(ALICE)

        await message_log.append(MessageDraft(text="hi", sender_id="alice", receiver_id="bob"))
        await manager.drain()

        assert [m.text for m in manager.snapshot] == ["hi"]
        manager.detach()

    @pytest.mark.asyncio
    async def test_append_after_detach_does_not_touch_snapshot(self, message_log):
        manager = LogSubscriptionManager(message_log)
        await manager.attach(ALICE)
        await message_log.append(MessageDraft(text="before", sender_id="alice", receiver_id="bob"))
        await manager.drain()
        before = manager.snapshot

        manager.detach()
        await message_log.append(MessageDraft(text="after", sender_id="alice", receiver_id="bob"))
        await asyncio.sleep(0)

        assert manager.snapshot is before
        assert message_log.subscriber_count == 0


class TestIdentityLoss:
    """Test detaching when the session loses its identity."""

    @pytest.mark.asyncio
    async def test_sign_out_detaches(self, manager, fake_log):
        session = Session(TokenIdentityProvider())
        session.add_listener(manager.on_session_change)
        identity = await session.bootstrap()
        await manager.attach(identity)

        await session.sign_out()

        assert manager.state is AttachmentState.DETACHED
        assert len(fake_log.unsubscribed) == 1
