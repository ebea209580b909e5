"""
Live subscription to the message log.

Every push from the log (a full ordered snapshot, or a delivery error) is put
on a single-consumer queue and applied by one dispatcher task, so pushes are
applied in exactly the order the log produced them. Each applied snapshot
replaces the previous one as a whole value; nothing is diffed or merged.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Union

from chatsync.errors import SubscriptionError
from chatsync.metrics import record_subscription_error
from chatsync.session import Identity, Session
from chatsync.storage import MessageLog, Snapshot, Subscription

logger = logging.getLogger(__name__)

ErrorSink = Callable[[Exception], None]
Event = Union[Snapshot, Exception]


class AttachmentState(str, Enum):
    DETACHED = "detached"
    ATTACHING = "attaching"
    ATTACHED = "attached"


def log_subscription_error(error: Exception) -> None:
    logger.error(f"Log notification failed, keeping last snapshot: {error}")


class LogSubscriptionManager:
    """
    Owns the one live subscription and the current snapshot.

    detached -> attaching -> attached -> detached. attach() while attaching
    or attached is refused; callers must detach first.
    """

    def __init__(self, log: MessageLog, error_sink: Optional[ErrorSink] = None):
        self._log = log
        self._error_sink = error_sink or log_subscription_error
        self.state = AttachmentState.DETACHED
        self.identity: Optional[Identity] = None
        self.snapshot: Snapshot = ()
        self._subscription: Optional[Subscription] = None
        self._queue: Optional[asyncio.Queue] = None
        self._dispatcher: Optional[asyncio.Task] = None
        # Bumped on every attach/detach; events tagged with an older value are stale.
        self._generation = 0

    @property
    def attached(self) -> bool:
        return self.state is AttachmentState.ATTACHED

    async def attach(self, identity: Identity) -> bool:
        """
        Open the ordered subscription for identity.

        Returns:
            True once attached, False if the call was refused
        """
        if self.state is not AttachmentState.DETACHED:
            logger.warning(f"Attach refused in state {self.state.value}")
            return False

        self.state = AttachmentState.ATTACHING
        self._generation += 1
        generation = self._generation
        self.identity = identity
        self._queue = asyncio.Queue()
        self._dispatcher = asyncio.create_task(
            self._dispatch(self._queue), name=f"log-dispatcher-{generation}"
        )

        subscription = await self._log.subscribe(
            on_change=lambda snapshot: self._enqueue(generation, snapshot),
            on_error=lambda error: self._enqueue(generation, error),
        )

        if generation != self._generation:
            # detach() ran while the subscription was being opened
            self._log.unsubscribe(subscription)
            return False

        self._subscription = subscription
        self.state = AttachmentState.ATTACHED
        logger.info(f"Log attached for {identity.subject_id}")
        return True

    def detach(self) -> None:
        """Cancel the subscription. Idempotent."""
        if self.state is AttachmentState.DETACHED:
            return

        self._generation += 1
        if self._subscription is not None:
            self._log.unsubscribe(self._subscription)
            self._subscription = None
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            self._dispatcher = None

        queue, self._queue = self._queue, None
        if queue is not None:
            # Discarded notifications still count as handled, so drain() waiters return.
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()

        subject = self.identity.subject_id if self.identity else None
        self.identity = None
        self.state = AttachmentState.DETACHED
        logger.info(f"Log detached for {subject}")

    def on_session_change(self, session: Session) -> None:
        """Session listener: losing the identity detaches."""
        if not session.is_ready and self.state is not AttachmentState.DETACHED:
            logger.info(f"Identity lost (session {session.state.value}), detaching")
            self.detach()

    async def drain(self) -> None:
        """Wait until every queued notification has been applied."""
        queue = self._queue
        if queue is not None:
            await queue.join()

    def _enqueue(self, generation: int, event: Event) -> None:
        if generation != self._generation or self._queue is None:
            logger.debug("Ignoring notification for a closed subscription")
            return
        self._queue.put_nowait((generation, event))

    async def _dispatch(self, queue: asyncio.Queue) -> None:
        while True:
            generation, event = await queue.get()
            try:
                if generation != self._generation:
                    continue
                if isinstance(event, Exception):
                    record_subscription_error()
                    if not isinstance(event, SubscriptionError):
                        event = SubscriptionError(str(event))
                    self._error_sink(event)
                else:
                    self.snapshot = event
                    logger.debug(f"Snapshot replaced: {len(event)} messages")
            finally:
                queue.task_done()
