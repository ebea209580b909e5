"""
Send/reply orchestration: the only write path into the message log.

A send appends the human message; when the peer is the responder it then asks
the responder once, with only the text just sent, and appends the reply
attributed to the responder. The reply append always follows the prompt
append, and never happens when the prompt append failed.

Sends are fire-and-forget: unmet preconditions and append failures are logged
and reported in the returned outcome, never raised. Nothing is appended
locally; the conversation view picks messages up from the log's own echo.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from chatsync.errors import AppendFailure, SendRejected
from chatsync.metrics import record_send_outcome
from chatsync.responder import Responder
from chatsync.schemas import ChatMessage, MessageDraft, SendOutcome
from chatsync.session import Session
from chatsync.storage import MessageLog
from chatsync.subscription import LogSubscriptionManager

logger = logging.getLogger(__name__)


class SendOrchestrator:
    def __init__(
        self,
        log: MessageLog,
        session: Session,
        subscriptions: LogSubscriptionManager,
        responder: Responder,
        responder_id: str,
        responder_name: Optional[str] = None,
    ):
        self._log = log
        self._session = session
        self._subscriptions = subscriptions
        self._responder = responder
        self.responder_id = responder_id
        self.responder_name = responder_name or responder_id
        # Per-conversation locks: rapid sends to the responder get their replies
        # in the same order as their prompts. An entry lives only while a send
        # holds or waits on it.
        self._locks: dict[frozenset, asyncio.Lock] = {}
        self._lock_users: dict[frozenset, int] = {}

    def _check_preconditions(self, text: str, local_identity: str, peer_identity: str) -> None:
        if not text or not text.strip():
            raise SendRejected("text is empty")
        if not self._session.is_ready:
            raise SendRejected(f"session is {self._session.state.value}")
        if self._session.identity.subject_id != local_identity:
            raise SendRejected("sender is not the signed-in identity")
        if not self._subscriptions.attached:
            raise SendRejected("message log is not attached")
        if not peer_identity:
            raise SendRejected("no peer selected")

    @property
    def active_conversations(self) -> int:
        """Number of conversations with a send in flight."""
        return len(self._locks)

    @asynccontextmanager
    async def _conversation_lock(self, local_identity: str, peer_identity: str) -> AsyncIterator[None]:
        key = frozenset((local_identity, peer_identity))
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def send(self, text: str, local_identity: str, peer_identity: str) -> SendOutcome:
        try:
            self._check_preconditions(text, local_identity, peer_identity)
        except SendRejected as e:
            logger.info(f"Send dropped: {e}")
            record_send_outcome("dropped")
            return SendOutcome(status="dropped")

        async with self._conversation_lock(local_identity, peer_identity):
            try:
                message = await self._log.append(MessageDraft(
                    text=text,
                    sender_id=local_identity,
                    sender_name=local_identity,
                    receiver_id=peer_identity,
                ))
            except AppendFailure as e:
                logger.error(f"Error sending message: {e}")
                record_send_outcome("failed")
                return SendOutcome(status="failed")

            reply: Optional[ChatMessage] = None
            if peer_identity == self.responder_id:
                reply = await self._reply(text, local_identity)
                if reply is None:
                    record_send_outcome("failed")
                    return SendOutcome(status="failed", message=message)

        record_send_outcome("sent")
        return SendOutcome(status="sent", message=message, reply=reply)

    async def _reply(self, prompt: str, local_identity: str) -> Optional[ChatMessage]:
        response_text = await self._responder.reply(prompt)
        try:
            return await self._log.append(MessageDraft(
                text=response_text,
                sender_id=self.responder_id,
                sender_name=self.responder_name,
                receiver_id=local_identity,
            ))
        except AppendFailure as e:
            logger.error(f"Error appending responder reply: {e}")
            return None
