import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from starlette.concurrency import run_in_threadpool

from chatsync.config import settings
from chatsync.errors import AppendFailure, SubscriptionError
from chatsync.metrics import record_log_append
from chatsync.schemas import ChatMessage, MessageDraft

logger = logging.getLogger(__name__)

# check_same_thread=False lets the TestClient portal thread share the engine
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

Snapshot = tuple[ChatMessage, ...]
ChangeCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from chatsync.models import Message  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            result = db.execute(text(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='messages'"
            )).scalar()
            if result == 0:
                logger.error("Database schema not applied: 'messages' table not found")
                return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Message Log
# =============================================================================

class Subscription:
    """Handle returned by MessageLog.subscribe."""

    def __init__(self, on_change: ChangeCallback, on_error: ErrorCallback):
        self.id = uuid.uuid4().hex
        self.on_change = on_change
        self.on_error = on_error
        self.active = True

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, active={self.active})"


class MessageLog:
    """
    Append-only, server-ordered message log scoped to one namespace path.

    The log owns both the message id and the created_at ordering key. After
    every successful append, each live subscription is pushed the full
    snapshot ordered by created_at ascending.

    Database calls run in the threadpool, the way FastAPI runs sync endpoints;
    subscriber callbacks always run on the event loop.
    """

    def __init__(self, namespace: str, session_factory: Optional[sessionmaker] = None):
        self.namespace = namespace
        self._session_factory = session_factory or SessionLocal
        self._subscriptions: dict[str, Subscription] = {}
        # One snapshot read and push at a time, so pushes reach subscribers in log order.
        self._delivery_lock = asyncio.Lock()

    def load_snapshot(self) -> Snapshot:
        """Read every message in the namespace, ordered by created_at."""
        from chatsync.models import Message

        with self._session_factory() as db:
            rows = (
                db.query(Message)
                .filter(Message.namespace == self.namespace)
                .order_by(Message.created_at.asc())
                .all()
            )
            return tuple(ChatMessage.model_validate(row) for row in rows)

    async def subscribe(self, on_change: ChangeCallback, on_error: ErrorCallback) -> Subscription:
        """
        Open a live subscription.

        The current snapshot is delivered immediately, then again after
        every append.
        """
        subscription = Subscription(on_change, on_error)
        self._subscriptions[subscription.id] = subscription
        logger.info(f"Subscription opened: {subscription.id} on {self.namespace}")
        await self._deliver([subscription])
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Cancel a subscription. Unknown or already-cancelled handles are ignored."""
        subscription.active = False
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.info(f"Subscription closed: {subscription.id}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def append(self, draft: MessageDraft) -> ChatMessage:
        """
        Append a message and notify subscribers.

        Raises:
            AppendFailure: the write did not commit
        """
        message = await run_in_threadpool(self._insert, draft)

        logger.info(f"Message appended: id={message.id}, created_at={message.created_at}")
        record_log_append("responder" if draft.sender_id == settings.RESPONDER_ID else "human")
        await self._deliver(list(self._subscriptions.values()))
        return message

    def _insert(self, draft: MessageDraft) -> ChatMessage:
        from chatsync.models import Message

        message_id = uuid.uuid4().hex
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        logger.debug(f"Appending message {message_id}: from={draft.sender_id}, to={draft.receiver_id}")

        with self._session_factory() as db:
            try:
                row = Message(
                    id=message_id,
                    namespace=self.namespace,
                    text=draft.text,
                    sender_id=draft.sender_id,
                    sender_name=draft.sender_name,
                    receiver_id=draft.receiver_id,
                    timestamp=timestamp,
                )
                db.add(row)
                db.commit()
                db.refresh(row)
                return ChatMessage.model_validate(row)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to append message {message_id}: {e}")
                raise AppendFailure(f"append failed: {e}") from e

    async def _deliver(self, subscriptions: list[Subscription]) -> None:
        if not subscriptions:
            return
        async with self._delivery_lock:
            try:
                snapshot = await run_in_threadpool(self.load_snapshot)
            except SQLAlchemyError as e:
                logger.error(f"Failed to build snapshot for {self.namespace}: {e}")
                error = SubscriptionError(f"snapshot query failed: {e}")
                for subscription in subscriptions:
                    if subscription.active:
                        subscription.on_error(error)
                return

            for subscription in subscriptions:
                if subscription.active:
                    subscription.on_change(snapshot)
