"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any chatsync import so the
cached settings, the engine URL and the log namespace all see them.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_chatsync.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("APP_ID", "test-app")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("RESPONDER_API_URL", "https://responder.test/v1beta")
os.environ.setdefault("RESPONDER_API_KEY", "test-key")
os.environ.setdefault("RESPONDER_TIMEOUT_SECONDS", "2")

import httpx  # noqa: E402
import pytest  # noqa: E402

# Clear settings cache before any app imports to ensure test env vars are used
from chatsync.config import get_settings  # noqa: E402
get_settings.cache_clear()

from chatsync.storage import Base, MessageLog, engine  # noqa: E402
from chatsync.models import Message  # noqa: E402,F401
from chatsync.schemas import ChatMessage  # noqa: E402


def gemini_payload(text: str) -> dict:
    """A well-formed generateContent response carrying text."""
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def gemini_transport(text: str = "Hello from the bot", status_code: int = 200, payload=None) -> httpx.MockTransport:
    """Mock transport answering every request with one canned response."""
    body = payload if payload is not None else gemini_payload(text)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


def make_message(created_at: int, sender_id: str, receiver_id: str, text: str = "hi") -> ChatMessage:
    return ChatMessage(
        id=f"m{created_at}",
        text=text,
        sender_id=sender_id,
        receiver_id=receiver_id,
        created_at=created_at,
    )


@pytest.fixture(scope="function")
def db():
    """Fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield engine
    # Cleanup - drop all tables after test
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def message_log(db) -> MessageLog:
    return MessageLog(get_settings().log_path)
