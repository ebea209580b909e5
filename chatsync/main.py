import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, Request, HTTPException, status

from chatsync.config import settings
from chatsync.engine import ChatEngine
from chatsync.storage import init_db, check_db_health
from chatsync.logging_utils import setup_logging, RequestLoggingMiddleware, log_send_data
from chatsync.metrics import get_metrics, get_metrics_content_type
from chatsync.schemas import (
    ConversationResponse,
    ErrorResponse,
    HealthResponse,
    PeersResponse,
    SendOutcome,
    SendRequest,
    SessionResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create tables, sign in, attach the message log
    - Shutdown: detach the log and sign out
    """
    init_db()
    engine = ChatEngine.from_settings(
        settings,
        transport=getattr(app.state, "responder_transport", None),
    )
    app.state.engine = engine
    await engine.start()
    yield
    await engine.stop()


app = FastAPI(
    title="Chat Sync API",
    description="Per-conversation message sync with an automated responder",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


def get_engine(request: Request) -> ChatEngine:
    return request.app.state.engine


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness check - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness check - returns 200 only if:
    1. The session holds an identity
    2. The message log subscription is attached
    3. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    engine = get_engine(request)

    if not engine.session.is_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason=f"Session is {engine.session.state.value}"
        )

    if not engine.subscriptions.attached:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Message log not attached")

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Session & Peers Routes
# =============================================================================

@app.get("/session", response_model=SessionResponse)
async def get_session(request: Request) -> SessionResponse:
    engine = get_engine(request)
    return SessionResponse(
        state=engine.session.state.value,
        identity=engine.local_identity,
        attached=engine.subscriptions.attached,
    )


@app.get("/peers", response_model=PeersResponse)
async def list_peers(request: Request) -> PeersResponse:
    """Selectable peers; the automated responder is selected by default."""
    engine = get_engine(request)
    return PeersResponse(data=engine.peers, default_peer_id=engine.responder_id)


# =============================================================================
# Conversation Routes
# =============================================================================

@app.get(
    "/conversations/{peer_id}/messages",
    response_model=ConversationResponse,
    responses={503: {"model": ErrorResponse, "description": "No signed-in identity"}},
)
async def get_conversation(peer_id: str, request: Request) -> ConversationResponse:
    """
    Messages exchanged between the local identity and peer_id.

    Ordering:
        - Exactly the message log's order (created_at ascending)
    """
    engine = get_engine(request)
    messages = engine.conversation(peer_id)
    if messages is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="no signed-in identity"
        )

    logger.debug(f"GET conversation with {peer_id}: {len(messages)} messages")
    return ConversationResponse(peer_id=peer_id, data=list(messages), total=len(messages))


@app.post("/conversations/{peer_id}/messages", response_model=SendOutcome)
async def send_message(peer_id: str, body: SendRequest, request: Request) -> SendOutcome:
    """
    Send a message to peer_id.

    When peer_id is the automated responder, its reply is appended before
    this returns. The status reports what happened: sent, dropped (blank
    text or no identity) or failed (the log refused the write). Always 200.
    """
    engine = get_engine(request)
    outcome = await engine.send(body.text, peer_id)
    log_send_data(request, peer_id=peer_id, result=outcome.status)
    return outcome


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
