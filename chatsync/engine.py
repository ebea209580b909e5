"""
Wiring of the chat engine.

ChatEngine owns one Session, one MessageLog, the subscription manager and the
orchestrator for a process. The log is attached only once the session is
ready; signing out detaches it.
"""

import logging
from typing import Optional

import httpx

from chatsync.config import Settings
from chatsync.conversation import ConversationView
from chatsync.orchestrator import SendOrchestrator
from chatsync.responder import GeminiClient, Responder
from chatsync.schemas import ChatMessage, Peer, SendOutcome
from chatsync.session import Session, TokenIdentityProvider
from chatsync.storage import MessageLog
from chatsync.subscription import LogSubscriptionManager

logger = logging.getLogger(__name__)


def build_peer_directory(settings: Settings) -> list[Peer]:
    return [
        Peer(id="john-doe", name="John Doe", avatar="https://placehold.co/40x40/fca5a5/ffffff?text=JD"),
        Peer(id="jane-smith", name="Jane Smith", avatar="https://placehold.co/40x40/f87171/ffffff?text=JS"),
        Peer(
            id=settings.RESPONDER_ID,
            name=settings.RESPONDER_NAME,
            avatar="https://placehold.co/40x40/60a5fa/ffffff?text=GB",
        ),
    ]


class ChatEngine:
    def __init__(
        self,
        session: Session,
        log: MessageLog,
        responder: Responder,
        responder_id: str,
        responder_name: Optional[str] = None,
        peers: Optional[list[Peer]] = None,
    ):
        self.session = session
        self.log = log
        self.subscriptions = LogSubscriptionManager(log)
        session.add_listener(self.subscriptions.on_session_change)
        self.orchestrator = SendOrchestrator(
            log=log,
            session=session,
            subscriptions=self.subscriptions,
            responder=responder,
            responder_id=responder_id,
            responder_name=responder_name,
        )
        self.responder_id = responder_id
        self.peers = peers or []
        self._view = ConversationView()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ChatEngine":
        provider = TokenIdentityProvider(
            auth_secret=settings.AUTH_SECRET,
            initial_token=settings.INITIAL_AUTH_TOKEN,
        )
        client = GeminiClient(
            api_url=settings.RESPONDER_API_URL,
            model=settings.RESPONDER_MODEL,
            api_key=settings.RESPONDER_API_KEY,
            transport=transport,
        )
        return cls(
            session=Session(provider),
            log=MessageLog(settings.log_path),
            responder=Responder(client, timeout=settings.RESPONDER_TIMEOUT_SECONDS),
            responder_id=settings.RESPONDER_ID,
            responder_name=settings.RESPONDER_NAME,
            peers=build_peer_directory(settings),
        )

    @property
    def local_identity(self) -> Optional[str]:
        if not self.session.is_ready:
            return None
        return self.session.identity.subject_id

    async def start(self) -> bool:
        """Bootstrap the session and attach the log. False leaves the engine inert."""
        identity = await self.session.bootstrap()
        if identity is None:
            logger.error("No usable identity, chat engine stays inert")
            return False
        return await self.subscriptions.attach(identity)

    async def stop(self) -> None:
        self.subscriptions.detach()
        await self.session.sign_out()

    def conversation(self, peer_id: str) -> Optional[tuple[ChatMessage, ...]]:
        """Current view of the conversation with peer_id, None without an identity."""
        local = self.local_identity
        if local is None:
            return None
        return self._view.get(self.subscriptions.snapshot, local, peer_id)

    async def send(self, text: str, peer_id: str) -> SendOutcome:
        outcome = await self.orchestrator.send(text, self.local_identity or "", peer_id)
        # Wait for the log's echo so the next read of the view includes this send.
        await self.subscriptions.drain()
        return outcome
