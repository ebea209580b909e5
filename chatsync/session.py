"""
Session lifecycle and identity bootstrap.

The Session is the single owner of the local identity. Components that need
the identity are handed the Session object; there is no ambient global.
"""

import logging
import uuid
from enum import Enum
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, Field

from chatsync.errors import BootstrapFailure
from chatsync.utils import parse_custom_token

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    FAILED = "failed"


class Identity(BaseModel):
    """A signed-in subject."""
    subject_id: str = Field(..., min_length=1, description="Stable subject id")
    anonymous: bool = Field(False, description="Whether the sign-in was anonymous")

    model_config = {"frozen": True}


class IdentityProvider(Protocol):
    async def sign_in(self) -> Identity: ...

    async def sign_out(self) -> None: ...


class TokenIdentityProvider:
    """
    Signs in with a custom token when one is configured, anonymously otherwise.

    A custom token is "<subject>.<hex hmac-sha256 of subject>" keyed by the
    shared auth secret. A token that does not verify is a bootstrap failure;
    it never falls back to an anonymous identity.
    """

    def __init__(self, auth_secret: str = "", initial_token: Optional[str] = None):
        self._auth_secret = auth_secret
        self._initial_token = initial_token
        self._current: Optional[Identity] = None

    async def sign_in(self) -> Identity:
        if self._initial_token:
            subject = parse_custom_token(self._initial_token, self._auth_secret)
            if subject is None:
                raise BootstrapFailure("custom token rejected")
            self._current = Identity(subject_id=subject)
        else:
            self._current = Identity(subject_id=f"anon-{uuid.uuid4().hex}", anonymous=True)
        return self._current

    async def sign_out(self) -> None:
        self._current = None


StateListener = Callable[["Session"], None]


class Session:
    """
    Local identity plus connectivity state.

    uninitialized -> authenticating -> ready | failed; ready -> uninitialized
    on sign-out. Listeners are called after every transition.
    """

    def __init__(self, provider: IdentityProvider):
        self._provider = provider
        self.state = SessionState.UNINITIALIZED
        self.identity: Optional[Identity] = None
        self._listeners: list[StateListener] = []

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY and self.identity is not None

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _transition(self, state: SessionState, identity: Optional[Identity] = None) -> None:
        logger.debug(f"Session transition: {self.state.value} -> {state.value}")
        self.state = state
        self.identity = identity
        for listener in list(self._listeners):
            listener(self)

    async def bootstrap(self) -> Optional[Identity]:
        """
        Sign in through the provider.

        Returns:
            The identity when the session became ready, None when it failed
        """
        if self.state in (SessionState.AUTHENTICATING, SessionState.READY):
            logger.warning(f"Bootstrap ignored in state {self.state.value}")
            return self.identity

        self._transition(SessionState.AUTHENTICATING)
        try:
            identity = await self._provider.sign_in()
        except BootstrapFailure as e:
            logger.error(f"Session bootstrap failed: {e}")
            self._transition(SessionState.FAILED)
            return None
        except Exception:
            logger.exception("Session bootstrap failed with an unexpected error")
            self._transition(SessionState.FAILED)
            return None

        logger.info(f"Session ready: subject={identity.subject_id}, anonymous={identity.anonymous}")
        self._transition(SessionState.READY, identity)
        return identity

    async def sign_out(self) -> None:
        """Tear down the identity. Safe to call in any state."""
        if self.state is SessionState.READY:
            await self._provider.sign_out()
            logger.info("Session signed out")
        if self.state is not SessionState.UNINITIALIZED:
            self._transition(SessionState.UNINITIALIZED)
