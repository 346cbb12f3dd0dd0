"""Explicit authentication state shared by the client components."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from uuid import uuid4

from declassifai.errors import AuthenticationError, NotAuthenticatedError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    """Session issued by the authentication provider."""

    access_token: str
    user_id: str | None = None


SessionListener = Callable[[AuthSession | None], None]


class GateStatus(Enum):
    """Whether the current viewer may use authenticated features."""

    CHECKING = "checking"
    AUTHED = "authed"
    ANON = "anon"


class SessionStore(Protocol):
    """Source of the current session."""

    async def get_session(self) -> AuthSession | None:
        """Return the current session, if any."""

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener and return an unsubscribe callback."""

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password."""

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        """Create an account; None while the address awaits confirmation."""

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        """Return the provider URL that starts an OAuth sign-in."""

    async def sign_out(self) -> None:
        """End the current session."""


@dataclass
class MemorySessionStore(SessionStore):
    """Session store holding a session in memory."""

    session: AuthSession | None = None
    accounts: dict[str, str] = field(default_factory=dict)
    _listeners: list[SessionListener] = field(default_factory=list)

    async def get_session(self) -> AuthSession | None:
        return self.session

    def set_session(self, session: AuthSession | None) -> None:
        """Replace the session and notify listeners."""
        self.session = session
        for listener in list(self._listeners):
            listener(session)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        if self.accounts.get(email) != password:
            raise AuthenticationError("Invalid login credentials")
        session = AuthSession(access_token=uuid4().hex, user_id=email)
        self.set_session(session)
        return session

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        if email in self.accounts:
            raise AuthenticationError("User already registered")
        self.accounts[email] = password
        return None

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        raise AuthenticationError(f"OAuth provider {provider} is not available")

    async def sign_out(self) -> None:
        self.set_session(None)


@dataclass
class SessionContext:
    """Session handle injected into every component that needs auth.

    The token is read from the store on every call, never cached.
    """

    store: SessionStore

    @classmethod
    def for_token(cls, token: str) -> "SessionContext":
        """Create a context around a bearer token received from a caller."""
        return cls(MemorySessionStore(AuthSession(access_token=token)))

    async def current_session(self) -> AuthSession | None:
        """Return the current session, if any."""
        return await self.store.get_session()

    async def require_token(self) -> str:
        """Return a fresh bearer token or raise when signed out."""
        session = await self.store.get_session()
        if session is None or not session.access_token:
            raise NotAuthenticatedError("Not signed in")
        return session.access_token

    async def gate_status(self) -> GateStatus:
        """Resolve whether authenticated features may be shown."""
        try:
            session = await self.store.get_session()
        except Exception:
            _logger.exception("Session lookup failed")
            return GateStatus.ANON
        return GateStatus.AUTHED if session else GateStatus.ANON

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Listen for sign-in and sign-out events."""
        return self.store.subscribe(listener)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password, raising AuthenticationError."""
        email = _require_credentials(email, password)
        session = await self.store.sign_in_with_password(email, password)
        _logger.info("Signed in user=%s", session.user_id)
        return session

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        """Register an account.

        Returns the new session, or None when the provider first asks the user
        to confirm the address by email.
        """
        email = _require_credentials(email, password)
        session = await self.store.sign_up(email, password)
        if session is None:
            _logger.info("Sign-up accepted, awaiting email confirmation")
        return session

    async def oauth_url(self, provider: str, redirect_to: str) -> str:
        """Return the provider sign-in URL that comes back to ``redirect_to``."""
        return await self.store.sign_in_with_oauth(provider, redirect_to)

    async def sign_out(self) -> None:
        await self.store.sign_out()
        _logger.info("Signed out")


def _require_credentials(email: str, password: str) -> str:
    email = email.strip()
    if not email or not password:
        raise AuthenticationError("Email and password are required")
    return email
