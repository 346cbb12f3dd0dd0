"""Supabase-backed session store."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from supabase import AuthError, Client

from declassifai.errors import AuthenticationError
from declassifai.services.session_context import (
    AuthSession,
    SessionListener,
    SessionStore,
)


@dataclass
class SupabaseSessionStore(SessionStore):
    """Reads and changes the signed-in session through Supabase auth."""

    client: Client

    async def get_session(self) -> AuthSession | None:
        """Return the current Supabase session, refreshed if needed."""
        session = await asyncio.to_thread(self.client.auth.get_session)
        return _to_auth_session(session)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Forward Supabase auth state changes to the listener."""

        def on_change(event: object, session: object) -> None:
            listener(_to_auth_session(session))

        subscription = self.client.auth.on_auth_state_change(on_change)
        return subscription.unsubscribe

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        response = await self._call(
            self.client.auth.sign_in_with_password,
            {"email": email, "password": password},
        )
        session = _to_auth_session(response.session)
        if session is None:
            raise AuthenticationError("Sign-in returned no session")
        return session

    async def sign_up(self, email: str, password: str) -> AuthSession | None:
        response = await self._call(
            self.client.auth.sign_up, {"email": email, "password": password}
        )
        return _to_auth_session(response.session)

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        response = await self._call(
            self.client.auth.sign_in_with_oauth,
            {"provider": provider, "options": {"redirect_to": redirect_to}},
        )
        return response.url

    async def sign_out(self) -> None:
        await self._call(self.client.auth.sign_out)

    async def _call(self, method: Callable[..., Any], *args: object) -> Any:
        try:
            return await asyncio.to_thread(method, *args)
        except AuthError as exc:
            raise AuthenticationError(str(exc)) from exc


def _to_auth_session(session: object) -> AuthSession | None:
    """Convert a Supabase session object into an AuthSession."""
    token = getattr(session, "access_token", None)
    if not token:
        return None
    user = getattr(session, "user", None)
    user_id = getattr(user, "id", None)
    return AuthSession(
        access_token=token,
        user_id=str(user_id) if user_id is not None else None,
    )
