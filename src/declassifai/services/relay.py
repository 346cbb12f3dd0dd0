"""Session and layout relay across the embedding boundary.

The embedded side (popup or iframe owned by this app) forwards the session
token to the window that opened or contains it, and keeps the host frame
informed about the document height. The host side routes incoming messages
and validates their origin. Every relay step is best-effort: failures end the
flow in a terminal state instead of propagating.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from declassifai.domain.messages import (
    AuthTokenMessage,
    EmbedResizeMessage,
    RelayMessage,
    ScrollTopMessage,
    parse_message,
    to_payload,
)
from declassifai.errors import AuthenticationError
from declassifai.services.scheduling import AsyncioScheduler, Scheduler
from declassifai.services.session_context import AuthSession, SessionContext

WILDCARD_ORIGIN = "*"

_logger = logging.getLogger(__name__)


class MessageTarget(Protocol):
    """A window that accepts cross-origin messages."""

    def post_message(self, message: dict[str, object], target_origin: str) -> None:
        """Deliver ``message`` if the window's origin matches ``target_origin``."""


class EmbeddingWindow(Protocol):
    """The popup or iframe the app is running in."""

    origin: str | None
    is_popup: bool
    opener: MessageTarget | None
    parent: MessageTarget | None

    def close(self) -> None:
        """Close the window (only meaningful for popups)."""


class LayoutMetrics(Protocol):
    """Heights reported by the embedded document."""

    def document_scroll_height(self) -> int:
        """Scroll height of the root element."""

    def body_scroll_height(self) -> int:
        """Scroll height of the body element."""

    def viewport_height(self) -> int:
        """Inner height of the window."""


def measure_height(metrics: LayoutMetrics) -> int:
    """Return the height the host frame needs to show the whole document."""
    return max(
        metrics.document_scroll_height(),
        metrics.body_scroll_height(),
        metrics.viewport_height(),
    )


def origin_matches(pattern: str, origin: str | None) -> bool:
    """Match an origin against an allow-list entry.

    Entries are exact origins or CSP-style host wildcards such as
    ``https://*.example.com``, which match any subdomain but not the bare host.
    """
    if origin is None:
        return False
    if pattern == origin:
        return True
    scheme, sep, host = pattern.partition("://")
    origin_scheme, origin_sep, origin_host = origin.partition("://")
    if not sep or not origin_sep or not host.startswith("*."):
        return False
    if scheme.lower() != origin_scheme.lower():
        return False
    suffix = host[1:].lower()
    origin_host = origin_host.lower()
    if not origin_host.endswith(suffix):
        return False
    prefix = origin_host[: -len(suffix)]
    return bool(prefix) and "/" not in prefix


def resolve_target_origin(configured: str | None, window: EmbeddingWindow) -> str:
    """Pick the narrowest target origin we can justify.

    A configured host origin wins. A popup opened by our own pages can be
    scoped to our origin. Otherwise the receiver is unknown and the wildcard
    is the only option.
    """
    if configured:
        return configured
    if window.is_popup and window.origin:
        return window.origin
    return WILDCARD_ORIGIN


class RelayState(Enum):
    """Progress of the token relay, as shown to the user."""

    CHECKING = "checking"
    SIGNED_OUT = "signed-out"
    SENDING = "sending"
    DONE = "done"


RelayListener = Callable[[RelayState], None]


@dataclass
class TokenRelay:
    """Forwards the current session token to the opener or parent window."""

    session: SessionContext
    window: EmbeddingWindow
    scheduler: Scheduler = field(default_factory=AsyncioScheduler)
    target_origin: str | None = None
    close_delay_seconds: float = 0.6
    oauth_provider: str = "google"
    oauth_redirect_path: str = "/embed-auth"
    state: RelayState = RelayState.CHECKING
    error: str | None = None
    _listeners: list[RelayListener] = field(default_factory=list)

    def subscribe(self, listener: RelayListener) -> Callable[[], None]:
        """Receive state changes; returns an unsubscribe callback."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def run(self) -> RelayState:
        """Check the session and relay its token, never raising."""
        self._set_state(RelayState.CHECKING)
        try:
            session = await self.session.current_session()
        except Exception as exc:
            _logger.warning("Session check failed: %s", exc)
            self.error = str(exc)
            self._set_state(RelayState.SIGNED_OUT)
            return self.state

        if session is None:
            self._set_state(RelayState.SIGNED_OUT)
            return self.state

        receiver = self.window.opener if self.window.is_popup else self.window.parent
        if receiver is None:
            _logger.info("No receiving window, skipping token relay")
            self._set_state(RelayState.SIGNED_OUT)
            return self.state

        self._set_state(RelayState.SENDING)
        if not self._post_token(receiver, session):
            self._set_state(RelayState.DONE)
            return self.state

        self._set_state(RelayState.DONE)
        if self.window.is_popup:
            await self.scheduler.sleep(self.close_delay_seconds)
            try:
                self.window.close()
            except Exception:
                _logger.exception("Failed to close relay popup")
        return self.state

    async def sign_in_url(self) -> str | None:
        """Return the OAuth URL that signs in and comes back to this view.

        The relay runs again after the provider redirects back. A refused
        request leaves the state unchanged and records the error.
        """
        redirect_to = f"{self.window.origin or ''}{self.oauth_redirect_path}"
        try:
            return await self.session.oauth_url(self.oauth_provider, redirect_to)
        except AuthenticationError as exc:
            _logger.warning("OAuth sign-in failed: %s", exc)
            self.error = str(exc)
            return None

    def _post_token(self, receiver: MessageTarget, session: AuthSession) -> bool:
        origin = resolve_target_origin(self.target_origin, self.window)
        message = AuthTokenMessage(token=session.access_token)
        try:
            receiver.post_message(to_payload(message), origin)
        except Exception as exc:
            _logger.exception("Token relay failed")
            self.error = str(exc)
            return False
        return True

    def _set_state(self, state: RelayState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)


@dataclass
class LayoutBridge:
    """Reports document height changes to the parent frame.

    Heights are sent from load, resize and size-mutation hooks and from a
    fallback timer, since no single mechanism catches every change.
    """

    window: EmbeddingWindow
    metrics: LayoutMetrics
    scheduler: Scheduler = field(default_factory=AsyncioScheduler)
    interval_seconds: float = 1.0
    target_origin: str | None = None
    last_height: int | None = None
    _task: asyncio.Task[None] | None = None
    _unsubscribe: Callable[[], None] | None = None

    def notify(self, force: bool = False) -> bool:
        """Post the current height if it changed. Returns True when sent."""
        parent = self.window.parent
        if parent is None:
            return False
        height = measure_height(self.metrics)
        if not force and height == self.last_height:
            return False
        message = EmbedResizeMessage(height=height)
        if not self._post(parent, to_payload(message)):
            return False
        self.last_height = height
        return True

    def on_load(self) -> None:
        self.notify(force=True)

    def on_resize(self) -> None:
        self.notify()

    def on_mutation(self) -> None:
        self.notify()

    def scroll_top(self) -> bool:
        """Ask the host page to bring the frame back into view."""
        parent = self.window.parent
        if parent is None:
            return False
        return self._post(parent, to_payload(ScrollTopMessage()))

    def attach_session(self, session: SessionContext) -> None:
        """Send a scroll-reset hint whenever the user signs in or out."""
        self.detach_session()
        self._unsubscribe = session.subscribe(lambda _session: self.scroll_top())

    def detach_session(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def start(self) -> asyncio.Task[None]:
        """Send the initial height and start the fallback timer."""
        self.stop()
        self.notify(force=True)
        self._task = asyncio.get_running_loop().create_task(self._tick())
        return self._task

    def stop(self) -> None:
        """Cancel the fallback timer and session hook."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.detach_session()

    async def aclose(self) -> None:
        """Stop the bridge and wait for the timer task to end."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None

    async def _tick(self) -> None:
        while True:
            await self.scheduler.sleep(self.interval_seconds)
            try:
                self.notify()
            except Exception as exc:
                _logger.warning("Layout measurement failed: %s", exc)

    def _post(self, parent: MessageTarget, payload: dict[str, object]) -> bool:
        origin = self.target_origin or WILDCARD_ORIGIN
        try:
            parent.post_message(payload, origin)
        except Exception as exc:
            _logger.debug("Layout relay failed: %s", exc)
            return False
        return True


@dataclass
class MessageRouter:
    """Host-side receiver for messages posted by the embedded app.

    Messages from origins outside ``allowed_origins`` are dropped when an
    allow-list is configured; unknown message types are ignored.
    """

    allowed_origins: tuple[str, ...] = ()
    on_token: Callable[[str], None] | None = None
    on_resize: Callable[[int], None] | None = None
    on_scroll_top: Callable[[], None] | None = None
    last_token: str | None = None
    _waiters: list[asyncio.Future[str]] = field(default_factory=list)

    def dispatch(self, raw: object, origin: str | None) -> RelayMessage | None:
        """Handle one received message; returns it when it was accepted."""
        if self.allowed_origins and not any(
            origin_matches(pattern, origin) for pattern in self.allowed_origins
        ):
            _logger.warning("Dropping message from untrusted origin %s", origin)
            return None
        message = parse_message(raw)
        match message:
            case AuthTokenMessage(token=token):
                self.last_token = token
                for waiter in self._waiters:
                    if not waiter.done():
                        waiter.set_result(token)
                if self.on_token is not None:
                    self.on_token(token)
            case EmbedResizeMessage(height=height):
                if self.on_resize is not None:
                    self.on_resize(height)
            case ScrollTopMessage():
                if self.on_scroll_top is not None:
                    self.on_scroll_top()
            case _:
                return None
        return message

    async def wait_for_token(self, timeout: float) -> str | None:
        """Wait for a relayed token, returning None after ``timeout`` seconds."""
        if self.last_token is not None:
            return self.last_token
        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout)
        except TimeoutError:
            _logger.info("No session token relayed within %ss", timeout)
            return None
        finally:
            self._waiters.remove(waiter)
