"""Tests for session and layout relay."""

import asyncio
from dataclasses import dataclass

from declassifai.domain.messages import (
    AuthTokenMessage,
    EmbedResizeMessage,
    ScrollTopMessage,
)
from declassifai.services.relay import (
    LayoutBridge,
    MessageRouter,
    RelayState,
    TokenRelay,
    measure_height,
    origin_matches,
)
from declassifai.services.session_context import (
    AuthSession,
    MemorySessionStore,
    SessionContext,
)
from tests.conftest import FakeMetrics, FakeScheduler, FakeWindow, RecordingTarget


@dataclass
class FlakyMetrics(FakeMetrics):
    failures: int = 0

    def document_scroll_height(self) -> int:
        if self.failures:
            self.failures -= 1
            raise RuntimeError("layout not ready")
        return self.document


class FailingStore(MemorySessionStore):
    async def get_session(self) -> AuthSession | None:
        raise RuntimeError("auth provider unreachable")


class OAuthStore(MemorySessionStore):
    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        return f"https://auth.test/{provider}?redirect_to={redirect_to}"


def test_popup_relays_token_to_opener_and_closes(
    session: SessionContext, scheduler: FakeScheduler
) -> None:
    opener = RecordingTarget()
    window = FakeWindow(is_popup=True, opener=opener)
    relay = TokenRelay(session=session, window=window, scheduler=scheduler)
    states: list[RelayState] = []
    relay.subscribe(states.append)

    state = asyncio.run(relay.run())

    assert state is RelayState.DONE
    assert opener.messages == [
        ({"type": "declassifai-auth", "token": "test-token"}, "https://app.test")
    ]
    assert states == [RelayState.CHECKING, RelayState.SENDING, RelayState.DONE]
    assert scheduler.sleeps == [0.6]
    assert window.closed is True


def test_iframe_relays_to_parent_and_stays_open(
    session: SessionContext, scheduler: FakeScheduler
) -> None:
    parent = RecordingTarget()
    window = FakeWindow(is_popup=False, parent=parent)
    relay = TokenRelay(
        session=session,
        window=window,
        scheduler=scheduler,
        target_origin="https://www.de-classifai.com",
    )

    state = asyncio.run(relay.run())

    assert state is RelayState.DONE
    assert parent.messages[0][1] == "https://www.de-classifai.com"
    assert scheduler.sleeps == []
    assert window.closed is False


def test_iframe_without_known_origin_uses_wildcard(
    session: SessionContext, scheduler: FakeScheduler
) -> None:
    parent = RecordingTarget()
    window = FakeWindow(is_popup=False, parent=parent)
    relay = TokenRelay(session=session, window=window, scheduler=scheduler)

    asyncio.run(relay.run())

    assert parent.messages[0][1] == "*"


def test_popup_without_opener_shows_signed_out(
    session: SessionContext, scheduler: FakeScheduler
) -> None:
    window = FakeWindow(is_popup=True, opener=None)
    relay = TokenRelay(session=session, window=window, scheduler=scheduler)

    state = asyncio.run(relay.run())

    assert state is RelayState.SIGNED_OUT
    assert relay.error is None
    assert window.closed is False


def test_signed_out_session_skips_relay(scheduler: FakeScheduler) -> None:
    opener = RecordingTarget()
    relay = TokenRelay(
        session=SessionContext(MemorySessionStore()),
        window=FakeWindow(is_popup=True, opener=opener),
        scheduler=scheduler,
    )

    assert asyncio.run(relay.run()) is RelayState.SIGNED_OUT
    assert opener.messages == []


def test_session_lookup_failure_shows_signed_out(scheduler: FakeScheduler) -> None:
    relay = TokenRelay(
        session=SessionContext(FailingStore()),
        window=FakeWindow(is_popup=True, opener=RecordingTarget()),
        scheduler=scheduler,
    )

    assert asyncio.run(relay.run()) is RelayState.SIGNED_OUT
    assert relay.error == "auth provider unreachable"


def test_post_failure_ends_in_done_without_raising(
    session: SessionContext, scheduler: FakeScheduler
) -> None:
    opener = RecordingTarget(error=RuntimeError("receiving window closed"))
    window = FakeWindow(is_popup=True, opener=opener)
    relay = TokenRelay(session=session, window=window, scheduler=scheduler)

    state = asyncio.run(relay.run())

    assert state is RelayState.DONE
    assert relay.error == "receiving window closed"
    assert window.closed is False


def test_signed_out_relay_offers_oauth_sign_in(scheduler: FakeScheduler) -> None:
    relay = TokenRelay(
        session=SessionContext(OAuthStore()),
        window=FakeWindow(is_popup=True, opener=RecordingTarget()),
        scheduler=scheduler,
    )

    assert asyncio.run(relay.run()) is RelayState.SIGNED_OUT
    assert asyncio.run(relay.sign_in_url()) == (
        "https://auth.test/google?redirect_to=https://app.test/embed-auth"
    )


def test_refused_oauth_sign_in_records_error(scheduler: FakeScheduler) -> None:
    relay = TokenRelay(
        session=SessionContext(MemorySessionStore()),
        window=FakeWindow(),
        scheduler=scheduler,
    )

    assert asyncio.run(relay.sign_in_url()) is None
    assert relay.error == "OAuth provider google is not available"


def test_measure_height_takes_the_largest_metric() -> None:
    assert measure_height(FakeMetrics(document=100, body=250, viewport=200)) == 250


def test_layout_bridge_sends_only_changes() -> None:
    parent = RecordingTarget()
    metrics = FakeMetrics()
    bridge = LayoutBridge(window=FakeWindow(parent=parent), metrics=metrics)

    bridge.on_load()
    bridge.on_resize()
    metrics.body = 900
    bridge.on_mutation()

    assert parent.messages == [
        ({"type": "declassifai:resize", "height": 400}, "*"),
        ({"type": "declassifai:resize", "height": 900}, "*"),
    ]


def test_layout_bridge_without_parent_is_a_no_op() -> None:
    bridge = LayoutBridge(window=FakeWindow(parent=None), metrics=FakeMetrics())

    assert bridge.notify(force=True) is False
    assert bridge.scroll_top() is False


def test_layout_bridge_swallows_post_failures() -> None:
    parent = RecordingTarget(error=RuntimeError("detached"))
    bridge = LayoutBridge(window=FakeWindow(parent=parent), metrics=FakeMetrics())

    assert bridge.notify(force=True) is False
    assert bridge.last_height is None


def test_layout_bridge_fallback_timer_picks_up_changes(
    scheduler: FakeScheduler,
) -> None:
    parent = RecordingTarget()
    metrics = FakeMetrics()

    async def scenario() -> LayoutBridge:
        bridge = LayoutBridge(
            window=FakeWindow(parent=parent),
            metrics=metrics,
            scheduler=scheduler,
            target_origin="https://de-classifai.com",
        )
        bridge.start()
        for _ in range(3):
            await asyncio.sleep(0)
        metrics.document = 1200
        for _ in range(3):
            await asyncio.sleep(0)
        await bridge.aclose()
        return bridge

    bridge = asyncio.run(scenario())

    heights = [message["height"] for message, _ in parent.messages]
    assert heights == [400, 1200]
    assert all(origin == "https://de-classifai.com" for _, origin in parent.messages)
    assert scheduler.sleeps
    assert set(scheduler.sleeps) == {1.0}
    assert bridge.last_height == 1200


def test_layout_bridge_timer_survives_measurement_errors(
    scheduler: FakeScheduler,
) -> None:
    parent = RecordingTarget()
    metrics = FlakyMetrics()

    async def scenario() -> bool:
        bridge = LayoutBridge(
            window=FakeWindow(parent=parent), metrics=metrics, scheduler=scheduler
        )
        task = bridge.start()
        metrics.failures = 2
        metrics.document = 900
        for _ in range(8):
            await asyncio.sleep(0)
        alive = not task.done()
        await bridge.aclose()
        return alive

    alive = asyncio.run(scenario())

    assert alive is True
    assert metrics.failures == 0
    assert [message["height"] for message, _ in parent.messages] == [400, 900]


def test_layout_bridge_sends_scroll_hint_on_auth_change() -> None:
    parent = RecordingTarget()
    store = MemorySessionStore()
    bridge = LayoutBridge(window=FakeWindow(parent=parent), metrics=FakeMetrics())

    bridge.attach_session(SessionContext(store))
    store.set_session(AuthSession(access_token="fresh"))
    bridge.detach_session()
    store.set_session(None)

    assert parent.messages == [({"type": "declassifai:scrollTop"}, "*")]


def test_router_dispatches_known_messages() -> None:
    tokens: list[str] = []
    heights: list[int] = []
    scrolls: list[bool] = []
    router = MessageRouter(
        allowed_origins=("https://app.test",),
        on_token=tokens.append,
        on_resize=heights.append,
        on_scroll_top=lambda: scrolls.append(True),
    )

    token_message = router.dispatch(
        {"type": "declassifai-auth", "token": "abc"}, "https://app.test"
    )
    router.dispatch({"type": "declassifai:resize", "height": 640}, "https://app.test")
    legacy_resize = {"type": "DECLASSIFAI_EMBED_HEIGHT", "height": 320}
    router.dispatch(legacy_resize, "https://app.test")
    scroll_message = router.dispatch(
        {"type": "declassifai:scrollTop"}, "https://app.test"
    )

    assert isinstance(token_message, AuthTokenMessage)
    assert isinstance(scroll_message, ScrollTopMessage)
    assert tokens == ["abc"]
    assert heights == [640, 320]
    assert scrolls == [True]
    assert router.last_token == "abc"


def test_router_ignores_unknown_types_and_untrusted_origins() -> None:
    tokens: list[str] = []
    router = MessageRouter(
        allowed_origins=("https://app.test",), on_token=tokens.append
    )

    assert router.dispatch({"type": "something-else"}, "https://app.test") is None
    assert router.dispatch("not-a-dict", "https://app.test") is None
    assert (
        router.dispatch({"type": "declassifai-auth", "token": "x"}, "https://evil.test")
        is None
    )
    assert tokens == []


def test_router_accepts_wildcard_subdomain_origins() -> None:
    tokens: list[str] = []
    router = MessageRouter(
        allowed_origins=("https://de-classifai.com", "https://*.squarespace.com"),
        on_token=tokens.append,
    )
    message = {"type": "declassifai-auth", "token": "abc"}

    assert router.dispatch(message, "https://shop.squarespace.com") is not None
    assert router.dispatch(message, "https://squarespace.com") is None
    assert router.dispatch(message, "http://shop.squarespace.com") is None
    assert router.dispatch(message, "https://evilsquarespace.com") is None
    assert tokens == ["abc"]


def test_origin_matches_exact_and_wildcard_entries() -> None:
    assert origin_matches("https://app.test", "https://app.test")
    assert origin_matches("https://*.example.com", "https://a.b.example.com")
    assert not origin_matches("https://*.example.com", "https://example.com")
    assert not origin_matches("https://*.example.com", None)
    assert not origin_matches("https://app.test", "https://other.test")


def test_router_without_allow_list_accepts_any_origin() -> None:
    router = MessageRouter()

    message = router.dispatch({"type": "declassifai:resize", "height": 10}, None)

    assert isinstance(message, EmbedResizeMessage)


def test_wait_for_token_times_out() -> None:
    router = MessageRouter()

    assert asyncio.run(router.wait_for_token(timeout=0.01)) is None


def test_wait_for_token_receives_relayed_token() -> None:
    router = MessageRouter()

    async def scenario() -> str | None:
        waiter = asyncio.create_task(router.wait_for_token(timeout=5))
        await asyncio.sleep(0)
        message = {"type": "declassifai-auth", "token": "tok"}
        router.dispatch(message, "https://app.test")
        return await waiter

    assert asyncio.run(scenario()) == "tok"
