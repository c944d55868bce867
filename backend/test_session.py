import asyncio
import logging
from unittest.mock import MagicMock

import pytest
from PIL import Image

from mememe.config import Settings
from mememe.schemas.meme import (
    CaptionPosition,
    CaptionState,
    ImageSourceKind,
    KeyboardEvent,
    KeyboardEventType,
    PickResult,
    ShareOutcome,
    ShareReadiness,
)
from mememe.services.captioned_image import NoSourceImageError
from mememe.services.events import EventChannel
from mememe.services.image_source import ImageSourceUnavailableError
from mememe.services.meme_store import MemeStore
from mememe.services.session import (
    EditingSession,
    PickInFlightError,
    SessionClosedError,
    SessionLimitError,
    SessionManager,
    SessionNotFoundError,
    ShareNotStartedError,
)
from mememe.services.surface import PillowSurface


class FakeImageSource:
    """Image source double returning a fixed image, or cancelling."""

    def __init__(self, available=(ImageSourceKind.CAMERA, ImageSourceKind.LIBRARY), image=None):
        self.available = set(available)
        self.image = image
        self.requests = []

    def is_available(self, kind):
        return kind in self.available

    async def request(self, kind, image_base64=None, image_url=None):
        self.requests.append(kind)
        return PickResult(kind=kind, image=self.image)


def make_session(store=None, persist_on_share=True):
    return EditingSession(
        surface=PillowSurface(width=200, height=300, toolbar_height=20),
        keyboard_events=EventChannel("keyboard"),
        pick_results=EventChannel("pick_results"),
        store=store,
        persist_on_share=persist_on_share,
    )


def pick(session, source, kind=ImageSourceKind.LIBRARY):
    return asyncio.run(session.request_pick(kind, source))


def red_image():
    return Image.new("RGB", (64, 64), "red")


# =============================================================================
# LIFECYCLE
# =============================================================================

def test_context_manager_subscribes_for_its_lifetime():
    session = make_session()
    assert session.keyboard_events.subscriber_count == 0

    with session:
        assert session.is_open
        assert session.keyboard_events.subscriber_count == 1
        assert session.pick_results.subscriber_count == 1

    assert not session.is_open
    assert session.keyboard_events.subscriber_count == 0
    assert session.pick_results.subscriber_count == 0


def test_open_twice_subscribes_once():
    session = make_session()
    session.open()
    session.open()
    assert session.keyboard_events.subscriber_count == 1
    session.close()
    session.close()
    assert session.keyboard_events.subscriber_count == 0


def test_closed_session_ignores_keyboard_events():
    session = make_session()
    with session:
        session.begin_editing(CaptionPosition.BOTTOM)
    session.keyboard_events.publish(KeyboardEvent(type=KeyboardEventType.WILL_SHOW, height=250))
    assert session.view_offset_y == 0.0


# =============================================================================
# KEYBOARD
# =============================================================================

def test_keyboard_shifts_view_only_for_bottom_caption():
    with make_session() as session:
        session.begin_editing(CaptionPosition.TOP)
        session.keyboard_events.publish(KeyboardEvent(type=KeyboardEventType.WILL_SHOW, height=250))
        assert session.view_offset_y == 0.0

        session.begin_editing(CaptionPosition.BOTTOM)
        session.keyboard_events.publish(KeyboardEvent(type=KeyboardEventType.WILL_SHOW, height=250))
        assert session.view_offset_y == -250.0

        session.keyboard_events.publish(KeyboardEvent(type=KeyboardEventType.WILL_HIDE))
        assert session.view_offset_y == 0.0


def test_end_editing_clears_active_caption():
    with make_session() as session:
        session.begin_editing(CaptionPosition.BOTTOM)
        assert session.active_caption is CaptionPosition.BOTTOM
        session.end_editing()
        assert session.active_caption is None
        session.keyboard_events.publish(KeyboardEvent(type=KeyboardEventType.WILL_SHOW, height=250))
        assert session.view_offset_y == 0.0


# =============================================================================
# PICKING
# =============================================================================

def test_scenario_a_pick_makes_session_shareable():
    with make_session() as session:
        assert session.meme.can_share is False

        result = pick(session, FakeImageSource(image=red_image()))

        assert not result.cancelled
        assert session.meme.can_share is True
        assert session.meme.share_readiness is ShareReadiness.IMAGE_READY
        assert session.pick_in_flight is None


def test_cancelled_pick_without_image_stays_no_image():
    with make_session() as session:
        result = pick(session, FakeImageSource(image=None))
        assert result.cancelled
        assert session.meme.share_readiness is ShareReadiness.NO_IMAGE


def test_cancelled_pick_keeps_existing_image():
    with make_session() as session:
        image = red_image()
        pick(session, FakeImageSource(image=image))
        pick(session, FakeImageSource(image=None))
        assert session.meme.source_image is image
        assert session.meme.can_share is True


def test_scenario_d_unavailable_camera_leaves_state_unchanged():
    source = FakeImageSource(available=[ImageSourceKind.LIBRARY], image=red_image())
    with make_session() as session:
        with pytest.raises(ImageSourceUnavailableError) as exc_info:
            pick(session, source, kind=ImageSourceKind.CAMERA)

        assert exc_info.value.kind is ImageSourceKind.CAMERA
        assert source.requests == []
        assert session.meme.share_readiness is ShareReadiness.NO_IMAGE
        assert session.pick_in_flight is None


def test_pick_rejected_while_another_is_in_flight():
    source = FakeImageSource(image=red_image())
    with make_session() as session:
        session.pick_in_flight = ImageSourceKind.CAMERA
        with pytest.raises(PickInFlightError):
            pick(session, source)
        assert source.requests == []


def test_pick_on_closed_session_is_rejected():
    session = make_session()
    with pytest.raises(SessionClosedError):
        pick(session, FakeImageSource(image=red_image()))


def test_pick_in_flight_is_cleared_when_source_fails():
    source = FakeImageSource(image=red_image())

    async def failing_request(kind, image_base64=None, image_url=None):
        raise RuntimeError("picker crashed")

    source.request = failing_request
    with make_session() as session:
        with pytest.raises(RuntimeError):
            pick(session, source)
        assert session.pick_in_flight is None


# =============================================================================
# SHARING
# =============================================================================

def test_share_without_image_fails():
    with make_session() as session:
        with pytest.raises(NoSourceImageError):
            session.share()


def test_completed_share_persists_snapshot():
    store = MemeStore()
    with make_session(store=store) as session:
        pick(session, FakeImageSource(image=red_image()))
        session.begin_editing(CaptionPosition.TOP)
        session.set_caption_text(CaptionPosition.TOP, "LOL")

        snapshot = session.share()
        persisted = session.complete_share(ShareOutcome(completed=True, activity_type="copy"))

        assert persisted is True
        assert store.list() == [snapshot]
        assert snapshot.top_text == "LOL"
        assert snapshot.bottom_text == "BOTTOM"


def test_completed_share_without_persistence():
    store = MemeStore()
    with make_session(store=store, persist_on_share=False) as session:
        pick(session, FakeImageSource(image=red_image()))
        session.share()
        assert session.complete_share(ShareOutcome(completed=True)) is False
        assert len(store) == 0


def test_failed_share_is_logged_and_not_persisted(caplog):
    store = MemeStore()
    with make_session(store=store) as session:
        pick(session, FakeImageSource(image=red_image()))
        session.share()
        with caplog.at_level(logging.ERROR):
            persisted = session.complete_share(ShareOutcome(completed=False, error="no network"))

        assert persisted is False
        assert len(store) == 0
        assert "no network" in caplog.text


def test_complete_share_requires_share():
    with make_session() as session:
        with pytest.raises(ShareNotStartedError):
            session.complete_share(ShareOutcome(completed=True))


def test_share_with_presenter():
    store = MemeStore()
    presenter = MagicMock()
    presenter.present.return_value = ShareOutcome(completed=True)

    with make_session(store=store) as session:
        pick(session, FakeImageSource(image=red_image()))
        outcome = session.share_with(presenter)

        assert outcome.completed
        presenter.present.assert_called_once_with(session.meme.rendered_image)
        assert len(store) == 1


def test_scenario_c_cancel_resets_session():
    with make_session() as session:
        pick(session, FakeImageSource(image=red_image()))
        session.begin_editing(CaptionPosition.BOTTOM)
        session.set_caption_text(CaptionPosition.BOTTOM, "LOL")
        session.keyboard_events.publish(KeyboardEvent(type=KeyboardEventType.WILL_SHOW, height=100))
        session.share()

        session.cancel()

        assert session.meme.can_share is False
        assert session.meme.top_caption.state is CaptionState.PLACEHOLDER
        assert session.meme.top_caption.text == "TOP"
        assert session.meme.bottom_caption.text == "BOTTOM"
        assert session.active_caption is None
        assert session.view_offset_y == 0.0
        with pytest.raises(ShareNotStartedError):
            session.complete_share(ShareOutcome(completed=True))


# =============================================================================
# SESSION MANAGER
# =============================================================================

def test_manager_creates_open_sessions():
    manager = SessionManager(settings=Settings(), store=MemeStore())
    session = manager.create()

    assert session.is_open
    assert manager.get(session.session_id) is session
    assert len(manager) == 1

    manager.close(session.session_id)
    assert not session.is_open
    with pytest.raises(SessionNotFoundError):
        manager.get(session.session_id)


def test_manager_enforces_session_limit():
    manager = SessionManager(settings=Settings(MAX_SESSIONS=1), store=MemeStore())
    manager.create()
    with pytest.raises(SessionLimitError):
        manager.create()


def test_manager_close_all():
    manager = SessionManager(settings=Settings(), store=MemeStore())
    sessions = [manager.create() for _ in range(3)]
    manager.close_all()
    assert len(manager) == 0
    assert not any(session.is_open for session in sessions)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_manager_evicts_idle_sessions_when_full():
    clock = FakeClock()
    manager = SessionManager(
        settings=Settings(MAX_SESSIONS=2, SESSION_IDLE_TIMEOUT=60),
        store=MemeStore(),
        clock=clock,
    )
    abandoned = manager.create()
    clock.now += 30
    active = manager.create()

    clock.now += 40
    manager.get(active.session_id)
    newest = manager.create()

    assert not abandoned.is_open
    with pytest.raises(SessionNotFoundError):
        manager.get(abandoned.session_id)
    assert manager.get(active.session_id) is active
    assert manager.get(newest.session_id) is newest


def test_manager_keeps_recent_sessions_at_limit():
    clock = FakeClock()
    manager = SessionManager(
        settings=Settings(MAX_SESSIONS=1, SESSION_IDLE_TIMEOUT=60),
        store=MemeStore(),
        clock=clock,
    )
    session = manager.create()
    clock.now += 59
    with pytest.raises(SessionLimitError):
        manager.create()
    assert session.is_open


def test_manager_does_not_evict_session_with_pick_in_flight():
    clock = FakeClock()
    manager = SessionManager(
        settings=Settings(MAX_SESSIONS=1, SESSION_IDLE_TIMEOUT=60),
        store=MemeStore(),
        clock=clock,
    )
    session = manager.create()
    session.pick_in_flight = ImageSourceKind.CAMERA
    clock.now += 600
    assert manager.evict_idle() == 0
    with pytest.raises(SessionLimitError):
        manager.create()
