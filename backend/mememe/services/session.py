"""
Editing sessions.

An EditingSession is one meme editing screen: it owns the CaptionedImage,
listens to the keyboard and picker channels the host gives it, and runs
the pick and share flows. The SessionManager keeps the live sessions of
the service.
"""

import logging
import time
from typing import Callable, Optional, Protocol
from uuid import uuid4

from PIL import Image

from mememe.config import Settings, get_settings
from mememe.schemas.meme import (
    CaptionPosition,
    ImageSourceKind,
    KeyboardEvent,
    KeyboardEventType,
    MemeSnapshot,
    PickResult,
    ShareOutcome,
)
from mememe.services.captioned_image import CaptionedImage
from mememe.services.events import EventChannel
from mememe.services.image_source import ImageSource, ImageSourceUnavailableError
from mememe.services.meme_store import MemeStore, get_meme_store
from mememe.services.style import MEME_TEXT_STYLE, TextStyle
from mememe.services.surface import PillowSurface, PresentationSurface

# Configure logging
logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base exception for editing session errors."""
    pass


class SessionNotFoundError(SessionError):
    """Raised when no live session has the given id."""
    pass


class SessionLimitError(SessionError):
    """Raised when MAX_SESSIONS sessions are already open."""
    pass


class SessionClosedError(SessionError):
    """Raised when a pick is requested on a closed session."""
    pass


class PickInFlightError(SessionError):
    """Raised when a pick is requested while another one is outstanding."""
    pass


class ShareNotStartedError(SessionError):
    """Raised when a share outcome is reported without a preceding share."""
    pass


class SharePresenter(Protocol):
    """Collaborator that runs the platform share flow for a rendered meme."""

    def present(self, image: Image.Image) -> ShareOutcome: ...


class EditingSession:
    """
    A single meme editing screen.

    Subscriptions to the keyboard and picker channels are taken in open()
    and released in close(); use the session as a context manager to tie
    them to a block.
    """

    def __init__(
        self,
        surface: PresentationSurface,
        keyboard_events: EventChannel[KeyboardEvent],
        pick_results: EventChannel[PickResult],
        store: Optional[MemeStore] = None,
        persist_on_share: bool = True,
        style: TextStyle = MEME_TEXT_STYLE,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid4().hex
        self.meme = CaptionedImage(style)
        self.surface = surface
        self.keyboard_events = keyboard_events
        self.pick_results = pick_results
        self.store = store
        self.persist_on_share = persist_on_share

        self.active_caption: Optional[CaptionPosition] = None
        self.view_offset_y = 0.0
        self.pick_in_flight: Optional[ImageSourceKind] = None

        self._pending_share: Optional[MemeSnapshot] = None
        self._unsubscribers: list[Callable[[], None]] = []

    # ==========================================================================
    # LIFECYCLE
    # ==========================================================================

    @property
    def is_open(self) -> bool:
        return bool(self._unsubscribers)

    def open(self) -> "EditingSession":
        if self.is_open:
            return self
        self._unsubscribers = [
            self.keyboard_events.subscribe(self._on_keyboard_event),
            self.pick_results.subscribe(self._on_pick_result),
        ]
        logger.info(f"Session {self.session_id} opened")
        return self

    def close(self) -> None:
        if not self.is_open:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.info(f"Session {self.session_id} closed")

    def __enter__(self) -> "EditingSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ==========================================================================
    # CAPTION EDITING
    # ==========================================================================

    def begin_editing(self, which: CaptionPosition) -> None:
        which = CaptionPosition(which)
        self.meme.begin_editing(which)
        self.active_caption = which

    def set_caption_text(self, which: CaptionPosition, text: str) -> None:
        self.meme.set_caption_text(which, text)

    def end_editing(self) -> None:
        """Return key: the active caption resigns."""
        self.active_caption = None

    def _on_keyboard_event(self, event: KeyboardEvent) -> None:
        # Only the bottom caption can end up behind the keyboard
        if event.type is KeyboardEventType.WILL_SHOW:
            if self.active_caption is CaptionPosition.BOTTOM:
                self.view_offset_y -= event.height
        else:
            self.view_offset_y = 0.0

    # ==========================================================================
    # IMAGE PICKING
    # ==========================================================================

    async def request_pick(
        self,
        kind: ImageSourceKind,
        source: ImageSource,
        image_base64: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> PickResult:
        """
        Ask the image source for a photo and deliver the result to the session.

        Raises:
            ImageSourceUnavailableError: If the source does not offer kind
            PickInFlightError: If another pick has not finished yet
            SessionClosedError: If the session has been closed
        """
        kind = ImageSourceKind(kind)
        if not self.is_open:
            raise SessionClosedError(f"Session {self.session_id} is closed")
        if not source.is_available(kind):
            raise ImageSourceUnavailableError(kind)
        if self.pick_in_flight is not None:
            raise PickInFlightError(
                f"A pick from {self.pick_in_flight.value} is already in progress"
            )

        self.pick_in_flight = kind
        try:
            result = await source.request(kind, image_base64=image_base64, image_url=image_url)
        finally:
            self.pick_in_flight = None

        self.pick_results.publish(result)
        return result

    def _on_pick_result(self, result: PickResult) -> None:
        if result.cancelled:
            logger.info(
                f"Session {self.session_id}: pick cancelled, "
                f"state stays {self.meme.share_readiness.value}"
            )
            return
        self.meme.set_source_image(result.image)

    # ==========================================================================
    # RENDERING AND SHARING
    # ==========================================================================

    def render(self) -> Image.Image:
        return self.meme.render(self.surface)

    def share(self) -> MemeSnapshot:
        """
        Render the meme for the share flow.

        Raises:
            NoSourceImageError: If no image has been picked
        """
        self.meme.render(self.surface)
        snapshot = self.meme.snapshot()
        self._pending_share = snapshot
        return snapshot

    def complete_share(self, outcome: ShareOutcome) -> bool:
        """
        Handle the share flow's completion report.

        Returns:
            True if the shared meme was persisted

        Raises:
            ShareNotStartedError: If share() was not called first
        """
        snapshot = self._pending_share
        if snapshot is None:
            raise ShareNotStartedError("No share in progress for this session")
        self._pending_share = None

        if outcome.completed:
            logger.info(f"Session {self.session_id}: share completed ({outcome.activity_type})")
            if self.persist_on_share and self.store is not None:
                self.store.persist(snapshot)
                return True
            return False

        if outcome.error:
            logger.error(f"Session {self.session_id}: error while sharing: {outcome.error}")
        else:
            logger.info(f"Session {self.session_id}: share dismissed")
        return False

    def share_with(self, presenter: SharePresenter) -> ShareOutcome:
        snapshot = self.share()
        outcome = presenter.present(snapshot.rendered_image)
        self.complete_share(outcome)
        return outcome

    def cancel(self) -> None:
        """Cancel button: everything back to defaults."""
        self.meme.clear()
        self.active_caption = None
        self.view_offset_y = 0.0
        self._pending_share = None


class SessionManager:
    """
    In-memory registry of the open editing sessions.

    When MAX_SESSIONS is reached, sessions untouched for SESSION_IDLE_TIMEOUT
    seconds are closed to make room for new ones.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[MemeStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.store = store if store is not None else get_meme_store()
        self.clock = clock
        self._sessions: dict[str, EditingSession] = {}
        self._last_used: dict[str, float] = {}

    def create(self) -> EditingSession:
        if len(self._sessions) >= self.settings.MAX_SESSIONS:
            self.evict_idle()
        if len(self._sessions) >= self.settings.MAX_SESSIONS:
            raise SessionLimitError(
                f"Too many open sessions (MAX_SESSIONS={self.settings.MAX_SESSIONS})"
            )
        session = EditingSession(
            surface=PillowSurface.from_settings(self.settings),
            keyboard_events=EventChannel("keyboard"),
            pick_results=EventChannel("pick_results"),
            store=self.store,
            persist_on_share=self.settings.PERSIST_ON_SHARE,
        )
        session.open()
        self._sessions[session.session_id] = session
        self._last_used[session.session_id] = self.clock()
        return session

    def get(self, session_id: str) -> EditingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        self._last_used[session_id] = self.clock()
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        self._last_used.pop(session_id, None)
        session.close()

    def evict_idle(self) -> int:
        """Close sessions idle for at least SESSION_IDLE_TIMEOUT seconds. Returns how many."""
        cutoff = self.clock() - self.settings.SESSION_IDLE_TIMEOUT
        idle = [
            session_id
            for session_id, last_used in self._last_used.items()
            if last_used <= cutoff and self._sessions[session_id].pick_in_flight is None
        ]
        for session_id in idle:
            logger.info(f"Evicting idle session {session_id}")
            self.close(session_id)
        return len(idle)

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        self._last_used.clear()

    def __len__(self) -> int:
        return len(self._sessions)


# Dependency injection support
_session_manager = None


def get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
