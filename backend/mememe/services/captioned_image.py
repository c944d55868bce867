"""
Captioned image compositor.

This module holds the in-progress meme: the picked photo, the top and
bottom captions and the cached flattened render. Rendering hides the
surface chrome, rasterizes the visible frame and restores the chrome on
every exit path.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from PIL import Image

from mememe.schemas.meme import (
    CaptionPosition,
    CaptionState,
    MemeSnapshot,
    ShareReadiness,
)
from mememe.services.style import MEME_TEXT_STYLE, TextStyle
from mememe.services.surface import CompositeLayout, PresentationSurface

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_LABELS = {
    CaptionPosition.TOP: "TOP",
    CaptionPosition.BOTTOM: "BOTTOM",
}


class CompositorError(Exception):
    """Base exception for compositor errors."""
    pass


class NoSourceImageError(CompositorError):
    """Raised when rendering is attempted before an image was picked."""
    pass


class NoRenderedImageError(CompositorError):
    """Raised when a snapshot is requested before a render exists."""
    pass


class Caption:
    """
    One caption line.

    Starts as a placeholder showing its default label. begin_editing()
    clears it once; after that the text is user content for the rest of
    the session, even if it happens to equal the label again.
    """

    def __init__(self, label: str):
        self.label = label
        self.text = label
        self.state = CaptionState.PLACEHOLDER

    @property
    def is_placeholder(self) -> bool:
        return self.state is CaptionState.PLACEHOLDER

    def begin_editing(self) -> bool:
        """Clear the placeholder. Returns True if the text changed."""
        if not self.is_placeholder:
            return False
        self.text = ""
        self.state = CaptionState.EDITING
        return True

    def set_text(self, text: str) -> bool:
        """Set the raw text. Returns True if the text changed."""
        if text == self.text:
            return False
        self.text = text
        return True

    def reset(self) -> None:
        self.text = self.label
        self.state = CaptionState.PLACEHOLDER

    def __repr__(self) -> str:
        return f"Caption({self.state.value}, {self.text!r})"


@contextmanager
def chrome_hidden(surface: PresentationSurface) -> Iterator[PresentationSurface]:
    """Hide the surface toolbars for the duration of the block."""
    surface.set_chrome_visible(False)
    try:
        yield surface
    finally:
        surface.set_chrome_visible(True)


class CaptionedImage:
    """
    The meme being edited in one session.

    rendered_image is a cache derived from the source image, both caption
    texts and the text style; every change to those inputs drops it.
    """

    def __init__(self, style: TextStyle = MEME_TEXT_STYLE):
        self.style = style
        self.source_image: Optional[Image.Image] = None
        self.top_caption = Caption(DEFAULT_LABELS[CaptionPosition.TOP])
        self.bottom_caption = Caption(DEFAULT_LABELS[CaptionPosition.BOTTOM])
        self._rendered_image: Optional[Image.Image] = None

    @property
    def rendered_image(self) -> Optional[Image.Image]:
        return self._rendered_image

    @property
    def can_share(self) -> bool:
        return self.source_image is not None

    @property
    def share_readiness(self) -> ShareReadiness:
        return ShareReadiness.IMAGE_READY if self.can_share else ShareReadiness.NO_IMAGE

    def caption(self, which: CaptionPosition) -> Caption:
        which = CaptionPosition(which)
        return self.top_caption if which is CaptionPosition.TOP else self.bottom_caption

    def set_source_image(self, image: Image.Image) -> None:
        self.source_image = image
        self._invalidate()
        logger.info(f"Source image set ({image.width}x{image.height})")

    def clear(self) -> None:
        """Drop the image and restore both placeholder captions."""
        self.source_image = None
        self.top_caption.reset()
        self.bottom_caption.reset()
        self._invalidate()
        logger.info("Captioned image cleared")

    def begin_editing(self, which: CaptionPosition) -> None:
        if self.caption(which).begin_editing():
            self._invalidate()

    def set_caption_text(self, which: CaptionPosition, text: str) -> None:
        if self.caption(which).set_text(text):
            self._invalidate()

    def render(self, surface: PresentationSurface) -> Image.Image:
        """
        Flatten the photo and both captions into a single image.

        Args:
            surface: Surface that owns the frame and the toolbars

        Returns:
            The rendered image (cached until an input changes)

        Raises:
            NoSourceImageError: If no source image has been picked
        """
        if self.source_image is None:
            raise NoSourceImageError("Cannot render a meme without a source image")

        if self._rendered_image is not None:
            logger.debug("Returning cached render")
            return self._rendered_image

        layout = CompositeLayout(
            frame=surface.frame_size,
            source_image=self.source_image,
            top_text=self.top_caption.text,
            bottom_text=self.bottom_caption.text,
            style=self.style,
        )

        with chrome_hidden(surface):
            rendered = surface.rasterize(layout)

        self._rendered_image = rendered
        logger.info(f"Rendered meme {rendered.width}x{rendered.height}")
        return rendered

    def snapshot(self) -> MemeSnapshot:
        """
        Freeze the current meme.

        Raises:
            NoRenderedImageError: If render() has not run since the last change
        """
        if self.source_image is None or self._rendered_image is None:
            raise NoRenderedImageError("Render the meme before taking a snapshot")
        return MemeSnapshot(
            top_text=self.top_caption.text,
            bottom_text=self.bottom_caption.text,
            source_image=self.source_image,
            rendered_image=self._rendered_image,
        )

    def _invalidate(self) -> None:
        self._rendered_image = None
