"""
Presentation surface.

The surface is the on-screen frame the meme is flattened from: the picked
photo, both caption lines and the decorative toolbars. The compositor only
talks to it through the PresentationSurface protocol; PillowSurface is the
in-memory implementation used by the service.
"""

import logging
from typing import Any, Optional, Protocol

from PIL import Image, ImageColor, ImageDraw, ImageOps
from pydantic import BaseModel

from mememe.config import Settings, get_settings
from mememe.services.style import TextStyle, load_font, wrap_text_to_fit

logger = logging.getLogger(__name__)

# Light toolbar tint drawn while chrome is visible
TOOLBAR_COLOR = (247, 247, 247)

# Gap between a toolbar and the caption next to it
CAPTION_MARGIN = 8


class CompositeLayout(BaseModel):
    """Everything needed to rasterize the visible frame."""

    frame: tuple[int, int]
    source_image: Image.Image
    top_text: str
    bottom_text: str
    style: TextStyle

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class PresentationSurface(Protocol):
    """Collaborator that owns the visible frame and its chrome."""

    @property
    def frame_size(self) -> tuple[int, int]: ...

    def set_chrome_visible(self, visible: bool) -> None: ...

    def rasterize(self, layout: CompositeLayout) -> Image.Image: ...


class PillowSurface:
    """
    Renders the editing screen into a Pillow image.

    The photo is aspect-fitted on a black background. The top caption hangs
    below the top toolbar, the bottom caption sits on the bottom toolbar,
    both centered horizontally and word-wrapped to the frame width.
    """

    def __init__(
        self,
        width: int,
        height: int,
        toolbar_height: int = 44,
        font_path: Optional[str] = None,
        background: str = "black",
    ):
        self.width = width
        self.height = height
        self.toolbar_height = toolbar_height
        self.font_path = font_path
        self.background = background
        self.chrome_visible = True

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PillowSurface":
        settings = settings or get_settings()
        return cls(
            width=settings.SURFACE_WIDTH,
            height=settings.SURFACE_HEIGHT,
            toolbar_height=settings.TOOLBAR_HEIGHT,
            font_path=settings.FONT_PATH,
        )

    @property
    def frame_size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def set_chrome_visible(self, visible: bool) -> None:
        self.chrome_visible = visible

    def rasterize(self, layout: CompositeLayout) -> Image.Image:
        """Draw the photo, captions and (if visible) toolbars into one bitmap."""
        width, height = layout.frame
        canvas = Image.new("RGB", (width, height), self.background)

        photo = ImageOps.contain(layout.source_image.convert("RGB"), (width, height))
        canvas.paste(photo, ((width - photo.width) // 2, (height - photo.height) // 2))

        style = layout.style
        font = load_font(style.font_size, self.font_path)
        max_line_width = width - 2 * CAPTION_MARGIN
        line_height = self._line_height(font, style)

        top_lines = wrap_text_to_fit(layout.top_text, max_line_width, font)
        y = self.toolbar_height + CAPTION_MARGIN
        for line in top_lines:
            self._draw_line(canvas, line, y, font, style)
            y += line_height

        bottom_lines = wrap_text_to_fit(layout.bottom_text, max_line_width, font)
        y = height - self.toolbar_height - CAPTION_MARGIN - line_height * len(bottom_lines)
        for line in bottom_lines:
            self._draw_line(canvas, line, y, font, style)
            y += line_height

        if self.chrome_visible:
            draw = ImageDraw.Draw(canvas)
            draw.rectangle((0, 0, width - 1, self.toolbar_height - 1), fill=TOOLBAR_COLOR)
            draw.rectangle((0, height - self.toolbar_height, width - 1, height - 1), fill=TOOLBAR_COLOR)

        logger.debug(
            f"Rasterized {width}x{height} frame: {len(top_lines)} top line(s), "
            f"{len(bottom_lines)} bottom line(s), chrome={self.chrome_visible}"
        )
        return canvas

    @staticmethod
    def _line_height(font: Any, style: TextStyle) -> int:
        bbox = font.getbbox("Ay")
        return bbox[3] - bbox[1] + 2 * style.stroke_pixels

    @staticmethod
    def _draw_line(canvas: Image.Image, line: str, y: int, font: Any, style: TextStyle) -> None:
        bbox = font.getbbox(line)
        x = (canvas.width - (bbox[2] - bbox[0])) // 2 - bbox[0]
        stroke = style.stroke_pixels

        if style.fills_text:
            ImageDraw.Draw(canvas).text(
                (x, y),
                line,
                font=font,
                fill=style.color,
                stroke_width=stroke,
                stroke_fill=style.stroke_color,
            )
            return

        # Outline only: stroke mask minus glyph mask
        outline = Image.new("L", canvas.size, 0)
        mask_draw = ImageDraw.Draw(outline)
        mask_draw.text((x, y), line, font=font, fill=255, stroke_width=stroke, stroke_fill=255)
        mask_draw.text((x, y), line, font=font, fill=0)
        canvas.paste(ImageColor.getrgb(style.stroke_color), (0, 0, canvas.width, canvas.height), outline)
