"""
Caption text style.

Both caption lines are drawn with the same fixed style: white fill,
black outline, condensed heavy typeface at 40pt.
"""

import logging
import os
from functools import lru_cache
from typing import Any, Optional

from PIL import ImageFont
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Tried in order when FONT_PATH is not configured
FALLBACK_FONT_PATHS = [
    "C:\\Windows\\Fonts\\impact.ttf" if os.name == "nt" else None,
    "/System/Library/Fonts/HelveticaNeue.ttc",
    "/Library/Fonts/Impact.ttf",
    "/usr/share/fonts/truetype/msttcorefonts/Impact.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSansCondensed-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
]


class TextStyle(BaseModel):
    """
    Immutable caption style.

    stroke_width follows the platform convention of a percentage of the
    font size: negative draws stroke and fill, positive draws the stroke only.
    """

    font: str
    font_size: int
    color: str
    stroke_color: str
    stroke_width: float

    class Config:
        frozen = True

    @property
    def fills_text(self) -> bool:
        return self.stroke_width <= 0

    @property
    def stroke_pixels(self) -> int:
        """Outline thickness in pixels for the configured font size."""
        if self.stroke_width == 0:
            return 0
        return max(1, round(abs(self.stroke_width) * self.font_size / 100))


MEME_TEXT_STYLE = TextStyle(
    font="HelveticaNeue-CondensedBlack",
    font_size=40,
    color="white",
    stroke_color="black",
    stroke_width=-3.5,
)


@lru_cache(maxsize=16)
def load_font(font_size: int, font_path: Optional[str] = None) -> Any:
    """
    Load the caption font.

    Args:
        font_size: Size in pixels
        font_path: Explicit TrueType font path (FONT_PATH setting)

    Returns:
        A Pillow font object. Falls back to Pillow's default font when no
        TrueType font can be found.
    """
    candidates = [font_path] + FALLBACK_FONT_PATHS
    for path in candidates:
        if not path or not os.path.exists(path):
            continue
        try:
            font = ImageFont.truetype(path, font_size)
            logger.info(f"Loaded caption font: {path}")
            return font
        except OSError as e:
            logger.error(f"Error loading font {path}: {e}")

    logger.warning("Using default font as no condensed bold font was found.")
    return ImageFont.load_default(size=font_size)


def wrap_text_to_fit(text: str, max_width: int, font: Any) -> list[str]:
    """
    Wrap caption into lines that fit within max_width. No truncation.

    Lines break at whitespace; runs of spaces, tabs and newlines collapse
    to a single space. Words wider than max_width are broken into the
    longest prefixes that fit.
    """
    words = text.split()
    if not words:
        return []
    lines: list[str] = []
    current = ""

    def measure(s: str) -> int:
        bbox = font.getbbox(s)
        return bbox[2] - bbox[0]

    for word in words:
        candidate = f"{current} {word}" if current else word
        if measure(candidate) <= max_width:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
            # Split words that are wider than the frame on their own
            while measure(current) > max_width and len(current) > 1:
                cut = 1
                while cut < len(current) and measure(current[: cut + 1]) <= max_width:
                    cut += 1
                lines.append(current[:cut])
                current = current[cut:]
    if current:
        lines.append(current)
    return lines
