"""
Meme editing schemas.

This module contains the Pydantic models shared by the editing core
(snapshots, pick results, keyboard events, share outcomes) and the
request/response models of the REST API.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from PIL import Image
from pydantic import BaseModel, Field, field_validator, model_validator


class CaptionPosition(str, Enum):
    """The two caption lines of a meme."""
    TOP = "top"
    BOTTOM = "bottom"


class CaptionState(str, Enum):
    """Editing state of a single caption."""
    PLACEHOLDER = "placeholder"
    EDITING = "editing"


class ShareReadiness(str, Enum):
    """Whether the current meme may be shared or saved."""
    NO_IMAGE = "no_image"
    IMAGE_READY = "image_ready"


class ImageSourceKind(str, Enum):
    """Where a source photo is picked from."""
    CAMERA = "camera"
    LIBRARY = "library"


class KeyboardEventType(str, Enum):
    """On-screen keyboard notifications forwarded by the client."""
    WILL_SHOW = "will_show"
    WILL_HIDE = "will_hide"


# =============================================================================
# EDITING CORE MODELS
# =============================================================================

class MemeSnapshot(BaseModel):
    """
    Immutable record of a finished meme.

    Produced by CaptionedImage.snapshot() once a render exists, handed to
    the share presenter and optionally persisted after a completed share.
    """

    top_text: str
    bottom_text: str
    source_image: Image.Image
    rendered_image: Image.Image
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class PickResult(BaseModel):
    """Result of an image source request: either an image or a cancellation."""

    kind: ImageSourceKind
    image: Optional[Image.Image] = None

    @property
    def cancelled(self) -> bool:
        return self.image is None

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class KeyboardEvent(BaseModel):
    """Keyboard will-show / will-hide notification with the keyboard frame height."""

    type: KeyboardEventType = Field(
        ...,
        description="Keyboard notification type"
    )

    height: float = Field(
        0.0,
        ge=0,
        description="Height of the keyboard end frame (only used for will_show)"
    )


class ShareOutcome(BaseModel):
    """
    Completion report of the share sheet.

    Mirrors what the platform share flow hands back: whether the user
    completed an activity, which one, and the error if it failed.
    """

    completed: bool = Field(
        ...,
        description="Whether the share activity completed"
    )

    activity_type: Optional[str] = Field(
        None,
        description="Identifier of the chosen share activity, if any"
    )

    error: Optional[str] = Field(
        None,
        description="Error message reported by the share flow"
    )


# =============================================================================
# REST API SCHEMAS
# =============================================================================

class CaptionView(BaseModel):
    """Public view of one caption."""

    text: str
    state: CaptionState
    is_placeholder: bool


class SessionStateResponse(BaseModel):
    """Current state of an editing session."""

    session_id: str
    share_readiness: ShareReadiness
    can_share: bool
    has_source_image: bool
    has_rendered_image: bool
    top_caption: CaptionView
    bottom_caption: CaptionView
    active_caption: Optional[CaptionPosition] = None
    view_offset_y: float = 0.0
    pick_in_flight: bool = False


class PickRequest(BaseModel):
    """
    Request to pick a source image.

    The client sends the photo it obtained from the camera or library as
    base64 (optionally a data URI) or as a URL. Sending neither means the
    user cancelled the picker.
    """

    kind: ImageSourceKind = Field(
        ...,
        description="Picker source the image came from"
    )

    image_base64: Optional[str] = Field(
        None,
        description="Base64 encoded image (plain or data:image/...;base64,...)"
    )

    image_url: Optional[str] = Field(
        None,
        description="URL of the picked image"
    )

    @field_validator("image_base64", "image_url")
    @classmethod
    def strip_empty(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as absent."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def validate_single_payload(self) -> "PickRequest":
        """Only one of image_base64 / image_url may be provided."""
        if self.image_base64 and self.image_url:
            raise ValueError("Provide either image_base64 or image_url, not both")
        return self

    @property
    def cancelled(self) -> bool:
        return not (self.image_base64 or self.image_url)


class CaptionTextRequest(BaseModel):
    """Request to replace the text of a caption."""

    text: str = Field(
        ...,
        max_length=500,
        description="New caption text",
        examples=["WHEN THE BUILD PASSES"]
    )


class RenderResponse(BaseModel):
    """Flattened meme image."""

    image_base64: str = Field(
        ...,
        description="Base64 encoded PNG data URI of the flattened meme"
    )

    width: int
    height: int
    top_text: str
    bottom_text: str


class ShareCompleteResponse(BaseModel):
    """Result of reporting a share outcome."""

    completed: bool
    persisted: bool
    meme_count: int


class ImageSourcesResponse(BaseModel):
    """Which picker sources clients may offer."""

    camera: bool
    library: bool


class MemeListItem(BaseModel):
    """A persisted meme."""

    top_text: str
    bottom_text: str
    created_at: datetime
    image_base64: str


class MemeListResponse(BaseModel):
    """All persisted memes, oldest first."""

    memes: list[MemeListItem]


# =============================================================================
# ERROR RESPONSE SCHEMA
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str = Field(..., description="Error type/code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(None, description="Additional error details")
