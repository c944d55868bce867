# Schemas package - Pydantic models for the editing core and the REST API
from mememe.schemas.meme import (
    CaptionPosition,
    CaptionState,
    ShareReadiness,
    ImageSourceKind,
    KeyboardEventType,
    MemeSnapshot,
    PickResult,
    KeyboardEvent,
    ShareOutcome,
)

__all__ = [
    "CaptionPosition",
    "CaptionState",
    "ShareReadiness",
    "ImageSourceKind",
    "KeyboardEventType",
    "MemeSnapshot",
    "PickResult",
    "KeyboardEvent",
    "ShareOutcome",
]
