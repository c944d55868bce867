# Services package - editing core and its collaborators
from mememe.services.captioned_image import CaptionedImage
from mememe.services.image_source import UploadImageSource
from mememe.services.meme_store import MemeStore
from mememe.services.session import EditingSession, SessionManager
from mememe.services.surface import PillowSurface

__all__ = [
    "CaptionedImage",
    "UploadImageSource",
    "MemeStore",
    "EditingSession",
    "SessionManager",
    "PillowSurface",
]
