"""
Meme editing API routes.

This module defines the REST API endpoints for the meme editing screen.
A client opens a session and drives it the way the screen is driven:
1. Pick a photo (camera or library) -> Backend decodes it
2. Edit the top and bottom captions
3. Render / share -> Backend flattens photo + captions into a PNG
4. Report the share outcome -> Backend optionally persists the meme
"""

import base64
import logging
from io import BytesIO
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from PIL import Image

from mememe.config import get_settings
from mememe.schemas.meme import (
    CaptionPosition,
    CaptionTextRequest,
    CaptionView,
    ErrorResponse,
    ImageSourceKind,
    ImageSourcesResponse,
    KeyboardEvent,
    MemeListItem,
    MemeListResponse,
    PickRequest,
    RenderResponse,
    SessionStateResponse,
    ShareCompleteResponse,
    ShareOutcome,
)
from mememe.services.captioned_image import Caption, NoSourceImageError
from mememe.services.image_source import (
    ImageDecodeError,
    ImageSourceConnectionError,
    ImageSourceUnavailableError,
    UploadImageSource,
    get_image_source,
)
from mememe.services.meme_store import MemeStore, get_meme_store
from mememe.services.session import (
    EditingSession,
    PickInFlightError,
    SessionClosedError,
    SessionLimitError,
    SessionManager,
    SessionNotFoundError,
    ShareNotStartedError,
    get_session_manager,
)

# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags
router = APIRouter(
    prefix="/api/v1",
    tags=["meme"],
)

SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]

NOT_FOUND_RESPONSE = {404: {"description": "Unknown session", "model": ErrorResponse}}
NO_IMAGE_RESPONSE = {409: {"description": "No source image picked yet", "model": ErrorResponse}}


# =============================================================================
# HELPERS
# =============================================================================

def image_to_base64(img: Image.Image) -> str:
    """Convert PIL Image to a PNG data URI."""
    buffered = BytesIO()
    img.save(buffered, format="PNG")
    b64 = base64.b64encode(buffered.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{b64}"


def _get_session(manager: SessionManager, session_id: str) -> EditingSession:
    try:
        return manager.get(session_id)
    except SessionNotFoundError as e:
        logger.error(f"Session lookup failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "session_not_found",
                "message": str(e),
                "details": {"session_id": session_id},
            }
        )


def _caption_view(caption: Caption) -> CaptionView:
    return CaptionView(
        text=caption.text,
        state=caption.state,
        is_placeholder=caption.is_placeholder,
    )


def _session_state(session: EditingSession) -> SessionStateResponse:
    meme = session.meme
    return SessionStateResponse(
        session_id=session.session_id,
        share_readiness=meme.share_readiness,
        can_share=meme.can_share,
        has_source_image=meme.source_image is not None,
        has_rendered_image=meme.rendered_image is not None,
        top_caption=_caption_view(meme.top_caption),
        bottom_caption=_caption_view(meme.bottom_caption),
        active_caption=session.active_caption,
        view_offset_y=session.view_offset_y,
        pick_in_flight=session.pick_in_flight is not None,
    )


def _no_source_image(e: NoSourceImageError) -> HTTPException:
    logger.error(f"Render without source image: {e}")
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "no_source_image",
            "message": str(e),
            "details": {"action": "Pick an image from the camera or library first"},
        }
    )


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@router.post(
    "/sessions",
    response_model=SessionStateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={429: {"description": "Too many open sessions", "model": ErrorResponse}},
    summary="Open an editing session",
)
async def create_session(manager: SessionManagerDep) -> SessionStateResponse:
    """Open a fresh session: no image, placeholder captions, sharing disabled."""
    try:
        session = manager.create()
    except SessionLimitError as e:
        logger.error(f"Session limit reached: {e}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "session_limit",
                "message": str(e),
                "details": {"open_sessions": len(manager)},
            }
        )
    return _session_state(session)


@router.get(
    "/sessions/{session_id}",
    response_model=SessionStateResponse,
    responses=NOT_FOUND_RESPONSE,
    summary="Get session state",
)
async def get_session(session_id: str, manager: SessionManagerDep) -> SessionStateResponse:
    return _session_state(_get_session(manager, session_id))


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND_RESPONSE,
    summary="Close an editing session",
)
async def close_session(session_id: str, manager: SessionManagerDep) -> None:
    _get_session(manager, session_id)
    manager.close(session_id)


@router.post(
    "/sessions/{session_id}/cancel",
    response_model=SessionStateResponse,
    responses=NOT_FOUND_RESPONSE,
    summary="Reset the session",
    description="Cancel button: drops the image and restores both placeholder captions.",
)
async def cancel_session(session_id: str, manager: SessionManagerDep) -> SessionStateResponse:
    session = _get_session(manager, session_id)
    session.cancel()
    return _session_state(session)


# =============================================================================
# IMAGE PICKING
# =============================================================================

@router.get(
    "/image-sources",
    response_model=ImageSourcesResponse,
    summary="Available picker sources",
    description="Clients should only offer the pickers reported as available.",
)
async def image_sources(
    image_source: Annotated[UploadImageSource, Depends(get_image_source)],
) -> ImageSourcesResponse:
    return ImageSourcesResponse(
        camera=image_source.is_available(ImageSourceKind.CAMERA),
        library=image_source.is_available(ImageSourceKind.LIBRARY),
    )


@router.post(
    "/sessions/{session_id}/pick",
    response_model=SessionStateResponse,
    responses={
        **NOT_FOUND_RESPONSE,
        400: {"description": "Unavailable source or unreadable image", "model": ErrorResponse},
        409: {"description": "A pick is already in progress", "model": ErrorResponse},
        503: {"description": "Image URL could not be fetched", "model": ErrorResponse},
    },
    summary="Pick a source image",
    description="""
    Deliver the result of the camera or library picker.

    Send the photo as `image_base64` or `image_url`. Sending neither means
    the user cancelled the picker; the session state is then left unchanged.
    """,
)
async def pick_image(
    session_id: str,
    request: PickRequest,
    manager: SessionManagerDep,
    image_source: Annotated[UploadImageSource, Depends(get_image_source)],
) -> SessionStateResponse:
    session = _get_session(manager, session_id)

    logger.info(
        f"Pick request for session {session_id}: kind={request.kind.value}, "
        f"cancelled={request.cancelled}"
    )

    try:
        await session.request_pick(
            request.kind,
            image_source,
            image_base64=request.image_base64,
            image_url=request.image_url,
        )

    except ImageSourceUnavailableError as e:
        logger.error(f"Image source unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "image_source_unavailable",
                "message": str(e),
                "details": {"kind": e.kind.value},
            }
        )

    except ImageDecodeError as e:
        logger.error(f"Image decode error: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "image_decode_error",
                "message": str(e),
                "details": None,
            }
        )

    except ImageSourceConnectionError as e:
        logger.error(f"Image fetch error: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "image_source_connection_error",
                "message": str(e),
                "details": {"image_url": request.image_url},
            }
        )

    except (PickInFlightError, SessionClosedError) as e:
        logger.error(f"Pick rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "pick_rejected",
                "message": str(e),
                "details": None,
            }
        )

    return _session_state(session)


# =============================================================================
# CAPTIONS AND KEYBOARD
# =============================================================================

@router.post(
    "/sessions/{session_id}/captions/end",
    response_model=SessionStateResponse,
    responses=NOT_FOUND_RESPONSE,
    summary="End caption editing",
)
async def end_editing(session_id: str, manager: SessionManagerDep) -> SessionStateResponse:
    session = _get_session(manager, session_id)
    session.end_editing()
    return _session_state(session)


@router.post(
    "/sessions/{session_id}/captions/{which}/begin",
    response_model=SessionStateResponse,
    responses=NOT_FOUND_RESPONSE,
    summary="Begin editing a caption",
    description="Clears the placeholder text the first time a caption is edited.",
)
async def begin_editing(
    session_id: str,
    which: CaptionPosition,
    manager: SessionManagerDep,
) -> SessionStateResponse:
    session = _get_session(manager, session_id)
    session.begin_editing(which)
    return _session_state(session)


@router.put(
    "/sessions/{session_id}/captions/{which}",
    response_model=SessionStateResponse,
    responses=NOT_FOUND_RESPONSE,
    summary="Set caption text",
)
async def set_caption_text(
    session_id: str,
    which: CaptionPosition,
    request: CaptionTextRequest,
    manager: SessionManagerDep,
) -> SessionStateResponse:
    session = _get_session(manager, session_id)
    session.set_caption_text(which, request.text)
    return _session_state(session)


@router.post(
    "/sessions/{session_id}/keyboard",
    response_model=SessionStateResponse,
    responses=NOT_FOUND_RESPONSE,
    summary="Forward a keyboard notification",
    description="Will-show while the bottom caption is edited shifts the view up by the keyboard height.",
)
async def keyboard_event(
    session_id: str,
    event: KeyboardEvent,
    manager: SessionManagerDep,
) -> SessionStateResponse:
    session = _get_session(manager, session_id)
    session.keyboard_events.publish(event)
    return _session_state(session)


# =============================================================================
# RENDERING AND SHARING
# =============================================================================

def _render_response(session: EditingSession, image: Image.Image) -> RenderResponse:
    return RenderResponse(
        image_base64=image_to_base64(image),
        width=image.width,
        height=image.height,
        top_text=session.meme.top_caption.text,
        bottom_text=session.meme.bottom_caption.text,
    )


@router.post(
    "/sessions/{session_id}/render",
    response_model=RenderResponse,
    responses={**NOT_FOUND_RESPONSE, **NO_IMAGE_RESPONSE},
    summary="Render the meme",
)
async def render_meme(session_id: str, manager: SessionManagerDep) -> RenderResponse:
    session = _get_session(manager, session_id)
    try:
        image = session.render()
    except NoSourceImageError as e:
        raise _no_source_image(e)
    return _render_response(session, image)


@router.post(
    "/sessions/{session_id}/share",
    response_model=RenderResponse,
    responses={**NOT_FOUND_RESPONSE, **NO_IMAGE_RESPONSE},
    summary="Start sharing the meme",
    description="""
    Render the meme for the client's share sheet.

    Only allowed once an image has been picked. Report the share sheet's
    result to `/share/complete` afterwards.
    """,
)
async def share_meme(session_id: str, manager: SessionManagerDep) -> RenderResponse:
    session = _get_session(manager, session_id)
    try:
        snapshot = session.share()
    except NoSourceImageError as e:
        raise _no_source_image(e)
    logger.info(f"Session {session_id}: meme handed to share sheet")
    return _render_response(session, snapshot.rendered_image)


@router.post(
    "/sessions/{session_id}/share/complete",
    response_model=ShareCompleteResponse,
    responses={
        **NOT_FOUND_RESPONSE,
        409: {"description": "No share in progress", "model": ErrorResponse},
    },
    summary="Report the share outcome",
)
async def complete_share(
    session_id: str,
    outcome: ShareOutcome,
    manager: SessionManagerDep,
    store: Annotated[MemeStore, Depends(get_meme_store)],
) -> ShareCompleteResponse:
    session = _get_session(manager, session_id)
    try:
        persisted = session.complete_share(outcome)
    except ShareNotStartedError as e:
        logger.error(f"Share completion rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "share_not_started",
                "message": str(e),
                "details": {"action": "Call /share before reporting its outcome"},
            }
        )
    return ShareCompleteResponse(
        completed=outcome.completed,
        persisted=persisted,
        meme_count=len(store),
    )


@router.get(
    "/memes",
    response_model=MemeListResponse,
    summary="List persisted memes",
)
async def list_memes(store: Annotated[MemeStore, Depends(get_meme_store)]) -> MemeListResponse:
    return MemeListResponse(
        memes=[
            MemeListItem(
                top_text=meme.top_text,
                bottom_text=meme.bottom_text,
                created_at=meme.created_at,
                image_base64=image_to_base64(meme.rendered_image),
            )
            for meme in store.list()
        ]
    )


# =============================================================================
# HEALTH
# =============================================================================

@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Check if the backend service is running.",
)
async def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: Health status
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get(
    "/health/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Check if the backend is ready to accept requests (configs loaded).",
)
async def readiness_check(
    manager: SessionManagerDep,
    image_source: Annotated[UploadImageSource, Depends(get_image_source)],
):
    """
    Readiness check that reports the loaded configuration.

    The service is ready when at least one picker source is available
    and the session limit has not been reached.
    """
    settings = get_settings()

    camera = image_source.is_available(ImageSourceKind.CAMERA)
    library = image_source.is_available(ImageSourceKind.LIBRARY)
    has_capacity = len(manager) < settings.MAX_SESSIONS
    ready = (camera or library) and has_capacity

    return {
        "status": "ready" if ready else "not_ready",
        "configuration": {
            "camera_available": camera,
            "library_available": library,
            "persist_on_share": settings.PERSIST_ON_SHARE,
            "font_path_configured": bool(settings.FONT_PATH),
            "surface": f"{settings.SURFACE_WIDTH}x{settings.SURFACE_HEIGHT}",
            "open_sessions": len(manager),
        },
        "warnings": [
            msg for msg in [
                None if (camera or library) else (
                    "Set CAMERA_AVAILABLE or PHOTO_LIBRARY_AVAILABLE so clients can pick images"
                ),
                None if has_capacity else "MAX_SESSIONS reached",
            ] if msg
        ]
    }
