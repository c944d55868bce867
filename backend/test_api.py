import base64
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from mememe.config import Settings
from mememe.main import app
from mememe.services.image_source import UploadImageSource, get_image_source
from mememe.services.meme_store import MemeStore, get_meme_store
from mememe.services.session import SessionManager, get_session_manager


def png_base64(size=(60, 60), color="red"):
    buffered = BytesIO()
    Image.new("RGB", size, color).save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode("utf-8")


def decode_data_uri(data_uri):
    assert data_uri.startswith("data:image/png;base64,")
    raw = base64.b64decode(data_uri.split(",", 1)[1])
    return Image.open(BytesIO(raw))


@pytest.fixture
def settings():
    return Settings(SURFACE_WIDTH=200, SURFACE_HEIGHT=300, CAMERA_AVAILABLE=False, MAX_SESSIONS=5)


@pytest.fixture
def store():
    return MemeStore()


@pytest.fixture
def client(settings, store):
    manager = SessionManager(settings=settings, store=store)
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_meme_store] = lambda: store
    app.dependency_overrides[get_image_source] = lambda: UploadImageSource(settings)
    yield TestClient(app)
    app.dependency_overrides.clear()


def open_session(client):
    response = client.post("/api/v1/sessions")
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_reports_sources(client):
    body = client.get("/api/v1/health/ready").json()
    assert body["status"] == "ready"
    assert body["configuration"]["camera_available"] is False
    assert body["configuration"]["library_available"] is True


def test_image_sources(client):
    assert client.get("/api/v1/image-sources").json() == {"camera": False, "library": True}


def test_new_session_cannot_share(client):
    state = open_session(client)
    assert state["share_readiness"] == "no_image"
    assert state["can_share"] is False
    assert state["top_caption"] == {"text": "TOP", "state": "placeholder", "is_placeholder": True}
    assert state["bottom_caption"]["text"] == "BOTTOM"


def test_unknown_session_is_404(client):
    response = client.get("/api/v1/sessions/nope")
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "session_not_found"


def test_edit_render_share_flow(client, store):
    session_id = open_session(client)["session_id"]
    base = f"/api/v1/sessions/{session_id}"

    state = client.post(f"{base}/pick", json={"kind": "library", "image_base64": png_base64()}).json()
    assert state["can_share"] is True
    assert state["share_readiness"] == "image_ready"

    state = client.post(f"{base}/captions/top/begin").json()
    assert state["top_caption"] == {"text": "", "state": "editing", "is_placeholder": False}
    assert state["active_caption"] == "top"

    state = client.put(f"{base}/captions/top", json={"text": "LOL"}).json()
    assert state["top_caption"]["text"] == "LOL"

    render = client.post(f"{base}/render").json()
    assert render["top_text"] == "LOL"
    assert render["bottom_text"] == "BOTTOM"
    assert (render["width"], render["height"]) == (200, 300)
    assert decode_data_uri(render["image_base64"]).size == (200, 300)

    share = client.post(f"{base}/share")
    assert share.status_code == 200
    assert share.json()["image_base64"] == render["image_base64"]

    done = client.post(f"{base}/share/complete", json={"completed": True, "activity_type": "message"})
    assert done.json() == {"completed": True, "persisted": True, "meme_count": 1}

    memes = client.get("/api/v1/memes").json()["memes"]
    assert len(memes) == 1
    assert memes[0]["top_text"] == "LOL"
    assert memes[0]["bottom_text"] == "BOTTOM"


def test_render_and_share_require_image(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    for path in ("render", "share"):
        response = client.post(f"{base}/{path}")
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "no_source_image"


def test_share_complete_without_share_is_409(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    response = client.post(f"{base}/share/complete", json={"completed": True})
    assert response.status_code == 409


def test_unavailable_camera_is_400_and_state_unchanged(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    response = client.post(f"{base}/pick", json={"kind": "camera", "image_base64": png_base64()})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "image_source_unavailable"
    assert client.get(base).json()["share_readiness"] == "no_image"


def test_bad_image_is_400(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    payload = base64.b64encode(b"not an image").decode("utf-8")
    response = client.post(f"{base}/pick", json={"kind": "library", "image_base64": payload})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "image_decode_error"


def test_oversized_pixel_count_is_400(client, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    response = client.post(f"{base}/pick", json={"kind": "library", "image_base64": png_base64(size=(100, 100))})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "image_decode_error"
    assert client.get(base).json()["share_readiness"] == "no_image"


def test_cancelled_pick_keeps_no_image(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    state = client.post(f"{base}/pick", json={"kind": "library"}).json()
    assert state["share_readiness"] == "no_image"


def test_pick_with_both_payloads_is_rejected(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    response = client.post(
        f"{base}/pick",
        json={"kind": "library", "image_base64": png_base64(), "image_url": "https://example.com/a.png"},
    )
    assert response.status_code == 422


def test_keyboard_events(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    client.post(f"{base}/captions/bottom/begin")

    state = client.post(f"{base}/keyboard", json={"type": "will_show", "height": 216}).json()
    assert state["view_offset_y"] == -216.0

    state = client.post(f"{base}/keyboard", json={"type": "will_hide"}).json()
    assert state["view_offset_y"] == 0.0

    state = client.post(f"{base}/captions/end").json()
    assert state["active_caption"] is None


def test_cancel_resets_session(client):
    base = f"/api/v1/sessions/{open_session(client)['session_id']}"
    client.post(f"{base}/pick", json={"kind": "library", "image_base64": png_base64()})
    client.post(f"{base}/captions/top/begin")
    client.put(f"{base}/captions/top", json={"text": "LOL"})

    state = client.post(f"{base}/cancel").json()

    assert state["can_share"] is False
    assert state["top_caption"] == {"text": "TOP", "state": "placeholder", "is_placeholder": True}


def test_close_session(client):
    session_id = open_session(client)["session_id"]
    assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/v1/sessions/{session_id}").status_code == 404


def test_session_limit(client, settings):
    for _ in range(settings.MAX_SESSIONS):
        open_session(client)
    response = client.post("/api/v1/sessions")
    assert response.status_code == 429
    assert response.json()["detail"]["error"] == "session_limit"
