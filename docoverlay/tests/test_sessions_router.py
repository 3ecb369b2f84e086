"""
API tests for the sessions router.

Run with: python -m pytest docoverlay/tests/test_sessions_router.py -v
"""

import json
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from docoverlay.config import Settings
from docoverlay.main import app
from docoverlay.routers.sessions import content_disposition, get_session_store
from docoverlay.services.session_store import SessionStore

VIEWPORT = {"container_width": 2000, "canvas_left": 0, "canvas_top": 0}


@pytest.fixture
def store():
    return SessionStore(Settings(PREVIEW_RENDER_SCALE=1.0, TEXT_METRICS_MODE="heuristic"))


@pytest.fixture
def client(store):
    app.dependency_overrides[get_session_store] = lambda: store
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def session_id(client, pdf_bytes):
    response = client.post(
        "/api/sessions",
        files={"file": ("contract.pdf", pdf_bytes, "application/pdf")},
    )
    assert response.status_code == 200
    return response.json()["session_id"]


class TestSessionLifecycle:
    """Tests for upload, snapshot and close."""

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_upload(self, client, pdf_bytes):
        response = client.post(
            "/api/sessions",
            files={"file": ("contract.pdf", pdf_bytes, "application/pdf")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["filename"] == "contract.pdf"
        assert body["pages"] == [{"width": 612, "height": 792}] * 2

    def test_upload_docx(self, client, docx_bytes):
        response = client.post(
            "/api/sessions",
            files={"file": ("agreement.docx", docx_bytes, "application/octet-stream")},
        )

        assert response.status_code == 200
        assert response.json()["pages"][0] == {"width": 794, "height": 1123}

    def test_upload_unsupported(self, client, store):
        response = client.post(
            "/api/sessions",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        assert len(store) == 0

    def test_unknown_session(self, client):
        assert client.get("/api/sessions/nope").status_code == 404

    def test_snapshot(self, client, session_id):
        snap = client.get(f"/api/sessions/{session_id}").json()

        assert snap["filename"] == "contract.pdf"
        assert snap["current_page_index"] == 0
        assert snap["annotations"] == []

    def test_preview(self, client, session_id):
        response = client.get(f"/api/sessions/{session_id}/pages/1/preview")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert client.get(f"/api/sessions/{session_id}/pages/5/preview").status_code == 404

    def test_close(self, client, session_id):
        assert client.delete(f"/api/sessions/{session_id}").status_code == 200
        assert client.get(f"/api/sessions/{session_id}").status_code == 404
        assert client.delete(f"/api/sessions/{session_id}").status_code == 404


class TestEditorState:
    """Tests for tool, page, key and click endpoints."""

    def test_tool_and_keys(self, client, session_id):
        assert client.post(f"/api/sessions/{session_id}/tool", json={"tool": "symbol"}).json()["tool"] == "symbol"
        assert client.post(f"/api/sessions/{session_id}/tool", json={"tool": "lasso"}).status_code == 422

        body = client.post(f"/api/sessions/{session_id}/keys", json={"key": "t"}).json()
        assert body == {"handled": True, "tool": "text", "selected_id": None}

    def test_page_clamped(self, client, session_id):
        body = client.post(f"/api/sessions/{session_id}/page", json={"index": 9}).json()
        assert body["current_page_index"] == 1

    def test_viewport_scale(self, client, session_id):
        body = client.post(f"/api/sessions/{session_id}/viewport", json={"container_width": 322}).json()
        assert body["display_scale"] == pytest.approx(0.5)

    def test_click_creates_with_tool(self, client, session_id):
        client.post(f"/api/sessions/{session_id}/tool", json={"tool": "symbol"})

        body = client.post(
            f"/api/sessions/{session_id}/click",
            json={"pointer": {"x": 40, "y": 60}, "viewport": VIEWPORT},
        ).json()

        assert body["created"]["kind"] == "symbol"
        assert (body["created"]["x"], body["created"]["y"]) == (40, 60)
        assert body["tool"] == "select"


class TestAnnotations:
    """Tests for annotation CRUD."""

    def test_create_update_delete(self, client, session_id):
        created = client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"kind": "symbol", "x": 10, "y": 10},
        ).json()
        ann_id = created["id"]

        updated = client.patch(
            f"/api/sessions/{session_id}/annotations/{ann_id}",
            json={"color": "#ff0000", "width": 48},
        ).json()
        assert updated["color"] == "#ff0000"
        assert updated["width"] == 48
        assert updated["height"] == 24

        assert client.delete(f"/api/sessions/{session_id}/annotations/{ann_id}").status_code == 200
        assert client.delete(f"/api/sessions/{session_id}/annotations/{ann_id}").status_code == 404

    def test_text_size_rejected(self, client, session_id):
        ann_id = client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"kind": "text", "x": 10, "y": 10},
        ).json()["id"]

        response = client.patch(
            f"/api/sessions/{session_id}/annotations/{ann_id}",
            json={"width": 300},
        )
        assert response.status_code == 422

    def test_image_needs_signature(self, client, session_id, png_data_url):
        url = f"/api/sessions/{session_id}/annotations"
        assert client.post(url, json={"kind": "image", "x": 0, "y": 0}).status_code == 422

        client.post(f"/api/sessions/{session_id}/signature", json={"image_data": png_data_url})
        created = client.post(url, json={"kind": "image", "x": 0, "y": 0}).json()
        assert (created["width"], created["height"]) == (150, 75)


class TestPointerAndExport:
    """Tests for interactions and export."""

    def test_drag(self, client, session_id):
        ann_id = client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"kind": "symbol", "x": 10, "y": 10},
        ).json()["id"]

        started = client.post(
            f"/api/sessions/{session_id}/pointer/drag",
            json={"annotation_id": ann_id, "pointer": {"x": 15, "y": 15}, "viewport": VIEWPORT},
        ).json()
        assert started == {"started": True, "state": "dragging"}

        moved = client.post(
            f"/api/sessions/{session_id}/pointer/move",
            json={"pointer": {"x": 60, "y": 60}, "viewport": VIEWPORT},
        ).json()
        assert moved["fields"] == {"x": 55, "y": 55}

        assert client.post(f"/api/sessions/{session_id}/pointer/up").json()["state"] == "idle"

    def test_resize_text_refused(self, client, session_id):
        ann_id = client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"kind": "text", "x": 10, "y": 10},
        ).json()["id"]

        body = client.post(
            f"/api/sessions/{session_id}/pointer/resize",
            json={
                "annotation_id": ann_id,
                "corner": "bottom-right",
                "pointer": {"x": 0, "y": 0},
                "viewport": VIEWPORT,
            },
        ).json()
        assert body == {"started": False, "state": "idle"}

    def test_export(self, client, session_id):
        client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"kind": "text", "x": 20, "y": 20},
        )

        response = client.post(f"/api/sessions/{session_id}/export")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="edited_contract.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")
        report = json.loads(response.headers["x-export-report"])
        assert report["text_runs"] == 1

    def test_export_bad_asset(self, client, session_id):
        client.post(
            f"/api/sessions/{session_id}/signature",
            json={"image_data": "data:image/png;base64,AAAA"},
        )
        client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"kind": "image", "x": 0, "y": 0},
        )

        assert client.post(f"/api/sessions/{session_id}/export").status_code == 502

    def test_export_non_ascii_filename(self, client, pdf_bytes):
        session_id = client.post(
            "/api/sessions",
            files={"file": ("договор.pdf", pdf_bytes, "application/pdf")},
        ).json()["session_id"]

        response = client.post(f"/api/sessions/{session_id}/export")

        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert 'filename="edited_' in disposition
        assert f"filename*=UTF-8''{quote('edited_договор.pdf', safe='')}" in disposition


class TestContentDisposition:
    """Tests for the attachment header."""

    def test_ascii_name_unchanged(self):
        assert content_disposition("edited_contract.pdf") == 'attachment; filename="edited_contract.pdf"'

    def test_non_ascii_name_encoded(self):
        header = content_disposition("edited_契約.pdf")

        assert header.startswith('attachment; filename="edited___.pdf"; ')
        assert header.endswith("filename*=UTF-8''edited_%E5%A5%91%E7%B4%84.pdf")
        header.encode("latin-1")

    def test_quotes_replaced_in_fallback(self):
        header = content_disposition('edited_"x".pdf')
        assert 'filename="edited__x_.pdf"' in header
