"""
Sessions router: the HTTP adapter a browser UI drives.

Endpoints:
- POST / - Upload a PDF or DOCX and open an editing session
- GET /{session_id} - Session snapshot
- GET /{session_id}/pages/{index}/preview - Page preview PNG
- POST /{session_id}/viewport|tool|page|signature|keys|click - Editor state
- POST|PATCH|DELETE /{session_id}/annotations[/{annotation_id}] - Annotation CRUD
- POST /{session_id}/pointer/drag|resize|move|up - Pointer interactions
- POST /{session_id}/export - Download the edited PDF
- DELETE /{session_id} - Close the session
"""

import json
import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from docoverlay.config import settings
from docoverlay.services.overlay.display_scale import CanvasRect, ScreenPoint, Viewport
from docoverlay.services.overlay.editor_session import EditorSession
from docoverlay.services.overlay.errors import AssetError, GeometryError, InputError
from docoverlay.services.overlay.export_service import export_filename
from docoverlay.services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache()
def get_session_store() -> SessionStore:
    """Process-wide session store."""
    return SessionStore(settings)


def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> EditorSession:
    try:
        return store.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


@contextmanager
def _http_errors():
    """Map engine errors onto HTTP status codes."""
    try:
        yield
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AssetError as e:
        detail = str(e)
        if e.annotation_id:
            detail = f"{detail} (annotation {e.annotation_id})"
        raise HTTPException(status_code=502, detail=detail)
    except GeometryError as e:
        logger.error(f"Geometry invariant violated: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def content_disposition(filename: str) -> str:
    """
    Attachment header safe for any file name.

    Headers are latin-1 on the wire, so non-ASCII names go in the RFC 5987
    filename* parameter and filename= carries an ASCII stand-in.
    """
    fallback = "".join(
        ch if ch.isascii() and ch.isprintable() and ch not in '"\\' else "_"
        for ch in filename
    )
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


# =============================================================================
# Request / response models
# =============================================================================

class PointerModel(BaseModel):
    """Pointer position in screen pixels."""
    x: float
    y: float

    def to_point(self) -> ScreenPoint:
        return ScreenPoint(self.x, self.y)


class ViewportModel(BaseModel):
    """Container width and page rectangle observed by the browser."""
    container_width: float
    canvas_left: Optional[float] = None
    canvas_top: Optional[float] = None
    canvas_width: float = 0.0
    canvas_height: float = 0.0

    def to_viewport(self) -> Viewport:
        canvas = None
        if self.canvas_left is not None and self.canvas_top is not None:
            canvas = CanvasRect(
                left=self.canvas_left,
                top=self.canvas_top,
                width=self.canvas_width,
                height=self.canvas_height,
            )
        return Viewport(container_width=self.container_width, canvas=canvas)


class PageSize(BaseModel):
    width: float
    height: float


class SessionCreatedResponse(BaseModel):
    session_id: str
    filename: Optional[str]
    pages: list[PageSize]


class ToolRequest(BaseModel):
    tool: str


class PageRequest(BaseModel):
    index: int


class SignatureRequest(BaseModel):
    image_data: Optional[str] = None


class KeyRequest(BaseModel):
    key: str
    text_input_focused: bool = False


class ClickRequest(BaseModel):
    pointer: PointerModel
    viewport: ViewportModel


class CreateAnnotationRequest(BaseModel):
    kind: str
    x: float
    y: float


class AnnotationUpdateRequest(BaseModel):
    """Partial update; only the fields sent are applied."""
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    content: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    image_data: Optional[str] = None
    symbol_kind: Optional[str] = None
    color: Optional[str] = None


class DragRequest(BaseModel):
    annotation_id: str
    pointer: PointerModel
    viewport: ViewportModel


class ResizeRequest(DragRequest):
    corner: str


class MoveRequest(BaseModel):
    pointer: PointerModel
    viewport: ViewportModel


class InteractionResponse(BaseModel):
    started: bool
    state: str


class GeometryResponse(BaseModel):
    annotation_id: Optional[str] = None
    fields: Optional[dict[str, float]] = None
    state: str


# =============================================================================
# Session lifecycle
# =============================================================================

@router.post("", response_model=SessionCreatedResponse)
async def create_session(
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
):
    """
    Upload a document and open an editing session for it.

    PDF and DOCX are accepted. DOCX input is laid out as PDF first.
    """
    data = await file.read()
    if len(data) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {settings.max_upload_size_mb} MB upload limit",
        )

    session_id, session = store.create()
    try:
        with _http_errors():
            pages = await session.load_document(data, file.filename, file.content_type)
    except HTTPException:
        store.drop(session_id)
        raise

    return SessionCreatedResponse(
        session_id=session_id,
        filename=file.filename,
        pages=[PageSize(width=p.preview_width, height=p.preview_height) for p in pages],
    )


@router.get("/{session_id}")
async def get_snapshot(session: EditorSession = Depends(get_session)) -> dict[str, Any]:
    return session.snapshot()


@router.delete("/{session_id}")
async def close_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    if store.drop(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "closed", "session_id": session_id}


@router.get("/{session_id}/pages/{index}/preview")
async def get_page_preview(index: int, session: EditorSession = Depends(get_session)):
    if not 0 <= index < len(session.pages):
        raise HTTPException(status_code=404, detail="Page not found")
    page = session.pages[index]
    if page.image is None:
        raise HTTPException(status_code=404, detail="Preview not rendered")
    return Response(content=page.image, media_type="image/png")


# =============================================================================
# Editor state
# =============================================================================

@router.post("/{session_id}/viewport")
async def observe_viewport(body: ViewportModel, session: EditorSession = Depends(get_session)):
    return {"display_scale": session.observe_viewport(body.to_viewport())}


@router.post("/{session_id}/tool")
async def set_tool(body: ToolRequest, session: EditorSession = Depends(get_session)):
    with _http_errors():
        tool = session.set_tool(body.tool)
    return {"tool": tool.value}


@router.post("/{session_id}/page")
async def go_to_page(body: PageRequest, session: EditorSession = Depends(get_session)):
    with _http_errors():
        index = session.go_to_page(body.index)
    return {"current_page_index": index, "display_scale": session.tracker.scale}


@router.post("/{session_id}/signature")
async def set_signature(body: SignatureRequest, session: EditorSession = Depends(get_session)):
    session.set_signature_image(body.image_data)
    return {"has_signature_image": bool(body.image_data)}


@router.post("/{session_id}/keys")
async def press_key(body: KeyRequest, session: EditorSession = Depends(get_session)):
    with _http_errors():
        handled = session.handle_key(body.key, body.text_input_focused)
    return {
        "handled": handled,
        "tool": session.tool.value,
        "selected_id": session.selected_id,
    }


@router.post("/{session_id}/click")
async def click_background(body: ClickRequest, session: EditorSession = Depends(get_session)):
    """Click on empty page area: create with a creation tool, otherwise deselect."""
    with _http_errors():
        created = session.click_background(body.pointer.to_point(), body.viewport.to_viewport())
    return {
        "created": created.to_dict() if created is not None else None,
        "selected_id": session.selected_id,
        "tool": session.tool.value,
    }


# =============================================================================
# Annotations
# =============================================================================

@router.post("/{session_id}/annotations")
async def create_annotation(
    body: CreateAnnotationRequest,
    session: EditorSession = Depends(get_session),
):
    with _http_errors():
        annotation = session.create_annotation(body.kind, body.x, body.y)
    return annotation.to_dict()


@router.patch("/{session_id}/annotations/{annotation_id}")
async def update_annotation(
    annotation_id: str,
    body: AnnotationUpdateRequest,
    session: EditorSession = Depends(get_session),
):
    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    with _http_errors():
        annotation = session.update_annotation(annotation_id, **fields)
    return annotation.to_dict()


@router.delete("/{session_id}/annotations/{annotation_id}")
async def delete_annotation(annotation_id: str, session: EditorSession = Depends(get_session)):
    with _http_errors():
        session.delete_annotation(annotation_id)
    return {"status": "deleted", "annotation_id": annotation_id}


# =============================================================================
# Pointer interactions
# =============================================================================

@router.post("/{session_id}/pointer/drag", response_model=InteractionResponse)
async def begin_drag(body: DragRequest, session: EditorSession = Depends(get_session)):
    with _http_errors():
        started = session.begin_drag(
            body.annotation_id, body.pointer.to_point(), body.viewport.to_viewport()
        )
    return InteractionResponse(started=started, state=session.interaction_state.value)


@router.post("/{session_id}/pointer/resize", response_model=InteractionResponse)
async def begin_resize(body: ResizeRequest, session: EditorSession = Depends(get_session)):
    with _http_errors():
        started = session.begin_resize(
            body.annotation_id, body.corner, body.pointer.to_point(), body.viewport.to_viewport()
        )
    return InteractionResponse(started=started, state=session.interaction_state.value)


@router.post("/{session_id}/pointer/move", response_model=GeometryResponse)
async def pointer_move(body: MoveRequest, session: EditorSession = Depends(get_session)):
    with _http_errors():
        update = session.on_pointer_move(body.pointer.to_point(), body.viewport.to_viewport())
    if update is None:
        return GeometryResponse(state=session.interaction_state.value)
    return GeometryResponse(
        annotation_id=update.annotation_id,
        fields=update.as_fields(),
        state=session.interaction_state.value,
    )


@router.post("/{session_id}/pointer/up", response_model=InteractionResponse)
async def pointer_up(session: EditorSession = Depends(get_session)):
    session.on_pointer_up()
    return InteractionResponse(started=False, state=session.interaction_state.value)


# =============================================================================
# Export
# =============================================================================

@router.post("/{session_id}/export")
async def export_document(session: EditorSession = Depends(get_session)):
    """
    Bake all annotations into the document and return the PDF.

    The export report is returned in the X-Export-Report header.
    """
    with _http_errors():
        result = await session.export()

    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(export_filename(session.filename)),
            "Content-Length": str(len(result.pdf_bytes)),
            "X-Export-Report": json.dumps(result.report.to_dict()),
        },
    )
