from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from ..application.services.edit_service import EditService
from ..dependencies import get_edit_service
from ..infrastructure.storage.session_store import mime_for_ext
from ..schemas.edit import AIEditRequest, EditResponse, HistoryRequest, HistoryView, MaskDrawRequest, RevertRequest

router = APIRouter(prefix="/api", tags=["Editing"])


@router.post("/gemini/edit", response_model=EditResponse, response_model_by_alias=True)
async def ai_edit(payload: AIEditRequest, edit_service: EditService = Depends(get_edit_service)):
    return await run_in_threadpool(edit_service.ai_edit, payload)


@router.post("/edit/mask", response_model=HistoryView, response_model_by_alias=True)
async def draw_mask(payload: MaskDrawRequest, edit_service: EditService = Depends(get_edit_service)):
    return await run_in_threadpool(edit_service.mask_draw, payload)


@router.get("/history", response_model=HistoryView, response_model_by_alias=True)
async def get_history(
    session_id: str = Query(..., alias="sessionId"),
    image_id: str = Query(..., alias="id"),
    edit_service: EditService = Depends(get_edit_service),
):
    return await run_in_threadpool(edit_service.history_view, session_id, image_id)


@router.post("/history/undo", response_model=HistoryView, response_model_by_alias=True)
async def undo(payload: HistoryRequest, edit_service: EditService = Depends(get_edit_service)):
    return await run_in_threadpool(edit_service.undo, payload.session_id, payload.image_id)


@router.post("/history/redo", response_model=HistoryView, response_model_by_alias=True)
async def redo(payload: HistoryRequest, edit_service: EditService = Depends(get_edit_service)):
    return await run_in_threadpool(edit_service.redo, payload.session_id, payload.image_id)


@router.post("/history/revert", response_model=HistoryView, response_model_by_alias=True)
async def revert(payload: RevertRequest, edit_service: EditService = Depends(get_edit_service)):
    return await run_in_threadpool(edit_service.revert, payload.session_id, payload.image_id, payload.target_index)


@router.get("/history/current")
async def get_current_image(
    session_id: str = Query(..., alias="sessionId"),
    image_id: str = Query(..., alias="id"),
    edit_service: EditService = Depends(get_edit_service),
):
    current = await run_in_threadpool(edit_service.current_file, session_id, image_id)
    data = await run_in_threadpool(current.read)
    return Response(content=data, media_type=mime_for_ext(current.ext), headers={"Cache-Control": "no-store"})
