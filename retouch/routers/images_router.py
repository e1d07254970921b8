from typing import List

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from ..application.services.upload_service import UploadService
from ..dependencies import Services, get_services, get_upload_service
from ..exceptions import MissingArtifact
from ..infrastructure.storage.session_store import mime_for_ext
from ..schemas.artifact import DeleteResponse, UploadResponse

router = APIRouter(prefix="/api", tags=["Images"])


@router.post("/upload", response_model=UploadResponse, response_model_by_alias=True)
async def upload_images(
    session_id: str = Form(..., alias="sessionId"),
    files: List[UploadFile] = File(...),
    upload_service: UploadService = Depends(get_upload_service),
):
    return await upload_service.upload_files(session_id, files)


@router.get("/image")
async def get_image(
    session_id: str = Query(..., alias="sessionId"),
    file_id: str = Query(..., alias="id"),
    services: Services = Depends(get_services),
):
    resolved = await run_in_threadpool(services.store.read, session_id, file_id)
    data = await run_in_threadpool(resolved.read)
    return Response(
        content=data,
        media_type=mime_for_ext(resolved.ext),
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/thumbnail")
async def get_thumbnail(
    session_id: str = Query(..., alias="sessionId"),
    file_id: str = Query(..., alias="id"),
    services: Services = Depends(get_services),
):
    resolved = await run_in_threadpool(services.store.resolve_thumbnail, session_id, file_id)
    if resolved is None:
        raise MissingArtifact(f"Thumbnail not found: {file_id}")
    data = await run_in_threadpool(resolved.read)
    return Response(content=data, media_type="image/jpeg", headers={"Cache-Control": "public, max-age=86400"})


@router.delete("/delete", response_model=DeleteResponse)
async def delete_image(
    session_id: str = Query(..., alias="sessionId"),
    file_id: str = Query(..., alias="id"),
    upload_service: UploadService = Depends(get_upload_service),
):
    removed = await run_in_threadpool(upload_service.delete, session_id, file_id)
    return DeleteResponse(deleted=removed)


@router.delete("/cleanup")
async def cleanup_session(
    session_id: str = Query(..., alias="sessionId"),
    upload_service: UploadService = Depends(get_upload_service),
):
    await run_in_threadpool(upload_service.cleanup, session_id)
    return {"success": True}
