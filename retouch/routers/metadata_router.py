from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from ..application.services.metadata_service import MetadataService
from ..dependencies import get_metadata_service
from ..schemas.operations import MetadataResponse, MetadataUpdateRequest

router = APIRouter(prefix="/api/metadata", tags=["Metadata"])


@router.get("", response_model=MetadataResponse, response_model_by_alias=True)
async def read_metadata(
    session_id: str = Query(..., alias="sessionId"),
    image_id: str = Query(..., alias="id"),
    metadata_service: MetadataService = Depends(get_metadata_service),
):
    result = await run_in_threadpool(metadata_service.read, session_id, image_id)
    return MetadataResponse(metadata=result.metadata, warnings=[result.warning] if result.warning else [])


@router.put("", response_model=MetadataResponse, response_model_by_alias=True)
async def update_metadata(
    payload: MetadataUpdateRequest,
    metadata_service: MetadataService = Depends(get_metadata_service),
):
    metadata = await run_in_threadpool(
        metadata_service.update, payload.session_id, payload.image_id, payload.changes
    )
    return MetadataResponse(metadata=metadata)
