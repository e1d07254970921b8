from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from ..application.services.convert_service import ConvertService
from ..application.services.rename_service import RenameService
from ..dependencies import get_convert_service, get_rename_service
from ..schemas.operations import ConvertRequest, ConvertResponse, RenameRequest, RenameResponse

router = APIRouter(prefix="/api", tags=["Operations"])


@router.post("/convert", response_model=ConvertResponse, response_model_by_alias=True)
async def convert_images(payload: ConvertRequest, convert_service: ConvertService = Depends(get_convert_service)):
    converted = await run_in_threadpool(convert_service.convert, payload)
    return ConvertResponse(converted=converted)


@router.post("/rename", response_model=RenameResponse, response_model_by_alias=True)
async def rename_preview(payload: RenameRequest, rename_service: RenameService = Depends(get_rename_service)):
    renames = await run_in_threadpool(rename_service.preview, payload)
    return RenameResponse(renames=renames)
