import json
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from ..application.services.export_service import ExportService
from ..dependencies import get_export_service
from ..schemas.export import BatchExportRequest, BulkExportRequest, ExportVersionRequest

router = APIRouter(prefix="/api", tags=["Export"])


def _attachment(filename: str) -> str:
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("\"", "")
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(filename)}'


def _header_safe(text: str) -> str:
    return " ".join(text.split()).encode("ascii", "replace").decode("ascii")


@router.post("/export-version")
async def export_version(payload: ExportVersionRequest, export_service: ExportService = Depends(get_export_service)):
    result = await run_in_threadpool(export_service.export_version, payload)
    headers = {
        "Content-Disposition": _attachment(result.filename),
        "X-Export-Quality": str(result.quality),
    }
    if result.warnings:
        headers["X-Export-Warning"] = _header_safe(" | ".join(result.warnings))
    return Response(content=result.data, media_type=result.content_type, headers=headers)


@router.post("/export-version/batch")
async def export_versions(payload: BatchExportRequest, export_service: ExportService = Depends(get_export_service)):
    results = await run_in_threadpool(export_service.export_batch, payload.items)
    archive, reports = await run_in_threadpool(export_service.bundle_batch, results)
    report = [r.model_dump(by_alias=True) for r in reports]
    failed = sum(1 for r in reports if not r.success)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": _attachment("exports.zip"),
            "X-Export-Failed": str(failed),
            "X-Export-Report": json.dumps(report, separators=(",", ":")),
        },
    )


@router.post("/export")
async def bulk_export(payload: BulkExportRequest, export_service: ExportService = Depends(get_export_service)):
    entry = await run_in_threadpool(
        export_service.bulk_export, payload.session_id, payload.image_ids, payload.strip_metadata
    )
    report = [r.model_dump(by_alias=True) for r in entry.reports]
    return Response(
        content=entry.data,
        media_type=entry.content_type,
        headers={
            "Content-Disposition": _attachment(entry.name),
            "X-Export-Failed": str(sum(1 for r in entry.reports if not r.success)),
            "X-Export-Report": json.dumps(report, separators=(",", ":")),
        },
    )
