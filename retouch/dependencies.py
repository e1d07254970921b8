# retouch/dependencies.py
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .application.ports.ai_editor import AIImageEditor
from .application.ports.metadata_tool import MetadataTool
from .application.services.convert_service import ConvertService
from .application.services.edit_service import EditService
from .application.services.export_service import ExportService
from .application.services.metadata_service import MetadataService
from .application.services.rename_service import RenameService
from .application.services.upload_service import UploadService
from .application.session_context import SessionRegistry
from .core.config import Settings
from .infrastructure.ai.gemini_editor import GeminiImageEditor
from .infrastructure.imaging.codec import RasterCodec
from .infrastructure.metadata.adapter import MetadataAdapter
from .infrastructure.metadata.exiftool import ExifTool
from .infrastructure.storage.session_store import SessionFileStore
from .infrastructure.tools.process import ToolRunner


@dataclass
class Services:
    store: SessionFileStore
    sessions: SessionRegistry
    codec: RasterCodec
    metadata: MetadataAdapter
    uploads: UploadService
    edits: EditService
    metadata_ops: MetadataService
    exports: ExportService
    conversions: ConvertService
    renames: RenameService


def build_services(
    settings: Settings,
    runner: Optional[ToolRunner] = None,
    metadata_tool: Optional[MetadataTool] = None,
    ai_editor: Optional[AIImageEditor] = None,
    codec: Optional[RasterCodec] = None,
) -> Services:
    """Wire every service from settings; tests pass fakes for the external collaborators."""
    runner = runner or ToolRunner(timeout=settings.TOOL_TIMEOUT_SECONDS)
    store = SessionFileStore(settings.SESSIONS_DIR)
    sessions = SessionRegistry(lock_timeout=settings.ARTIFACT_LOCK_TIMEOUT_SECONDS)
    codec = codec or RasterCodec(
        runner,
        magick=settings.MAGICK_PATH,
        thumbnail_size=settings.THUMBNAIL_SIZE,
        thumbnail_quality=settings.THUMBNAIL_QUALITY,
    )
    metadata = MetadataAdapter(metadata_tool or ExifTool(runner, exe=settings.EXIFTOOL_PATH))
    ai_editor = ai_editor or GeminiImageEditor(
        api_key=settings.GEMINI_API_KEY,
        default_model=settings.GEMINI_MODEL,
        fallback_models=settings.GEMINI_FALLBACK_MODELS,
    )
    return Services(
        store=store,
        sessions=sessions,
        codec=codec,
        metadata=metadata,
        uploads=UploadService(
            store, codec, metadata, sessions,
            allowed_types=settings.ALLOWED_IMAGE_TYPES,
            heic_extensions=settings.HEIC_EXTENSIONS,
            max_file_size=settings.MAX_FILE_SIZE,
        ),
        edits=EditService(store, codec, ai_editor, sessions),
        metadata_ops=MetadataService(store, codec, metadata, sessions),
        exports=ExportService(
            store, codec, metadata, sessions,
            heic_default_quality=settings.HEIC_DEFAULT_QUALITY,
            jpeg_default_quality=settings.JPEG_DEFAULT_QUALITY,
            size_tolerance=settings.SIZE_TOLERANCE,
            quality_search_attempts=settings.QUALITY_SEARCH_ATTEMPTS,
            workers=settings.EXPORT_WORKERS,
        ),
        conversions=ConvertService(store, codec, metadata, sessions),
        renames=RenameService(store, sessions),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_upload_service(request: Request) -> UploadService:
    return get_services(request).uploads


def get_edit_service(request: Request) -> EditService:
    return get_services(request).edits


def get_metadata_service(request: Request) -> MetadataService:
    return get_services(request).metadata_ops


def get_export_service(request: Request) -> ExportService:
    return get_services(request).exports


def get_convert_service(request: Request) -> ConvertService:
    return get_services(request).conversions


def get_rename_service(request: Request) -> RenameService:
    return get_services(request).renames
