# retouch/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict
from typing import List, Tuple
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application Settings
    APP_NAME: str = "Retouch API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # CORS Settings (comma-separated strings to avoid JSON parsing in env)
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")
    ALLOWED_METHODS: str = os.environ.get("ALLOWED_METHODS", "GET,POST,PUT,DELETE,OPTIONS")
    ALLOWED_HEADERS: str = os.environ.get("ALLOWED_HEADERS", "*")

    # Middleware settings
    GZIP_MIN_SIZE: int = 500

    # Session storage
    SESSIONS_DIR: str = os.path.join("tmp", "sessions")

    # File Upload Settings
    MAX_FILE_SIZE: int = 100 * 1024 * 1024  # 100MB, camera originals are large
    MAX_REQUEST_SIZE: int = 500 * 1024 * 1024  # multipart uploads carry several originals
    ALLOWED_IMAGE_TYPES: List[str] = [
        "image/jpeg", "image/png", "image/heic", "image/heif", "image/webp", "image/tiff",
    ]
    HEIC_EXTENSIONS: List[str] = [".heic", ".heif"]
    THUMBNAIL_SIZE: Tuple[int, int] = (300, 300)
    THUMBNAIL_QUALITY: int = 80

    # External tools
    EXIFTOOL_PATH: str = "exiftool"
    MAGICK_PATH: str = "magick"
    TOOL_TIMEOUT_SECONDS: float = 60.0
    REQUIRE_EXTERNAL_TOOLS: bool = True

    # Export / reconciliation
    EXPORT_WORKERS: int = 4
    HEIC_DEFAULT_QUALITY: int = 85
    JPEG_DEFAULT_QUALITY: int = 90
    SIZE_TOLERANCE: float = 0.10
    QUALITY_SEARCH_ATTEMPTS: int = 6

    # Concurrency
    ARTIFACT_LOCK_TIMEOUT_SECONDS: float = 30.0

    # AI Settings
    GEMINI_API_KEY: str = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash-image")
    GEMINI_FALLBACK_MODELS: List[str] = ["gemini-2.5-flash-image", "gemini-3-pro-image-preview"]

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 120

    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def allowed_methods_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_METHODS)

    @property
    def allowed_headers_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_HEADERS)

@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
