"""
Centralized application settings using Pydantic.

All environment variables are read once at startup and validated.
Use this instead of scattered os.getenv() calls throughout the codebase.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings


class OCRSettings(BaseSettings):
    """OCR engine and rasterization configuration."""

    TESSERACT_CMD: Optional[str] = None
    OCR_DEFAULT_LANGUAGE: str = "eng"
    OCR_CALL_TIMEOUT_SECONDS: float = 60.0
    OCR_RASTER_DPI: int = 150
    OCR_MAX_PAGES: int = 100
    OCR_EXTRA_DENOISE_VARIANT: bool = False

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class LLMSettings(BaseSettings):
    """OpenAI-compatible chat completion endpoint and model fallback chain."""

    LLM_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_API_KEY: Optional[SecretStr] = None
    LLM_PRIMARY_MODEL: str = "mistralai/mistral-nemo:free"
    LLM_FALLBACK_MODELS: str = (
        "meta-llama/llama-4-maverick:free,"
        "nousresearch/deephermes-3-llama-3-8b-preview:free,"
        "google/gemma-3-4b-it:free,"
        "meta-llama/llama-3.2-3b-instruct:free,"
        "deepseek/deepseek-chat-v3.1:free"
    )
    LLM_REQUEST_TIMEOUT_SECONDS: float = 30.0
    LLM_VERIFY_SSL: bool = True

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def enabled(self) -> bool:
        return self.LLM_API_KEY is not None and bool(
            self.LLM_API_KEY.get_secret_value().strip()
        )

    @property
    def fallback_models(self) -> list[str]:
        return [m.strip() for m in self.LLM_FALLBACK_MODELS.split(",") if m.strip()]


class QueueSettings(BaseSettings):
    """Batch job queue configuration."""

    QUEUE_WORKERS: int = 2
    QUEUE_MAX_ATTEMPTS: int = 3
    QUEUE_RETRY_BASE_DELAY_SECONDS: float = 2.0
    QUEUE_DEFAULT_OPERATION_SECONDS: float = 10.0

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class StorageSettings(BaseSettings):
    """Document storage and record persistence."""

    STORAGE_BACKEND: Literal["local", "s3", "memory"] = "local"
    STORAGE_DIR: str = "./storage"
    PERSIST_RECORDS: bool = True
    UPLOAD_MAX_FILE_SIZE_MB: int = 50

    S3_ENDPOINT: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[SecretStr] = None
    S3_BUCKET: Optional[str] = None
    S3_SECURE: bool = True

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def documents_dir(self) -> Path:
        return Path(self.STORAGE_DIR).resolve() / "documents"

    @property
    def records_dir(self) -> Path:
        return Path(self.STORAGE_DIR).resolve() / "records"


class AppSettings(BaseSettings):
    """General application settings."""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


# Singleton instances - loaded once at module import
ocr_settings = OCRSettings()
llm_settings = LLMSettings()
queue_settings = QueueSettings()
storage_settings = StorageSettings()
app_settings = AppSettings()
