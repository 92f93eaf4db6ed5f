"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    settings_backend: Literal["supabase", "sqlite"] = Field(
        default="supabase",
        validation_alias=AliasChoices("SETTINGS_BACKEND", "settings_backend"),
    )
    storage_backend: Literal["supabase", "gcs"] = Field(
        default="supabase",
        validation_alias=AliasChoices("STORAGE_BACKEND", "storage_backend"),
    )

    # Supabase project (REST + storage)
    supabase_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "supabase_url"),
    )
    supabase_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_KEY",
            "SUPABASE_SERVICE_ROLE_KEY",
            "supabase_key",
        ),
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("REQUEST_TIMEOUT", "request_timeout"),
    )

    settings_table: str = Field(
        default="app_settings",
        validation_alias=AliasChoices("SETTINGS_TABLE", "settings_table"),
    )
    settings_row_id: int = Field(
        default=1,
        validation_alias=AliasChoices("SETTINGS_ROW_ID", "settings_row_id"),
    )
    settings_database_path: Path = Field(
        default_factory=lambda: Path("data/display_settings.db"),
        validation_alias=AliasChoices(
            "SETTINGS_DATABASE_PATH", "settings_database_path"
        ),
    )

    storage_bucket: str = Field(
        default="images",
        validation_alias=AliasChoices("STORAGE_BUCKET", "storage_bucket"),
    )
    background_folder: str = Field(
        default="backgrounds",
        validation_alias=AliasChoices("BACKGROUND_FOLDER", "background_folder"),
    )
    background_cache_seconds: int = Field(
        default=3600,
        ge=0,
        validation_alias=AliasChoices(
            "BACKGROUND_CACHE_SECONDS", "background_cache_seconds"
        ),
    )
    background_max_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "BACKGROUND_MAX_SIZE_BYTES",
            "background_max_size_bytes",
        ),
    )

    # Google Cloud Storage (only used when STORAGE_BACKEND=gcs)
    gcs_bucket_name: str = Field(
        default="kiosk-display",
        validation_alias=AliasChoices("GCS_BUCKET_NAME", "gcs_bucket_name"),
    )
    gcp_project_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GCP_PROJECT_ID", "gcp_project_id"),
    )
    google_application_credentials: Path = Field(
        default_factory=lambda: Path("credentials/googlecloud/sa.json"),
        validation_alias=AliasChoices(
            "GOOGLE_APPLICATION_CREDENTIALS",
            "google_application_credentials",
        ),
    )

    @property
    def supabase_base_url(self) -> str:
        """Return the Supabase project URL without a trailing slash."""

        if self.supabase_url is None:
            raise RuntimeError(
                "SUPABASE_URL is not configured. Set it or choose another backend."
            )
        return str(self.supabase_url).rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
