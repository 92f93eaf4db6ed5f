"""Object storage backends for uploaded background images."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from google.cloud import storage
from google.oauth2 import service_account

from ..config import Settings
from .supabase import SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)


class ObjectStorageError(RuntimeError):
    """Raised when an object cannot be stored."""


class ObjectStorage(Protocol):
    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_seconds: int,
        upsert: bool = False,
    ) -> None: ...

    def public_url(self, path: str) -> str | None: ...

    async def close(self) -> None: ...


class SupabaseObjectStorage:
    """Store objects in a Supabase storage bucket."""

    def __init__(self, client: SupabaseClient, *, bucket: str = "images") -> None:
        self._client = client
        self._bucket = bucket

    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_seconds: int,
        upsert: bool = False,
    ) -> None:
        try:
            await self._client.request(
                "POST",
                f"/storage/v1/object/{self._bucket}/{quote(path)}",
                headers={
                    "Content-Type": content_type,
                    "cache-control": f"max-age={cache_seconds}",
                    "x-upsert": "true" if upsert else "false",
                },
                content=data,
            )
        except SupabaseError as exc:
            raise ObjectStorageError(str(exc)) from exc

    def public_url(self, path: str) -> str | None:
        """Return the public object URL; the bucket must be public."""

        if not path:
            return None
        return (
            f"{self._client.base_url}/storage/v1/object/public/"
            f"{self._bucket}/{quote(path)}"
        )

    async def close(self) -> None:
        await self._client.aclose()


def _load_credentials(settings: Settings) -> service_account.Credentials | None:
    credentials_path: Path | None = getattr(
        settings, "google_application_credentials", None
    )
    if credentials_path is None:
        return None

    try:
        resolved_path = Path(credentials_path).expanduser().resolve()
        if not resolved_path.exists():
            return None
        return service_account.Credentials.from_service_account_file(str(resolved_path))
    except (FileNotFoundError, OSError) as e:
        logger.debug("Could not load GCS credentials from %s: %s", credentials_path, e)
        return None


class GcsObjectStorage:
    """Store objects in a Google Cloud Storage bucket."""

    def __init__(
        self,
        settings: Settings,
        *,
        bucket: storage.Bucket | None = None,
    ) -> None:
        self._settings = settings
        self._bucket = bucket

    def _get_bucket(self) -> storage.Bucket:
        if self._bucket is None:
            credentials = _load_credentials(self._settings)
            if credentials is None:
                raise ObjectStorageError(
                    "GCS credentials not found. Please configure GOOGLE_APPLICATION_CREDENTIALS "
                    "with a valid service account JSON file."
                )
            client = storage.Client(
                project=self._settings.gcp_project_id or credentials.project_id,
                credentials=credentials,
            )
            self._bucket = client.bucket(self._settings.gcs_bucket_name)
        return self._bucket

    def _upload_blocking(
        self,
        path: str,
        data: bytes,
        content_type: str,
        cache_seconds: int,
        upsert: bool,
    ) -> None:
        blob = self._get_bucket().blob(path)
        blob.cache_control = f"public, max-age={cache_seconds}"
        # if_generation_match=0 makes the create atomic: it fails if the object exists
        blob.upload_from_string(
            data,
            content_type=content_type,
            if_generation_match=None if upsert else 0,
        )

    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_seconds: int,
        upsert: bool = False,
    ) -> None:
        try:
            await asyncio.to_thread(
                self._upload_blocking, path, data, content_type, cache_seconds, upsert
            )
        except ObjectStorageError:
            raise
        except Exception as exc:
            raise ObjectStorageError(str(exc)) from exc

    def public_url(self, path: str) -> str | None:
        if not path:
            return None
        return self._get_bucket().blob(path).public_url

    async def close(self) -> None:
        return None


__all__ = [
    "GcsObjectStorage",
    "ObjectStorage",
    "ObjectStorageError",
    "SupabaseObjectStorage",
]
