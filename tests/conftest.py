import pathlib
import sys
from typing import Any

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from kiosk_display.services.settings_store import SettingsNotFound  # noqa: E402


class FakeSettingsStore:
    """In-memory stand-in for the settings table."""

    def __init__(self, row: dict[str, Any] | None = None) -> None:
        self.row = row
        self.fetch_error: Exception | None = None
        self.upsert_error: Exception | None = None
        self.fetch_calls: list[int] = []
        self.upserts: list[dict[str, Any]] = []

    async def initialize(self) -> None:
        return None

    async def fetch_settings(self, row_id: int) -> dict[str, Any]:
        self.fetch_calls.append(row_id)
        if self.fetch_error is not None:
            raise self.fetch_error
        if self.row is None:
            raise SettingsNotFound("no rows", code="PGRST116")
        return dict(self.row)

    async def upsert_settings(self, row: dict[str, Any]) -> dict[str, Any] | None:
        if self.upsert_error is not None:
            raise self.upsert_error
        self.upserts.append(dict(row))
        self.row = dict(row)
        return dict(row)

    async def close(self) -> None:
        return None


class FakeObjectStorage:
    """Records uploads and serves predictable public URLs."""

    base_url = "https://cdn.example.com/images"

    def __init__(self) -> None:
        self.uploads: list[dict[str, Any]] = []
        self.upload_error: Exception | None = None
        self.public_urls_available = True

    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_seconds: int,
        upsert: bool = False,
    ) -> None:
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append(
            {
                "path": path,
                "data": data,
                "content_type": content_type,
                "cache_seconds": cache_seconds,
                "upsert": upsert,
            }
        )

    def public_url(self, path: str) -> str | None:
        if not self.public_urls_available:
            return None
        return f"{self.base_url}/{path}"

    async def close(self) -> None:
        return None


@pytest.fixture
def settings_store() -> FakeSettingsStore:
    return FakeSettingsStore()


@pytest.fixture
def object_storage() -> FakeObjectStorage:
    return FakeObjectStorage()
