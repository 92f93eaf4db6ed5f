"""Persistence for the singleton display settings row."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from ..schemas.display_settings import (
    DEFAULT_BACKGROUND_COLOR,
    DEFAULT_IDLE_MINUTES,
    SETTINGS_COLUMNS,
)
from .supabase import SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

SettingsRow = dict[str, Any]

# PostgREST error code for "JSON object requested, multiple (or no) rows returned"
NO_ROWS_ERROR_CODE = "PGRST116"


class SettingsStoreError(RuntimeError):
    """Raised when the settings row cannot be read or written."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class SettingsNotFound(SettingsStoreError):
    """Raised when the settings row has never been saved."""


class SettingsStore(Protocol):
    async def initialize(self) -> None: ...

    async def fetch_settings(self, row_id: int) -> SettingsRow: ...

    async def upsert_settings(self, row: SettingsRow) -> SettingsRow | None: ...

    async def close(self) -> None: ...


class SupabaseSettingsStore:
    """Read and upsert the settings row through PostgREST."""

    def __init__(self, client: SupabaseClient, *, table: str = "app_settings") -> None:
        self._client = client
        self._table = table

    @property
    def _path(self) -> str:
        return f"/rest/v1/{self._table}"

    async def initialize(self) -> None:
        return None

    async def fetch_settings(self, row_id: int) -> SettingsRow:
        """Fetch a single row; a missing row raises `SettingsNotFound`."""

        try:
            response = await self._client.request(
                "GET",
                self._path,
                params={"select": ",".join(SETTINGS_COLUMNS), "id": f"eq.{row_id}"},
                headers={"Accept": "application/vnd.pgrst.object+json"},
            )
        except SupabaseError as exc:
            if exc.code == NO_ROWS_ERROR_CODE:
                raise SettingsNotFound(str(exc), code=exc.code) from exc
            raise SettingsStoreError(str(exc), code=exc.code) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise SettingsStoreError("Settings response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise SettingsStoreError("Settings response was not a JSON object")
        return payload

    async def upsert_settings(self, row: SettingsRow) -> SettingsRow | None:
        """Insert or replace the row, resolving conflicts on ``id``."""

        try:
            response = await self._client.request(
                "POST",
                self._path,
                params={"on_conflict": "id"},
                headers={
                    "Prefer": "resolution=merge-duplicates,return=representation",
                    "Content-Type": "application/json",
                },
                json=row,
            )
        except SupabaseError as exc:
            raise SettingsStoreError(str(exc), code=exc.code) from exc

        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, list):
            return payload[0] if payload else None
        return payload if isinstance(payload, dict) else None

    async def close(self) -> None:
        await self._client.aclose()


class SqliteSettingsStore:
    """Keep the settings row in a local SQLite database."""

    def __init__(self, database_path: Path, *, table: str = "app_settings") -> None:
        self._path = database_path
        self._table = table
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure the table exists."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                id INTEGER PRIMARY KEY,
                background_image_url TEXT,
                background_color TEXT NOT NULL DEFAULT '{DEFAULT_BACKGROUND_COLOR}',
                screensaver_idle_minutes INTEGER NOT NULL DEFAULT {DEFAULT_IDLE_MINUTES},
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        await self._connection.commit()

    async def fetch_settings(self, row_id: int) -> SettingsRow:
        if self._connection is None:
            raise SettingsStoreError("Settings database is not initialized")
        try:
            cursor = await self._connection.execute(
                f"SELECT {', '.join(SETTINGS_COLUMNS)} FROM {self._table} WHERE id = ?",
                (row_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise SettingsStoreError(str(exc)) from exc

        if row is None:
            raise SettingsNotFound(f"No settings row with id {row_id}")
        return {column: row[column] for column in SETTINGS_COLUMNS}

    async def upsert_settings(self, row: SettingsRow) -> SettingsRow | None:
        if self._connection is None:
            raise SettingsStoreError("Settings database is not initialized")
        try:
            await self._connection.execute(
                f"""
                INSERT INTO {self._table} (
                    id, background_image_url, background_color, screensaver_idle_minutes
                ) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    background_image_url = excluded.background_image_url,
                    background_color = excluded.background_color,
                    screensaver_idle_minutes = excluded.screensaver_idle_minutes,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    row["id"],
                    row.get("background_image_url"),
                    row["background_color"],
                    row["screensaver_idle_minutes"],
                ),
            )
            await self._connection.commit()
        except aiosqlite.Error as exc:
            raise SettingsStoreError(str(exc)) from exc
        return dict(row)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


__all__ = [
    "NO_ROWS_ERROR_CODE",
    "SettingsNotFound",
    "SettingsRow",
    "SettingsStore",
    "SettingsStoreError",
    "SqliteSettingsStore",
    "SupabaseSettingsStore",
]
