"""Admin display settings form: load, background upload and save."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import UploadFile
from pydantic import ValidationError

from ..schemas.display_settings import (
    SETTINGS_ROW_ID,
    DisplaySettingsForm,
    DisplaySettingsRecord,
    DisplaySettingsState,
    FieldError,
    KioskDisplaySettings,
    OperationStatus,
    validate_form,
)
from .background_images import (
    BackgroundImageError,
    ensure_image_type,
    make_background_path,
    read_upload,
)
from .notifications import NotificationCenter
from .object_storage import ObjectStorage, ObjectStorageError
from .settings_store import SettingsNotFound, SettingsStore, SettingsStoreError

logger = logging.getLogger(__name__)


class UploadError(RuntimeError):
    """Raised when an uploaded image cannot be turned into a public URL."""


class SubmissionBlocked(RuntimeError):
    """Raised when an operation would race another one still in flight."""


class InvalidDisplaySettings(ValueError):
    """Raised when submitted values fail form validation."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors


def _form_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    """Map snake_case field names onto the camelCase form keys."""

    normalized: dict[str, Any] = {}
    for key, value in data.items():
        field_info = DisplaySettingsForm.model_fields.get(key)
        if field_info is not None and field_info.alias:
            key = field_info.alias
        normalized[key] = value
    return normalized


class DisplaySettingsService:
    """Holds the admin form state and runs its three operations.

    Each operation moves through ``idle -> in_flight -> success | failure``.
    Backend failures never escape: they are logged and reported through
    ``notifications``. Only input rejections and in-flight conflicts raise.
    """

    def __init__(
        self,
        store: SettingsStore,
        storage: ObjectStorage,
        *,
        row_id: int = SETTINGS_ROW_ID,
        background_folder: str = "backgrounds",
        cache_seconds: int = 3600,
        max_size_bytes: int = 10 * 1024 * 1024,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._row_id = row_id
        self._folder = background_folder
        self._cache_seconds = cache_seconds
        self._max_size_bytes = max_size_bytes
        self.notifications = notifications or NotificationCenter()

        self._values = DisplaySettingsForm()
        self._preview_url: str | None = None
        self._uploading = False
        self._submitting = False
        self._status: dict[str, OperationStatus] = {
            "load": "idle",
            "upload": "idle",
            "save": "idle",
        }

    @property
    def values(self) -> DisplaySettingsForm:
        return self._values

    @property
    def preview_image_url(self) -> str | None:
        return self._preview_url

    def status(self, operation: str) -> OperationStatus:
        return self._status[operation]

    def snapshot(self, outcome: OperationStatus = "idle") -> DisplaySettingsState:
        """Return the current form state and drain pending notifications."""

        return DisplaySettingsState(
            values=self._values.model_copy(),
            preview_image_url=self._preview_url,
            uploading=self._uploading,
            submitting=self._submitting,
            outcome=outcome,
            notifications=self.notifications.drain(),
        )

    async def load(self) -> DisplaySettingsState:
        """Populate the form from the persisted row, if there is one."""

        self._status["load"] = "in_flight"
        try:
            row = await self._store.fetch_settings(self._row_id)
        except SettingsNotFound:
            logger.debug("No display settings saved yet; using defaults")
            self._status["load"] = "success"
            return self.snapshot("success")
        except SettingsStoreError as exc:
            logger.error("Error fetching display settings: %s", exc)
            self.notifications.error("Failed to load display settings.")
            self._status["load"] = "failure"
            return self.snapshot("failure")

        try:
            record = DisplaySettingsRecord.from_row(row, row_id=self._row_id)
            values = record.to_form()
        except ValidationError as exc:
            logger.error("Stored display settings are invalid: %s", exc)
            self.notifications.error("Failed to load display settings.")
            self._status["load"] = "failure"
            return self.snapshot("failure")

        self._values = values
        self._preview_url = record.background_image_url
        self._status["load"] = "success"
        return self.snapshot("success")

    async def upload_background(self, upload: UploadFile | None) -> DisplaySettingsState:
        """Store a new background image and stage its public URL on the form.

        The settings row is not written; the URL is persisted by the next save.
        """

        if upload is None:
            return self.snapshot()
        if self._uploading:
            raise SubmissionBlocked("A background image upload is already in progress")

        mime_type = ensure_image_type(upload.content_type)
        self._uploading = True
        self._status["upload"] = "in_flight"
        try:
            outcome = await self._store_background(upload, mime_type)
        except BackgroundImageError:
            self._status["upload"] = "idle"
            raise
        finally:
            self._uploading = False

        self._status["upload"] = outcome
        return self.snapshot(outcome)

    async def _store_background(
        self, upload: UploadFile, mime_type: str
    ) -> OperationStatus:
        data = await read_upload(upload, max_size_bytes=self._max_size_bytes)
        path = make_background_path(upload.filename, folder=self._folder)
        toast_id = self.notifications.loading("Uploading background image...")
        try:
            await self._storage.upload(
                path,
                data,
                content_type=mime_type,
                cache_seconds=self._cache_seconds,
                upsert=False,
            )
            public_url = self._storage.public_url(path)
            if not public_url:
                raise UploadError("Failed to obtain the image's public URL.")
        except (ObjectStorageError, UploadError) as exc:
            logger.error("Error uploading background image %s: %s", path, exc)
            self.notifications.error(
                f"Failed to upload image: {exc}", notification_id=toast_id
            )
            return "failure"

        self._values = self._values.model_copy(
            update={"background_image_url": public_url}
        )
        self._preview_url = public_url
        self.notifications.success(
            "Background image uploaded!", notification_id=toast_id
        )
        logger.info("Stored background image %s (%s, %d bytes)", path, mime_type, len(data))
        return "success"

    async def submit(self, data: Mapping[str, Any]) -> DisplaySettingsState:
        """Validate the submitted values and upsert them as the singleton row."""

        if self._uploading:
            raise SubmissionBlocked(
                "Wait for the background image upload to finish before saving"
            )
        if self._submitting:
            raise SubmissionBlocked("Display settings are already being saved")

        merged = self._values.model_dump(by_alias=True)
        merged.update(_form_keys(data))
        validation = validate_form(merged)
        if not validation.ok:
            raise InvalidDisplaySettings(validation.errors)

        assert validation.values is not None
        self._values = validation.values
        record = DisplaySettingsRecord.from_form(validation.values, row_id=self._row_id)

        self._submitting = True
        self._status["save"] = "in_flight"
        try:
            saved = await self._store.upsert_settings(record.model_dump())
        except SettingsStoreError as exc:
            logger.error("Error saving display settings: %s", exc)
            self.notifications.error("Failed to save display settings.")
            self._status["save"] = "failure"
        else:
            logger.info(
                "Display settings saved: %s", saved if saved is not None else record
            )
            self.notifications.success("Display settings saved!")
            self._status["save"] = "success"
        finally:
            self._submitting = False

        return self.snapshot(self._status["save"])

    async def current_settings(self) -> KioskDisplaySettings:
        """Return the persisted settings for display clients, or the defaults."""

        try:
            row = await self._store.fetch_settings(self._row_id)
        except SettingsNotFound:
            return KioskDisplaySettings()
        try:
            record = DisplaySettingsRecord.from_row(row, row_id=self._row_id)
        except ValidationError as exc:
            logger.error("Stored display settings are invalid: %s", exc)
            return KioskDisplaySettings()
        return KioskDisplaySettings(
            background_image_url=record.background_image_url,
            background_color=record.background_color,
            screensaver_idle_minutes=record.screensaver_idle_minutes,
        )


__all__ = [
    "DisplaySettingsService",
    "InvalidDisplaySettings",
    "SubmissionBlocked",
    "UploadError",
]
