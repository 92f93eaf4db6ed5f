"""Display settings service tests covering load, upload and save flows."""

from __future__ import annotations

import asyncio
import io
import re

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from kiosk_display.services.background_images import UnsupportedImageType
from kiosk_display.services.display_settings import (
    DisplaySettingsService,
    InvalidDisplaySettings,
    SubmissionBlocked,
)
from kiosk_display.services.object_storage import ObjectStorageError
from kiosk_display.services.settings_store import SettingsStoreError

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


def make_upload(filename: str, data: bytes = b"pixels", content_type: str = "image/png"):
    return UploadFile(
        filename=filename,
        file=io.BytesIO(data),
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def service(settings_store, object_storage) -> DisplaySettingsService:
    return DisplaySettingsService(settings_store, object_storage)


@pytest.mark.asyncio
async def test_load_without_row_keeps_defaults_silently(service, settings_store):
    state = await service.load()

    assert settings_store.fetch_calls == [1]
    assert state.outcome == "success"
    assert state.notifications == []
    assert state.values.background_image_url is None
    assert state.values.background_color == "#0A0A0A"
    assert state.values.screensaver_idle_minutes == 5
    assert state.preview_image_url is None


@pytest.mark.asyncio
async def test_load_populates_form_and_preview(service, settings_store):
    settings_store.row = {
        "background_image_url": "https://cdn/bg.png",
        "background_color": "navy",
        "screensaver_idle_minutes": 15,
    }

    state = await service.load()

    assert state.values.background_image_url == "https://cdn/bg.png"
    assert state.values.background_color == "navy"
    assert state.values.screensaver_idle_minutes == 15
    assert state.preview_image_url == "https://cdn/bg.png"


@pytest.mark.asyncio
async def test_load_applies_fallbacks_for_missing_columns(service, settings_store):
    settings_store.row = {
        "background_image_url": None,
        "background_color": None,
        "screensaver_idle_minutes": None,
    }

    state = await service.load()

    assert state.values.background_color == "#0A0A0A"
    assert state.values.screensaver_idle_minutes == 5


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "row",
    [
        {"background_color": "navy", "screensaver_idle_minutes": -3},
        {"background_color": 42, "screensaver_idle_minutes": 10},
    ],
)
async def test_load_rejects_invalid_stored_row(service, settings_store, caplog, row):
    settings_store.row = {"background_image_url": "https://cdn/bg.png", **row}

    with caplog.at_level("ERROR"):
        state = await service.load()

    assert state.outcome == "failure"
    assert [n.message for n in state.notifications] == [
        "Failed to load display settings."
    ]
    assert state.values.background_image_url is None
    assert state.values.background_color == "#0A0A0A"
    assert state.values.screensaver_idle_minutes == 5
    assert state.preview_image_url is None
    assert service.status("load") == "failure"
    assert "Stored display settings are invalid" in caplog.text


@pytest.mark.asyncio
async def test_load_failure_reports_one_error_and_keeps_defaults(
    service, settings_store, caplog
):
    settings_store.fetch_error = SettingsStoreError("connection reset")

    with caplog.at_level("ERROR"):
        state = await service.load()

    assert state.outcome == "failure"
    assert [n.kind for n in state.notifications] == ["error"]
    assert state.notifications[0].message == "Failed to load display settings."
    assert state.values.background_color == "#0A0A0A"
    assert state.values.screensaver_idle_minutes == 5
    assert "connection reset" in caplog.text
    assert service.status("load") == "failure"


@pytest.mark.asyncio
async def test_upload_stages_public_url_without_saving(
    service, settings_store, object_storage
):
    state = await service.upload_background(make_upload("photo.png"))

    assert len(object_storage.uploads) == 1
    upload = object_storage.uploads[0]
    assert re.fullmatch(rf"backgrounds/{_UUID}\.png", upload["path"])
    assert upload["upsert"] is False
    assert upload["cache_seconds"] == 3600
    assert upload["content_type"] == "image/png"

    expected_url = f"{object_storage.base_url}/{upload['path']}"
    assert state.outcome == "success"
    assert state.values.background_image_url == expected_url
    assert state.preview_image_url == expected_url
    assert settings_store.upserts == []

    assert len(state.notifications) == 1
    assert state.notifications[0].kind == "success"
    assert state.notifications[0].message == "Background image uploaded!"


@pytest.mark.asyncio
async def test_upload_without_file_is_a_noop(service, object_storage):
    state = await service.upload_background(None)

    assert object_storage.uploads == []
    assert state.notifications == []
    assert state.outcome == "idle"


@pytest.mark.asyncio
async def test_upload_failure_reports_message_and_keeps_previous_url(
    service, settings_store, object_storage
):
    settings_store.row = {
        "background_image_url": "https://cdn/old.png",
        "background_color": "#0A0A0A",
        "screensaver_idle_minutes": 5,
    }
    await service.load()
    object_storage.upload_error = ObjectStorageError("bucket not found")

    state = await service.upload_background(make_upload("new.png"))

    assert state.outcome == "failure"
    assert state.values.background_image_url == "https://cdn/old.png"
    assert state.preview_image_url == "https://cdn/old.png"
    assert len(state.notifications) == 1
    assert state.notifications[0].kind == "error"
    assert state.notifications[0].message == "Failed to upload image: bucket not found"
    assert state.uploading is False


@pytest.mark.asyncio
async def test_upload_fails_when_public_url_cannot_be_derived(service, object_storage):
    object_storage.public_urls_available = False

    state = await service.upload_background(make_upload("bg.jpg", content_type="image/jpeg"))

    assert state.outcome == "failure"
    assert len(object_storage.uploads) == 1
    assert state.values.background_image_url is None
    assert "public URL" in state.notifications[0].message


@pytest.mark.asyncio
async def test_upload_rejects_non_images_before_storing(service, object_storage):
    with pytest.raises(UnsupportedImageType):
        await service.upload_background(
            make_upload("notes.txt", b"hello", content_type="text/plain")
        )

    assert object_storage.uploads == []
    assert service.snapshot().uploading is False


@pytest.mark.asyncio
async def test_submit_upserts_singleton_row(service, settings_store):
    state = await service.submit(
        {"backgroundColor": "#00FF00", "screensaverIdleMinutes": 3}
    )

    assert settings_store.upserts == [
        {
            "id": 1,
            "background_image_url": None,
            "background_color": "#00FF00",
            "screensaver_idle_minutes": 3,
        }
    ]
    assert state.outcome == "success"
    assert [n.message for n in state.notifications] == ["Display settings saved!"]


@pytest.mark.parametrize(
    "payload",
    [
        {"screensaverIdleMinutes": 0},
        {"screensaverIdleMinutes": -3},
        {"screensaverIdleMinutes": "soon"},
        {"backgroundColor": ""},
    ],
)
@pytest.mark.asyncio
async def test_invalid_submission_is_blocked_without_network_write(
    service, settings_store, payload
):
    with pytest.raises(InvalidDisplaySettings) as excinfo:
        await service.submit(payload)

    assert excinfo.value.errors
    assert settings_store.upserts == []
    assert service.status("save") == "idle"


@pytest.mark.asyncio
async def test_submit_normalizes_empty_image_url_to_null(service, settings_store):
    await service.submit({"backgroundImageUrl": ""})

    assert settings_store.upserts[0]["background_image_url"] is None


@pytest.mark.asyncio
async def test_submit_failure_keeps_attempted_values(service, settings_store, caplog):
    settings_store.upsert_error = SettingsStoreError("permission denied")

    with caplog.at_level("ERROR"):
        state = await service.submit(
            {"backgroundColor": "teal", "screensaverIdleMinutes": "8"}
        )

    assert state.outcome == "failure"
    assert [n.message for n in state.notifications] == [
        "Failed to save display settings."
    ]
    assert state.values.background_color == "teal"
    assert state.values.screensaver_idle_minutes == 8
    assert state.submitting is False
    assert "permission denied" in caplog.text


@pytest.mark.asyncio
async def test_submit_is_blocked_while_upload_is_in_flight(
    service, settings_store, object_storage
):
    release = asyncio.Event()
    started = asyncio.Event()
    original_upload = object_storage.upload

    async def slow_upload(*args, **kwargs):
        started.set()
        await release.wait()
        await original_upload(*args, **kwargs)

    object_storage.upload = slow_upload

    upload_task = asyncio.create_task(service.upload_background(make_upload("bg.png")))
    await started.wait()

    with pytest.raises(SubmissionBlocked):
        await service.submit({"backgroundColor": "red"})
    with pytest.raises(SubmissionBlocked):
        await service.upload_background(make_upload("other.png"))
    assert service.snapshot().uploading is True

    release.set()
    state = await upload_task

    assert state.outcome == "success"
    assert settings_store.upserts == []


@pytest.mark.asyncio
async def test_submit_is_blocked_while_save_is_in_flight(service, settings_store):
    release = asyncio.Event()
    started = asyncio.Event()
    original_upsert = settings_store.upsert_settings

    async def slow_upsert(row):
        started.set()
        await release.wait()
        return await original_upsert(row)

    settings_store.upsert_settings = slow_upsert

    save_task = asyncio.create_task(service.submit({"backgroundColor": "red"}))
    await started.wait()

    with pytest.raises(SubmissionBlocked):
        await service.submit({"backgroundColor": "blue"})
    assert service.snapshot().submitting is True
    assert service.status("save") == "in_flight"

    release.set()
    state = await save_task

    assert state.outcome == "success"
    assert state.submitting is False
    assert len(settings_store.upserts) == 1
    assert settings_store.upserts[0]["background_color"] == "red"


@pytest.mark.asyncio
async def test_end_to_end_first_run_scenario(service, settings_store, object_storage):
    loaded = await service.load()
    assert loaded.notifications == []

    uploaded = await service.upload_background(
        make_upload("bg.jpg", b"jpeg-bytes", content_type="image/jpeg")
    )
    derived_url = uploaded.values.background_image_url
    assert derived_url is not None
    assert derived_url.endswith(".jpg")

    saved = await service.submit(
        {"backgroundColor": "#FF0000", "screensaverIdleMinutes": 10}
    )

    assert settings_store.upserts == [
        {
            "id": 1,
            "background_image_url": derived_url,
            "background_color": "#FF0000",
            "screensaver_idle_minutes": 10,
        }
    ]
    assert [(n.kind, n.message) for n in saved.notifications] == [
        ("success", "Display settings saved!")
    ]


@pytest.mark.asyncio
async def test_current_settings_for_kiosk_defaults_without_row(service):
    current = await service.current_settings()

    assert current.model_dump(by_alias=True) == {
        "backgroundImageUrl": None,
        "backgroundColor": "#0A0A0A",
        "screensaverIdleMinutes": 5,
    }


@pytest.mark.asyncio
async def test_current_settings_for_kiosk_ignores_invalid_row(service, settings_store):
    settings_store.row = {"background_color": ["red"], "screensaver_idle_minutes": 4}

    current = await service.current_settings()

    assert current.background_color == "#0A0A0A"
    assert current.screensaver_idle_minutes == 5


@pytest.mark.asyncio
async def test_custom_row_id_is_used_for_reads_and_writes(settings_store, object_storage):
    service = DisplaySettingsService(settings_store, object_storage, row_id=7)

    await service.load()
    await service.submit({})

    assert settings_store.fetch_calls == [7]
    assert settings_store.upserts[0]["id"] == 7
