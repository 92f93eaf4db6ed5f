"""Pydantic models for the display settings form and its persisted row."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_BACKGROUND_COLOR = "#0A0A0A"
DEFAULT_IDLE_MINUTES = 5
SETTINGS_ROW_ID = 1

SETTINGS_COLUMNS: tuple[str, ...] = (
    "background_image_url",
    "background_color",
    "screensaver_idle_minutes",
)


def _coerce_minutes(value: Any) -> Any:
    """Coerce form input to a number the way an HTML number input does."""

    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            value = float(text)
        except ValueError:
            raise ValueError(
                "Screensaver idle duration must be a number."
            ) from None
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("Screensaver idle duration must be a number.")
        if not value.is_integer():
            raise ValueError(
                "Screensaver idle duration must be a whole number of minutes."
            )
        return int(value)
    return value


class DisplaySettingsForm(BaseModel):
    """Values edited on the admin display settings form."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    background_image_url: Optional[str] = None
    background_color: str = Field(default=DEFAULT_BACKGROUND_COLOR)
    screensaver_idle_minutes: int = Field(default=DEFAULT_IDLE_MINUTES)

    @field_validator("background_color")
    @classmethod
    def _require_color(cls, value: str) -> str:
        if len(value) < 1:
            raise ValueError("Background color must not be empty.")
        return value

    @field_validator("screensaver_idle_minutes", mode="before")
    @classmethod
    def _coerce_idle_minutes(cls, value: Any) -> Any:
        return _coerce_minutes(value)

    @field_validator("screensaver_idle_minutes")
    @classmethod
    def _require_positive_minutes(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Screensaver idle duration must be at least 1 minute.")
        return value


class FieldError(BaseModel):
    """Inline validation message for a single form field."""

    field: str
    message: str


@dataclass
class FormValidation:
    """Outcome of validating raw form input."""

    values: DisplaySettingsForm | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.values is not None and not self.errors


def _error_message(error: Mapping[str, Any]) -> str:
    if error.get("type") == "value_error":
        ctx = error.get("ctx") or {}
        original = ctx.get("error")
        if original is not None:
            return str(original)
    return str(error.get("msg", "Invalid value"))


def _form_field_name(name: str) -> str:
    field_info = DisplaySettingsForm.model_fields.get(name)
    if field_info is not None and field_info.alias:
        return field_info.alias
    return name


def validate_form(data: Mapping[str, Any]) -> FormValidation:
    """Validate raw form input, collecting per-field errors instead of raising."""

    try:
        values = DisplaySettingsForm.model_validate(dict(data))
    except ValidationError as exc:
        errors: list[FieldError] = []
        for error in exc.errors():
            loc = error.get("loc") or ()
            name = str(loc[0]) if loc else "__root__"
            errors.append(
                FieldError(field=_form_field_name(name), message=_error_message(error))
            )
        return FormValidation(errors=errors)
    return FormValidation(values=values)


class DisplaySettingsRecord(BaseModel):
    """The singleton settings row as persisted in the ``app_settings`` table."""

    model_config = ConfigDict(extra="ignore")

    id: int = SETTINGS_ROW_ID
    background_image_url: Optional[str] = None
    background_color: str = DEFAULT_BACKGROUND_COLOR
    screensaver_idle_minutes: int = DEFAULT_IDLE_MINUTES

    @classmethod
    def from_form(
        cls, form: DisplaySettingsForm, *, row_id: int = SETTINGS_ROW_ID
    ) -> "DisplaySettingsRecord":
        """Build the row to upsert; an empty image URL is stored as null."""

        return cls(
            id=row_id,
            background_image_url=form.background_image_url or None,
            background_color=form.background_color,
            screensaver_idle_minutes=form.screensaver_idle_minutes,
        )

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], *, row_id: int = SETTINGS_ROW_ID
    ) -> "DisplaySettingsRecord":
        """Build a record from fetched columns, falling back to defaults."""

        return cls(
            id=row_id,
            background_image_url=row.get("background_image_url") or None,
            background_color=row.get("background_color") or DEFAULT_BACKGROUND_COLOR,
            screensaver_idle_minutes=(
                row.get("screensaver_idle_minutes") or DEFAULT_IDLE_MINUTES
            ),
        )

    def to_form(self) -> DisplaySettingsForm:
        return DisplaySettingsForm(
            background_image_url=self.background_image_url,
            background_color=self.background_color,
            screensaver_idle_minutes=self.screensaver_idle_minutes,
        )


NotificationKind = Literal["loading", "success", "error"]
OperationStatus = Literal["idle", "in_flight", "success", "failure"]


class Notification(BaseModel):
    """A user-facing toast; later messages with the same id replace earlier ones."""

    id: str
    kind: NotificationKind
    message: str


class DisplaySettingsState(BaseModel):
    """Snapshot of the admin form returned after every operation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    values: DisplaySettingsForm
    preview_image_url: Optional[str] = None
    uploading: bool = False
    submitting: bool = False
    outcome: OperationStatus = "idle"
    notifications: list[Notification] = Field(default_factory=list)


class KioskDisplaySettings(BaseModel):
    """Read-only view of the persisted settings served to display clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    background_image_url: Optional[str] = None
    background_color: str = DEFAULT_BACKGROUND_COLOR
    screensaver_idle_minutes: int = DEFAULT_IDLE_MINUTES


__all__ = [
    "DEFAULT_BACKGROUND_COLOR",
    "DEFAULT_IDLE_MINUTES",
    "SETTINGS_COLUMNS",
    "SETTINGS_ROW_ID",
    "DisplaySettingsForm",
    "DisplaySettingsRecord",
    "DisplaySettingsState",
    "FieldError",
    "FormValidation",
    "KioskDisplaySettings",
    "Notification",
    "NotificationKind",
    "OperationStatus",
    "validate_form",
]
