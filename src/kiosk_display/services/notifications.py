"""User-facing notifications for the admin form."""

from __future__ import annotations

from uuid import uuid4

from ..schemas.display_settings import Notification, NotificationKind


class NotificationCenter:
    """Collects toasts until the next response drains them.

    A notification published with an existing id replaces the earlier one in
    place, so a "loading" toast can be turned into its success or error result.
    """

    def __init__(self) -> None:
        self._pending: dict[str, Notification] = {}

    def _publish(
        self, kind: NotificationKind, message: str, notification_id: str | None
    ) -> str:
        notification_id = notification_id or uuid4().hex
        self._pending[notification_id] = Notification(
            id=notification_id, kind=kind, message=message
        )
        return notification_id

    def loading(self, message: str) -> str:
        return self._publish("loading", message, None)

    def success(self, message: str, *, notification_id: str | None = None) -> str:
        return self._publish("success", message, notification_id)

    def error(self, message: str, *, notification_id: str | None = None) -> str:
        return self._publish("error", message, notification_id)

    def pending(self) -> list[Notification]:
        return list(self._pending.values())

    def drain(self) -> list[Notification]:
        """Return and forget all notifications published so far."""

        notifications = list(self._pending.values())
        self._pending.clear()
        return notifications


__all__ = ["NotificationCenter"]
