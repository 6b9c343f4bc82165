"""Timer-backed reminder notifications with a fixed capacity."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Callable
import uuid

from homeassistant.components import persistent_notification
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.event import async_track_point_in_time
from homeassistant.util import dt as dt_util

from .const import ACTION_GIVEN, ACTION_SKIP, DEFAULT_DEVICE_QUOTA, SIGNAL_REMINDERS_UPDATED
from .exceptions import TransportError
from .models import NotificationRequest, ScheduledNotification

_LOGGER = logging.getLogger(__name__)


@dataclass
class _Pending:
    notification: ScheduledNotification
    request: NotificationRequest
    unsub: Callable[[], None]


class ReminderNotifier:
    """Holds at most `quota` pending reminders, each on its own timer.

    When a reminder fires it is removed, a persistent notification is raised
    and every configured notify service gets an actionable message.
    """

    def __init__(self, hass: HomeAssistant, quota: int = DEFAULT_DEVICE_QUOTA) -> None:
        self.hass = hass
        self._quota = max(0, int(quota))
        self._pending: dict[str, _Pending] = {}

    @property
    def quota(self) -> int:
        return self._quota

    async def async_list_scheduled(self) -> list[ScheduledNotification]:
        return sorted(
            (p.notification for p in self._pending.values()),
            key=lambda n: (n.fires_at, n.id),
        )

    async def async_schedule(self, request: NotificationRequest) -> str:
        if len(self._pending) >= self._quota:
            raise TransportError(f"Notification limit of {self._quota} reached")
        if request.fires_at <= dt_util.now():
            raise TransportError(f"Reminder time {request.fires_at.isoformat()} is in the past")

        notification_id = uuid.uuid4().hex

        @callback
        def _fire(_now: datetime) -> None:
            pending = self._pending.pop(notification_id, None)
            if pending is None:
                return
            self.hass.async_create_task(self._async_deliver(pending))

        unsub = async_track_point_in_time(self.hass, _fire, request.fires_at)
        self._pending[notification_id] = _Pending(
            notification=ScheduledNotification(
                id=notification_id,
                medication_id=request.medication_id,
                fires_at=request.fires_at,
                pet_id=request.pet_id,
            ),
            request=request,
            unsub=unsub,
        )
        return notification_id

    async def async_cancel(self, notification_id: str) -> None:
        pending = self._pending.pop(notification_id, None)
        if pending is None:
            raise TransportError(f"Unknown notification {notification_id}")
        pending.unsub()

    @callback
    def async_cancel_all(self) -> None:
        for pending in self._pending.values():
            pending.unsub()
        self._pending.clear()

    async def _async_deliver(self, pending: _Pending) -> None:
        request = pending.request
        persistent_notification.async_create(
            self.hass,
            request.message,
            title=request.title,
            notification_id=f"{request.medication_id}_{pending.notification.id}",
        )
        if request.notify_services:
            data = {
                "tag": request.medication_id,
                "actions": [
                    {"action": ACTION_GIVEN, "title": "Given"},
                    {"action": ACTION_SKIP, "title": "Skip"},
                ],
                "action_data": {
                    "medication_id": request.medication_id,
                    "scheduled_time": request.fires_at.isoformat(),
                },
            }
            for service in request.notify_services:
                try:
                    await self.hass.services.async_call(
                        "notify",
                        service,
                        {"title": request.title, "message": request.message, "data": data},
                        blocking=False,
                    )
                except HomeAssistantError as err:
                    _LOGGER.warning("Could not send reminder via notify.%s: %s", service, err)
        _LOGGER.debug("Reminder delivered for %s at %s", request.medication_id, request.fires_at.isoformat())
        async_dispatcher_send(self.hass, SIGNAL_REMINDERS_UPDATED)
