"""Refresh entry point wrapping dose generation and reconciliation."""
from __future__ import annotations

import asyncio
from datetime import timedelta
import logging

from homeassistant.components import persistent_notification
from homeassistant.core import HomeAssistant
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.util import dt as dt_util

from .const import (
    DEFAULT_HORIZON_HOURS,
    DEFAULT_OPERATION_TIMEOUT,
    SIGNAL_REMINDERS_UPDATED,
    TRUNCATED_NOTIFICATION_ID,
)
from .models import RefreshResult
from .notifier import ReminderNotifier
from .reconciler import NotificationReconciler
from .repository import MedicationRepository

_LOGGER = logging.getLogger(__name__)


class ReminderManager:
    """Keeps the notifier in step with the active medications.

    Refreshes are serialised so two callers never interleave the
    list/cancel/schedule sequence against the same notifier.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        repository: MedicationRepository,
        notifier: ReminderNotifier,
        reconciler: NotificationReconciler,
        *,
        horizon: timedelta = timedelta(hours=DEFAULT_HORIZON_HOURS),
        timeout: float = DEFAULT_OPERATION_TIMEOUT,
    ) -> None:
        self.hass = hass
        self.repository = repository
        self.notifier = notifier
        self.reconciler = reconciler
        self.horizon = horizon
        self.timeout = timeout
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self.last_result: RefreshResult | None = None

    async def async_refresh(self, pet_id: str | None = None) -> RefreshResult:
        """Bring scheduled reminders in line with the active medications.

        With `pet_id`, only that pet's reminders are touched and the quota
        left over by other pets' outstanding reminders applies.
        """
        async with self._lock:
            now = dt_util.now()
            schedules = self.repository.get_active_medications(pet_id)
            current = await self.notifier.async_list_scheduled()
            quota = self.notifier.quota
            if pet_id is not None:
                others = [n for n in current if n.pet_id != pet_id]
                current = [n for n in current if n.pet_id == pet_id]
                quota = max(0, quota - len(others))

            plan = self.reconciler.reconcile(schedules, self.horizon, current, quota, now=now)
            outcome = await self.reconciler.async_apply(
                plan, self.notifier, timeout=self.timeout, cancel_event=self._stop
            )

            result = RefreshResult(
                added=outcome.added,
                cancelled=outcome.cancelled,
                truncated=plan.truncated,
                warnings=plan.warnings,
                failures=plan.failures + outcome.failures,
            )
            self.last_result = result
            _LOGGER.debug(
                "Reminders refreshed for %s: %d added, %d cancelled, truncated=%s",
                pet_id or "all pets",
                result.added,
                result.cancelled,
                result.truncated,
            )

        if result.truncated:
            persistent_notification.async_create(
                self.hass,
                "The maximum number of scheduled reminders has been reached. "
                "Only the soonest doses will be announced until earlier ones have fired.",
                title="Notification limit reached",
                notification_id=TRUNCATED_NOTIFICATION_ID,
            )
        async_dispatcher_send(self.hass, SIGNAL_REMINDERS_UPDATED)
        return result

    def async_shutdown(self) -> None:
        """Stop any refresh in flight and drop all pending reminders."""
        self._stop.set()
        self.notifier.async_cancel_all()
