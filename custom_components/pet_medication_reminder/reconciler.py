"""Reconcile desired dose reminders with the notifications already scheduled."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import logging
from typing import Iterable, Protocol, Sequence

from homeassistant.exceptions import HomeAssistantError

from .exceptions import ValidationError
from .models import (
    ApplyOutcome,
    DoseInstant,
    MedicationSchedule,
    NotificationRequest,
    OperationFailure,
    ReconcilePlan,
    ScheduledNotification,
    format_time_of_day,
)
from .schedule import DoseScheduleGenerator

_LOGGER = logging.getLogger(__name__)


class NotificationBackend(Protocol):
    """Where reminders end up; see notifier.ReminderNotifier."""

    @property
    def quota(self) -> int: ...

    async def async_list_scheduled(self) -> list[ScheduledNotification]: ...

    async def async_schedule(self, request: NotificationRequest) -> str: ...

    async def async_cancel(self, notification_id: str) -> None: ...


def build_request(schedule: MedicationSchedule, dose: DoseInstant) -> NotificationRequest:
    """Reminder for one dose, moved earlier by the schedule's lead time."""
    pet = schedule.display_pet
    message = f"It's time for {pet} to take {dose.dose_amount:g} {dose.dose_unit} of {schedule.name}"
    fires_at = dose.scheduled_time
    lead = schedule.reminder_settings.lead_minutes
    if lead > 0:
        fires_at -= timedelta(minutes=lead)
        message = f"Reminder: {message} at {format_time_of_day(dose.scheduled_time.timetz())}"
    return NotificationRequest(
        medication_id=dose.medication_id,
        pet_id=dose.pet_id,
        fires_at=fires_at,
        title=f"Time for {schedule.name}",
        message=message,
        notify_services=schedule.reminder_settings.notify_services,
    )


def _priority(request: NotificationRequest) -> tuple[datetime, str, str]:
    return (request.fires_at, request.pet_id, request.medication_id)


class NotificationReconciler:
    """Turn active schedules into the add/cancel operations for a notifier."""

    def __init__(self, generator: DoseScheduleGenerator | None = None) -> None:
        self.generator = generator or DoseScheduleGenerator()

    def reconcile(
        self,
        schedules: Iterable[MedicationSchedule],
        horizon: timedelta,
        current: Sequence[ScheduledNotification],
        quota: int,
        *,
        now: datetime,
    ) -> ReconcilePlan:
        """Plan the operations that converge `current` on the desired set.

        Desired notifications beyond `quota` are dropped soonest-first and the
        plan is flagged as truncated. A schedule that fails validation is
        reported in `failures` and contributes nothing.
        """
        window_end = now + horizon
        desired: dict[tuple[str, datetime], NotificationRequest] = {}
        warnings: list[str] = []
        failures: list[OperationFailure] = []

        for schedule in sorted(schedules, key=lambda s: (s.pet_id, s.id)):
            if not schedule.reminder_settings.enabled:
                continue
            try:
                result = self.generator.generate(schedule, now, window_end)
            except ValidationError as err:
                _LOGGER.warning("Skipping reminders for %s: %s", schedule.id or schedule.name, err.reason)
                failures.append(OperationFailure(f"generate:{schedule.id}", str(err)))
                continue
            warnings.extend(result.warnings)
            for dose in result.doses:
                request = build_request(schedule, dose)
                # the notifier only accepts instants strictly in the future
                if request.fires_at <= now:
                    continue
                desired.setdefault(request.key, request)

        ranked = sorted(desired.values(), key=_priority)
        limit = max(0, quota)
        kept = ranked[:limit]
        truncated = len(ranked) > limit
        if truncated:
            _LOGGER.warning(
                "%d reminder(s) requested but the notification quota is %d; dropping the latest %d",
                len(ranked),
                limit,
                len(ranked) - limit,
            )

        kept_keys = {r.key for r in kept}
        seen: set[tuple[str, datetime]] = set()
        to_cancel: list[str] = []
        for notification in sorted(current, key=lambda n: (n.fires_at, n.id)):
            if notification.key in kept_keys and notification.key not in seen:
                seen.add(notification.key)
                continue
            to_cancel.append(notification.id)
        to_add = tuple(r for r in kept if r.key not in seen)

        return ReconcilePlan(
            to_add=to_add,
            to_cancel=tuple(to_cancel),
            truncated=truncated,
            warnings=tuple(warnings),
            failures=tuple(failures),
        )

    async def async_apply(
        self,
        plan: ReconcilePlan,
        backend: NotificationBackend,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ApplyOutcome:
        """Issue the plan's operations, cancellations first.

        Every operation stands alone: a failure or timeout is collected and
        the rest still run. Setting `cancel_event` stops issuing operations.
        """
        added = cancelled = 0
        failures: list[OperationFailure] = []
        aborted = False

        operations: list[tuple[str, object]] = [(f"cancel:{nid}", nid) for nid in plan.to_cancel]
        operations += [(f"schedule:{r.medication_id}@{r.fires_at.isoformat()}", r) for r in plan.to_add]

        for operation, target in operations:
            if cancel_event is not None and cancel_event.is_set():
                _LOGGER.debug("Reminder reconciliation cancelled before %s", operation)
                aborted = True
                break
            try:
                async with asyncio.timeout(timeout):
                    if isinstance(target, NotificationRequest):
                        await backend.async_schedule(target)
                        added += 1
                    else:
                        await backend.async_cancel(target)
                        cancelled += 1
            except TimeoutError:
                _LOGGER.warning("%s timed out after %ss", operation, timeout)
                failures.append(OperationFailure(operation, f"timed out after {timeout}s"))
            except HomeAssistantError as err:
                _LOGGER.warning("%s failed: %s", operation, err)
                failures.append(OperationFailure(operation, str(err)))

        return ApplyOutcome(added=added, cancelled=cancelled, failures=tuple(failures), aborted=aborted)
