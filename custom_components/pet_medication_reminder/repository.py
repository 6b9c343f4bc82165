"""Read-only view of the medications configured as config entries."""
from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry

from .const import STATUS_ACTIVE
from .models import MedicationSchedule

_LOGGER = logging.getLogger(__name__)


def schedule_from_entry(entry: ConfigEntry) -> MedicationSchedule:
    """Options override the data captured when the entry was created."""
    return MedicationSchedule.from_dict({**entry.data, **entry.options})


class MedicationRepository:
    """Medication records keyed by medication id.

    Entries are registered while loaded; the scheduler only reads.
    """

    def __init__(self) -> None:
        self._by_entry: dict[str, MedicationSchedule] = {}

    def register(self, entry: ConfigEntry) -> MedicationSchedule:
        schedule = schedule_from_entry(entry)
        self._by_entry[entry.entry_id] = schedule
        _LOGGER.debug("Registered medication %s for pet %s", schedule.id, schedule.pet_id)
        return schedule

    def unregister(self, entry_id: str) -> None:
        self._by_entry.pop(entry_id, None)

    def get_active_medications(self, pet_id: str | None = None) -> list[MedicationSchedule]:
        out = [
            s
            for s in self._by_entry.values()
            if s.status == STATUS_ACTIVE and (pet_id is None or s.pet_id == pet_id)
        ]
        return sorted(out, key=lambda s: (s.pet_id, s.id))

    def get_by_entry(self, entry_id: str) -> MedicationSchedule | None:
        return self._by_entry.get(entry_id)

    def get_medication_by_id(self, medication_id: str) -> MedicationSchedule | None:
        for schedule in self._by_entry.values():
            if schedule.id == medication_id:
                return schedule
        return None
