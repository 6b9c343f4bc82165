"""Dose log persistence."""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List

from homeassistant.core import HomeAssistant
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.storage import Store
from homeassistant.util import dt as dt_util

from .const import (
    HISTORY_STORE_KEY,
    HISTORY_STORE_VERSION,
    SIGNAL_HISTORY_UPDATED,
)

MAX_EVENTS = 500
RETENTION_DAYS = 60


class DoseHistory:
    def __init__(self, hass: HomeAssistant) -> None:
        self.hass = hass
        self._store: Store = Store(hass, HISTORY_STORE_VERSION, HISTORY_STORE_KEY)
        self._events: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    async def async_load(self) -> None:
        data = await self._store.async_load() or {}
        events = data.get("events", {})
        # Basic validation
        for med_id, lst in events.items():
            if isinstance(lst, list):
                self._events[med_id] = [e for e in lst if isinstance(e, dict) and "status" in e and "timestamp" in e]

    async def _async_save(self) -> None:
        await self._store.async_save({"events": dict(self._events)})

    async def record(self, medication_id: str, status: str, timestamp_iso: str, scheduled_iso: str | None = None) -> None:
        lst = self._events[medication_id]
        event = {"status": status, "timestamp": timestamp_iso}
        if scheduled_iso:
            event["scheduled_time"] = scheduled_iso
        lst.append(event)
        # prune to last 60 days or last 500 events
        cutoff = dt_util.now() - timedelta(days=RETENTION_DAYS)
        pruned: List[Dict[str, Any]] = []
        for e in lst[-MAX_EVENTS:]:
            ts = dt_util.parse_datetime(e.get("timestamp"))
            if ts is None:
                continue
            if ts >= cutoff:
                pruned.append(e)
        self._events[medication_id] = pruned
        await self._async_save()
        async_dispatcher_send(self.hass, SIGNAL_HISTORY_UPDATED, medication_id)

    def recent(self, medication_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return list(self._events.get(medication_id, []))[-limit:]

    def last(self, medication_id: str) -> Dict[str, Any] | None:
        lst = self._events.get(medication_id)
        return dict(lst[-1]) if lst else None

    def counts_since(self, medication_id: str, since: datetime) -> Dict[str, int]:
        given = skipped = 0
        for e in self._events.get(medication_id, []):
            ts = dt_util.parse_datetime(e.get("timestamp"))
            if ts is None or ts < since:
                continue
            status = str(e.get("status")).lower()
            if status.startswith("given"):
                given += 1
            elif status.startswith("skip"):
                skipped += 1
        return {"given": given, "skipped": skipped}
