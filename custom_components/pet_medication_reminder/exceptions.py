"""Errors raised by Pet Medication Reminder."""
from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class ValidationError(HomeAssistantError):
    """A medication schedule cannot be turned into doses."""

    def __init__(self, medication_id: str | None, reason: str) -> None:
        self.medication_id = medication_id
        self.reason = reason
        super().__init__(f"Invalid medication schedule {medication_id or '<unknown>'}: {reason}")


class TransportError(HomeAssistantError):
    """The notification backend refused or failed an operation."""
