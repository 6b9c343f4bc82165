import pytest


@pytest.fixture
def expected_lingering_timers() -> bool:
    # Reminder and refresh timers stay scheduled until the entry is unloaded
    return True
