import os
import sys
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from workshop_booking.schemas.scheduling import DayHours, WeeklyOperatingHours


@pytest.fixture
def mock_datetime():
    """Fixed clock: Monday 2025-02-24 09:00, one week before the test bookings."""
    return datetime(2025, 2, 24, 9, 0, 0)


@pytest.fixture
def standard_hours():
    """Platform default: Mon-Fri 08:00-17:00, Sat 08:00-12:00, Sun closed."""
    return WeeklyOperatingHours.default()


@pytest.fixture
def weekday_hours():
    """Mon-Fri 08:00-17:00 with the whole weekend closed."""
    open_day = DayHours(open="08:00", close="17:00", closed=False)
    closed_day = DayHours(open="00:00", close="00:00", closed=True)
    return WeeklyOperatingHours(
        monday=open_day,
        tuesday=open_day,
        wednesday=open_day,
        thursday=open_day,
        friday=open_day,
        saturday=closed_day,
        sunday=closed_day,
    )


@pytest.fixture
def mock_db():
    """Mock database session."""
    db = AsyncMock()
    # Set up common mock patterns for database operations
    db.add = Mock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    return db


@pytest.fixture
def mock_lock_client():
    """Mock Redis slot lock client that always grants the lock."""
    client = Mock()
    client.acquire_slot_lock = AsyncMock(return_value=True)
    client.release_slot_lock = AsyncMock(return_value=True)
    return client


# Import all scheduling fixtures to make them available
pytest_plugins = ["tests.fixtures.scheduling_fixtures"]
