"""
Shared test fixtures.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from rtb_assets.core.notifications import reset_notification_stats
from rtb_assets.core.rate_limit import reset_memory_windows
from rtb_assets.core.token_blacklist import clear_memory_blacklist

# Registers every mapped class so relationships resolve when models are built
from rtb_assets.modules.applications import models as _applications_models  # noqa: F401
from rtb_assets.modules.devices import models as _devices_models  # noqa: F401
from rtb_assets.modules.schools import models as _schools_models  # noqa: F401
from rtb_assets.modules.users import models as _users_models  # noqa: F401


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.delete = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear in-memory fallbacks and counters between tests."""
    reset_notification_stats()
    reset_memory_windows()
    clear_memory_blacklist()
    yield
