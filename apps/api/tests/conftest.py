from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import RedisError

from config import settings
from main import app
from routers import rate_limit


@pytest.fixture(autouse=True)
def banner_rate_limits_off():
    """Content routes run unthrottled unless a test opts back in."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def enforced_rate_limits(banner_rate_limits_off, monkeypatch):
    """Throttle at 2 requests per window, counted in-process with Redis down."""
    monkeypatch.setattr(settings, "FEED_RATE_LIMIT_PER_MINUTE", 2)
    app.state.disable_rate_limits = False
    with patch.object(
        rate_limit,
        "_consume_redis_quota",
        AsyncMock(side_effect=RedisError("redis unavailable")),
    ):
        yield rate_limit._local_counters
