import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import pytest  # noqa: E402

from app import rate_limiter  # noqa: E402


@pytest.fixture(autouse=True)
def memory_only_rate_limits(monkeypatch):
    """Every test starts with empty windows and never reaches for Redis"""
    monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: None)
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()
