import time
from unittest.mock import MagicMock

from app import rate_limiter
from app.rate_limiter import check_rate_limit


def test_memory_only_window_blocks_after_limit():
    results = [check_rate_limit("login:10.0.0.1", 3, 60, None) for _ in range(4)]

    assert [allowed for allowed, _, _ in results] == [True, True, True, False]
    assert [count for _, count, _ in results] == [1, 2, 3, 3]
    assert 0 < results[-1][2] <= 60


def test_keys_are_counted_separately():
    check_rate_limit("login:10.0.0.1", 1, 60, None)
    allowed, count, _ = check_rate_limit("login:10.0.0.2", 1, 60, None)
    assert allowed is True
    assert count == 1


def test_new_window_is_seeded_from_redis():
    redis_client = MagicMock()
    redis_client.get.return_value = "3"
    redis_client.ttl.return_value = 30

    allowed, count, ttl = check_rate_limit("bulk:10.0.0.1", 5, 60, redis_client)

    assert allowed is True
    assert count == 4
    assert ttl == 30
    redis_client.get.assert_called_once_with("bulk:10.0.0.1")
    # Freshly seeded entries are not written straight back
    redis_client.set.assert_not_called()


def test_missing_redis_key_starts_fresh_window():
    redis_client = MagicMock()
    redis_client.get.return_value = None
    redis_client.ttl.return_value = -2

    allowed, count, ttl = check_rate_limit("cron:global", 2, 60, redis_client)
    assert (allowed, count, ttl) == (True, 1, 60)


def test_expired_window_resets_and_syncs_to_redis():
    redis_client = MagicMock()
    rate_limiter.memory_cache["prospect:10.0.0.1"] = {
        "count": 5,
        "reset_time": int(time.time()) - 1,
        "last_redis_sync": int(time.time()) - 1,
    }

    allowed, count, _ = check_rate_limit("prospect:10.0.0.1", 5, 60, redis_client)

    assert allowed is True
    assert count == 1
    redis_client.set.assert_called_once()
    args, kwargs = redis_client.set.call_args
    assert args == ("prospect:10.0.0.1", 1)
    assert 0 < kwargs["ex"] <= 60


def test_redis_errors_fall_back_to_memory():
    redis_client = MagicMock()
    redis_client.get.side_effect = ConnectionError("redis down")

    allowed, count, _ = check_rate_limit("login:10.0.0.9", 5, 60, redis_client)
    assert allowed is True
    assert count == 1
