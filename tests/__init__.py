#!/usr/bin/env python3
"""
Test suite configuration and utilities.

All tests can be run with standard Python tools:

    # Run all tests (unit + Redis if available)
    python -m pytest tests/ -v

    # Run only unit tests (no Redis required)
    python -m pytest tests/ -v -m "not redis"

Redis Setup:
    Unit tests use the in-memory double in tests/mocks. Integration tests
    need a disposable Redis and are skipped unless one is reachable:

    docker run --rm -p 6380:6379 redis:7
    export TEST_REDIS_URL="redis://localhost:6380/15"
"""

import os
from typing import Optional

TEST_REDIS_URL = os.environ.get("TEST_REDIS_URL", "redis://localhost:6380/15")

# Check if we should force skip Redis tests
SKIP_REDIS_TESTS = os.environ.get("SKIP_REDIS_TESTS", "false").lower() == "true"


def is_redis_available() -> bool:
    """Check if the test Redis server answers PING."""
    if SKIP_REDIS_TESTS:
        return False

    try:
        from redis import Redis

        return bool(Redis.from_url(TEST_REDIS_URL, socket_connect_timeout=1).ping())
    except Exception:
        return False


# Global flag to cache Redis availability check
_redis_available: Optional[bool] = None


def check_redis_available() -> bool:
    """Cached check for Redis availability."""
    global _redis_available
    if _redis_available is None:
        _redis_available = is_redis_available()
    return _redis_available
