# tests/integration/conftest.py — v8
"""Shared fixtures for integration tests.

Most integration tests run against the real file-backed stores (JSON cache,
SQLite cache, checkpoint files) under tmp_path and need no services.

Redis tests use testcontainers:
- session scope: the container starts once per pytest session
- function scope: each test flushes the database for isolation

Custom container wrapper:
- Uses DockerContainer directly with bridge network IP + internal port
- Required for devcontainer with docker-outside-of-docker (socket mount)
- Built-in testcontainers library returns localhost:mapped_port which is
  unreachable from inside a devcontainer

Changelog:
    v8: Reduced to the Redis cache container; file-backed store fixtures.
    v6: Bridge IP pattern for all containers.
"""

from __future__ import annotations

import logging
import time

import pytest

from wcagverify.cache.verification_cache import VerificationCache
from wcagverify.checkpoint.store import CheckpointStore

logger = logging.getLogger(__name__)


# ── Pytest markers ──────────────────────────────────────────────

def pytest_configure(config):
    config.addinivalue_line("markers", "redis: marks tests requiring Redis container")


# =====================================================================
#  DEVCONTAINER NETWORKING HELPERS
# =====================================================================

def _get_container_bridge_ip(container, max_attempts: int = 10) -> str:
    """Get container bridge network IP with retries.

    In docker-outside-of-docker setups, containers are on the host Docker
    daemon. The devcontainer must access them via bridge IP, not localhost.
    """
    for attempt in range(max_attempts):
        try:
            wrapped = container.get_wrapped_container()
            wrapped.reload()
            networks = wrapped.attrs.get("NetworkSettings", {}).get("Networks", {})
            for net_name, net_info in networks.items():
                ip = net_info.get("IPAddress", "")
                if ip:
                    logger.info(
                        "Container %s IP: %s (network: %s, attempt %d)",
                        wrapped.short_id, ip, net_name, attempt + 1,
                    )
                    return ip
            logger.debug("Container IP empty, attempt %d/%d", attempt + 1, max_attempts)
        except Exception as e:
            logger.debug("Error getting IP (attempt %d): %s", attempt + 1, e)
        time.sleep(0.5)

    raise RuntimeError(
        f"Could not obtain container bridge IP after {max_attempts} attempts"
    )


def _docker_available() -> bool:
    """Check if Docker daemon is reachable."""
    try:
        import docker
        client = docker.from_env()
        client.ping()
        return True
    except Exception:
        return False


# =====================================================================
#  FILE-BACKED STORES (no Docker required)
# =====================================================================

@pytest.fixture
def checkpoint_store(tmp_path) -> CheckpointStore:
    return CheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def json_cache(tmp_path) -> VerificationCache:
    from wcagverify.cache.json_store import JsonCacheStore
    return VerificationCache(JsonCacheStore(tmp_path / "cache"), ttl_days=7)


@pytest.fixture
def sqlite_cache(tmp_path):
    from wcagverify.cache.sqlite_store import SqliteCacheStore
    cache = VerificationCache(SqliteCacheStore(tmp_path / "cache.db"), ttl_days=7)
    yield cache
    cache.store.close()


# =====================================================================
#  REDIS CONTAINER (session scope, bridge IP)
# =====================================================================

REDIS_IMAGE = "redis:7-alpine"
REDIS_INTERNAL_PORT = 6379


@pytest.fixture(scope="session")
def redis_container():
    if not _docker_available():
        pytest.skip("Docker not available")
    pytest.importorskip("redis")

    from testcontainers.core.container import DockerContainer
    from testcontainers.core.waiting_utils import wait_for_logs

    container = DockerContainer(REDIS_IMAGE).with_exposed_ports(REDIS_INTERNAL_PORT)
    container.start()
    wait_for_logs(container, predicate=r"Ready to accept connections", timeout=60)

    ip = _get_container_bridge_ip(container)
    logger.info("Redis ready at %s:%d", ip, REDIS_INTERNAL_PORT)
    yield {"host": ip, "port": REDIS_INTERNAL_PORT}
    container.stop()


@pytest.fixture(scope="session")
def redis_url(redis_container) -> str:
    c = redis_container
    return f"redis://{c['host']}:{c['port']}/0"


@pytest.fixture
def redis_store(redis_url):
    from wcagverify.cache.redis_store import RedisCacheStore
    store = RedisCacheStore(redis_url)
    store._client.flushdb()
    yield store
    try:
        store._client.flushdb()
    except Exception as e:
        logger.warning("Redis cleanup failed: %s", e)
    store.close()
