"""Shared fixtures: per-node settings, a shared coordination store and an unreachable one."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional, Set

import pytest
from fastapi.testclient import TestClient

from gateway.config import Settings
from gateway.coordination import CoordinationStore, InMemoryCoordinationStore
from gateway.errors import CoordinationUnavailable
from gateway.main import create_app
from gateway.storage import LocalObjectStore


class UnreachableStore(CoordinationStore):
    """Coordination store whose every call fails like a refused connection."""

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self, operation: str) -> CoordinationUnavailable:
        self.calls += 1
        return CoordinationUnavailable(operation, ConnectionRefusedError("connection refused"))

    async def set(self, key: str, value: str) -> None:
        raise self._fail("set")

    async def get(self, key: str) -> Optional[str]:
        raise self._fail("get")

    async def delete(self, key: str) -> None:
        raise self._fail("delete")

    async def set_add(self, name: str, member: str) -> None:
        raise self._fail("sadd")

    async def set_members(self, name: str) -> Set[str]:
        raise self._fail("smembers")

    async def ping(self) -> bool:
        return False


def node_settings(root: Path, name: str, port: int, **overrides) -> Settings:
    values = dict(
        root_dir=str(root / name),
        port=port,
        public_host=name,
        node_id=name,
        redis_enabled=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "storage")


@pytest.fixture
def shared_store() -> InMemoryCoordinationStore:
    return InMemoryCoordinationStore()


@pytest.fixture
def unreachable_store() -> UnreachableStore:
    return UnreachableStore()


@pytest.fixture
def node_a(tmp_path: Path, shared_store: InMemoryCoordinationStore) -> Iterator[TestClient]:
    app = create_app(node_settings(tmp_path, "node-a", 3001), coordination=shared_store)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def node_b(tmp_path: Path, shared_store: InMemoryCoordinationStore) -> Iterator[TestClient]:
    app = create_app(node_settings(tmp_path, "node-b", 3002), coordination=shared_store)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def isolated_node(tmp_path: Path, unreachable_store: UnreachableStore) -> Iterator[TestClient]:
    """A node whose coordination layer is down."""
    app = create_app(node_settings(tmp_path, "node-c", 3003), coordination=unreachable_store)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def redis_down_node(tmp_path: Path) -> Iterator[TestClient]:
    """A node configured for a real Redis server that refuses connections."""
    settings = node_settings(
        tmp_path, "node-d", 3004,
        redis_enabled=True, redis_host="127.0.0.1", redis_port=1, coordination_timeout=0.5,
    )
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def make_node(tmp_path: Path, shared_store: InMemoryCoordinationStore):
    """Factory for extra nodes sharing the test's coordination store (lifespan not started)."""

    def factory(name: str, port: int, **overrides) -> TestClient:
        settings = node_settings(tmp_path, name, port, **overrides)
        return TestClient(create_app(settings, coordination=shared_store))

    return factory
