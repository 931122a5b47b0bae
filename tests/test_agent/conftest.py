"""Shared fixtures for agent tests."""

import itertools
from typing import Any, Dict, List, Optional

import pytest

from berth.errors import RuntimeClientError
from berth.inventory import MemoryInventory
from berth.providers.base import (
    ContainerInfo,
    CreateRequest,
    RuntimeClient,
    RuntimeContainer,
)


class FakeRuntime(RuntimeClient):
    """In-memory runtime recording every call.

    Tests script failures by putting an operation name in ``fail`` and the
    listing by filling ``listing``.
    """

    def __init__(self):
        self.images = set()
        self.containers: Dict[str, ContainerInfo] = {}
        self.listing: List[RuntimeContainer] = []
        self.logs: Dict[str, bytes] = {}
        self.fail = set()
        self.calls: List[tuple] = []
        self.requests: List[CreateRequest] = []
        self._ids = itertools.count(1)

    def _check(self, operation: str, target: str):
        self.calls.append((operation, target))
        if operation in self.fail:
            raise RuntimeClientError(operation, target, RuntimeError(f"{operation} failed"))

    def ops(self, *names) -> List[str]:
        """Names of recorded operations, optionally filtered."""
        return [op for op, _ in self.calls if not names or op in names]

    async def ping(self) -> bool:
        return "ping" not in self.fail

    async def inspect_image(self, reference: str) -> Optional[Dict[str, Any]]:
        self._check("inspect_image", reference)
        return {"Id": reference} if reference in self.images else None

    async def pull_image(self, reference: str, on_progress=None) -> None:
        self._check("pull", reference)
        if on_progress:
            on_progress({"status": "Downloading", "id": "layer"})
        self.images.add(reference)

    async def inspect_container(self, name: str) -> Optional[ContainerInfo]:
        self._check("inspect", name)
        return self.containers.get(name)

    async def create_container(self, request: CreateRequest) -> str:
        self._check("create", request.name)
        container_id = f"id-{next(self._ids)}"
        self.requests.append(request)
        self.containers[request.name] = ContainerInfo(
            id=container_id, name=request.name, image=request.image, status="created",
        )
        return container_id

    def _set_state(self, name: str, status: str):
        if name in self.containers:
            self.containers[name].status = status

    async def start_container(self, name: str) -> None:
        self._check("start", name)
        self._set_state(name, "running")

    async def stop_container(self, name: str) -> None:
        self._check("stop", name)
        self._set_state(name, "exited")

    async def restart_container(self, name: str) -> None:
        self._check("restart", name)
        self._set_state(name, "running")

    async def remove_container(self, name: str, force: bool = True, remove_volumes: bool = True) -> None:
        self._check("remove", name)
        self.containers.pop(name, None)

    async def list_containers(self, all: bool = True) -> List[RuntimeContainer]:
        self._check("list", "*")
        return list(self.listing)

    async def fetch_logs(self, name: str, tail_lines: int = 100) -> bytes:
        self._check("logs", name)
        return self.logs.get(name, b"")


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def store():
    return MemoryInventory()
