"""Runtime client backed by the Docker daemon."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import docker
from docker.errors import DockerException, NotFound
from requests.exceptions import RequestException

from berth.errors import RuntimeClientError
from berth.models.config import RuntimeConfig
from berth.providers.base import (
    ContainerInfo,
    CreateRequest,
    ProgressCallback,
    RuntimeClient,
    RuntimeContainer,
)
from berth.utils.ports import PortInfo


logger = logging.getLogger(__name__)

# transport failures (daemon down, timeouts) surface from docker-py as requests errors
DAEMON_ERRORS = (DockerException, RequestException)


def _port_infos(raw_ports: Optional[List[Dict[str, Any]]]) -> List[PortInfo]:
    ports = []
    for p in raw_ports or []:
        ports.append(PortInfo(
            private_port=int(p.get("PrivatePort", 0)),
            public_port=int(p["PublicPort"]) if p.get("PublicPort") else None,
            protocol=p.get("Type", "tcp"),
        ))
    return ports


class DockerRuntime(RuntimeClient):
    """Runtime client using the docker SDK.

    The SDK is synchronous, so every daemon call is run in a worker thread.
    """

    def __init__(self, config: Optional[RuntimeConfig] = None, client: Optional[docker.DockerClient] = None):
        """Initialize the runtime client."""
        self.config = config or RuntimeConfig()
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        """Docker client, connected on first use."""
        if self._client is None:
            try:
                if self.config.base_url:
                    self._client = docker.DockerClient(
                        base_url=self.config.base_url,
                        timeout=self.config.timeout,
                    )
                else:
                    self._client = docker.from_env(timeout=self.config.timeout)
            except DAEMON_ERRORS as e:
                raise RuntimeClientError("connect", self.config.base_url or "environment", e) from e
        return self._client

    @property
    def api(self):
        """Low-level API client."""
        return self.client.api

    async def _call(self, operation: str, target: str, fn: Callable, *args, **kwargs):
        """Run a blocking SDK call in a thread, translating daemon errors."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except DAEMON_ERRORS as e:
            raise RuntimeClientError(operation, target, e) from e

    async def _api(self, operation: str, target: str, method: str, *args, **kwargs):
        """Call a low-level API method by name in a worker thread."""

        def _run():
            return getattr(self.api, method)(*args, **kwargs)

        return await self._call(operation, target, _run)

    async def ping(self) -> bool:
        """Check that the daemon answers."""
        try:
            return bool(await self._api("ping", "daemon", "ping"))
        except RuntimeClientError as e:
            logger.warning(f"Docker daemon not reachable: {e}")
            return False

    async def inspect_image(self, reference: str) -> Optional[Dict[str, Any]]:
        """Inspect an image, None if it is not present locally."""
        try:
            return await asyncio.to_thread(lambda: self.api.inspect_image(reference))
        except NotFound:
            return None
        except DAEMON_ERRORS as e:
            raise RuntimeClientError("inspect", reference, e) from e

    async def pull_image(self, reference: str, on_progress: Optional[ProgressCallback] = None) -> None:
        """Pull an image, consuming the daemon's progress stream."""

        def _pull():
            for event in self.api.pull(reference, stream=True, decode=True):
                if "error" in event:
                    detail = event.get("errorDetail", {}).get("message") or event["error"]
                    raise RuntimeClientError("pull", reference, RuntimeError(detail))
                if on_progress:
                    on_progress(event)

        await self._call("pull", reference, _pull)

    async def inspect_container(self, name: str) -> Optional[ContainerInfo]:
        """Inspect a container, None if no container has that name."""
        try:
            data = await asyncio.to_thread(lambda: self.api.inspect_container(name))
        except NotFound:
            return None
        except DAEMON_ERRORS as e:
            raise RuntimeClientError("inspect", name, e) from e

        return ContainerInfo(
            id=data.get("Id", ""),
            name=data.get("Name", name).lstrip("/"),
            image=data.get("Config", {}).get("Image", ""),
            status=data.get("State", {}).get("Status", ""),
            raw=data,
        )

    async def create_container(self, request: CreateRequest) -> str:
        """Create a container and return its id."""

        def _create() -> str:
            api = self.api
            host_config = api.create_host_config(
                port_bindings=request.port_bindings or None,
                binds=request.volumes or None,
            )
            networking_config = None
            if request.networks:
                networking_config = api.create_networking_config({
                    request.networks[0]: api.create_endpoint_config(),
                })

            response = api.create_container(
                image=request.image,
                command=request.command,
                name=request.name,
                environment=request.env or None,
                ports=list(request.exposed_ports) or None,
                host_config=host_config,
                networking_config=networking_config,
            )
            container_id = response["Id"]

            for network in request.networks[1:]:
                api.connect_container_to_network(container_id, network)

            return container_id

        return await self._call("create", request.name, _create)

    async def start_container(self, name: str) -> None:
        await self._api("start", name, "start", name)

    async def stop_container(self, name: str) -> None:
        await self._api("stop", name, "stop", name)

    async def restart_container(self, name: str) -> None:
        await self._api("restart", name, "restart", name)

    async def remove_container(self, name: str, force: bool = True, remove_volumes: bool = True) -> None:
        await self._api("remove", name, "remove_container", name, v=remove_volumes, force=force)

    async def list_containers(self, all: bool = True) -> List[RuntimeContainer]:
        """List containers known to the daemon."""
        raw = await self._api("list", "containers", "containers", all=all)
        return [
            RuntimeContainer(
                id=c.get("Id", ""),
                names=list(c.get("Names") or []),
                image=c.get("Image", ""),
                state=c.get("State", ""),
                ports=_port_infos(c.get("Ports")),
            )
            for c in raw
        ]

    async def fetch_logs(self, name: str, tail_lines: int = 100) -> bytes:
        """Read the tail of a container's output."""
        return await self._api(
            "logs", name, "logs", name,
            stdout=True, stderr=True, tail=tail_lines,
        )

    async def close(self) -> None:
        """Close the daemon connection."""
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
