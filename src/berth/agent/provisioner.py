"""Provisioning of runtime containers from specifications."""

import logging
from typing import Any, Dict

from berth.errors import (
    ImagePullFailed,
    ReplaceFailed,
    RuntimeClientError,
    RuntimeOperationFailed,
)
from berth.models.container import ContainerSpec
from berth.providers.base import CreateRequest, RuntimeClient
from berth.utils.ports import parse_ports


logger = logging.getLogger(__name__)


def build_create_request(spec: ContainerSpec) -> CreateRequest:
    """Translate a spec into a runtime create request.

    Raises InvalidPortMapping for a malformed ports field. The result only
    depends on its input, so equal specs yield equal requests.
    """
    mapping = parse_ports(spec.ports)
    env = sorted(f"{key}={value}" for key, value in spec.env.items())
    command = spec.command.split() if spec.command and spec.command.strip() else None

    return CreateRequest(
        name=spec.name,
        image=spec.image,
        env=env,
        exposed_ports=sorted(mapping.exposed),
        port_bindings=mapping.docker_bindings(),
        command=command,
        volumes=list(spec.volumes),
        networks=list(spec.networks),
    )


class Provisioner:
    """Ensures exactly one runtime container exists per specification."""

    def __init__(self, runtime: RuntimeClient):
        """Initialize provisioner."""
        self.runtime = runtime

    async def provision(self, spec: ContainerSpec) -> str:
        """Create a fresh container for spec, replacing any same-named one.

        Returns the runtime id of the new container, which is left in the
        created state. Not atomic: if create fails after an existing
        container was removed, no container with the name remains.
        """
        request = build_create_request(spec)

        await self._ensure_image(spec.image)
        await self._remove_existing(spec.name)

        try:
            runtime_id = await self.runtime.create_container(request)
        except RuntimeClientError as e:
            logger.error(f"Failed to create container {spec.name}; no container with this name exists now: {e}")
            raise RuntimeOperationFailed("create", spec.name, e) from e

        logger.info(f"Created container {spec.name} ({runtime_id[:12]}) from image {spec.image}")
        return runtime_id

    async def _ensure_image(self, image: str):
        """Pull image unless it is already present."""
        try:
            if await self.runtime.inspect_image(image) is not None:
                logger.debug(f"Image {image} already present")
                return

            logger.info(f"Pulling image {image}")
            await self.runtime.pull_image(image, on_progress=self._log_progress)
        except RuntimeClientError as e:
            logger.error(f"Failed to pull image {image}: {e}")
            raise ImagePullFailed(image, e.cause or e) from e

        logger.info(f"Image {image} pulled successfully")

    async def _remove_existing(self, name: str):
        """Force-remove a container already using name."""
        try:
            existing = await self.runtime.inspect_container(name)
            if existing is None:
                return
            logger.info(f"Replacing existing container {name} ({existing.id[:12]})")
            await self.runtime.remove_container(name, force=True, remove_volumes=True)
        except RuntimeClientError as e:
            logger.error(f"Failed to remove existing container {name}: {e}")
            raise ReplaceFailed(name, e.cause or e) from e

    @staticmethod
    def _log_progress(event: Dict[str, Any]):
        status = event.get("status")
        if status:
            progress = event.get("progress", "")
            layer = event.get("id", "")
            logger.debug(f"pull {layer} {status} {progress}".strip())
