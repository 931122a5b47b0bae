"""Container runtime clients for berth."""

from berth.providers.base import (
    ContainerInfo,
    CreateRequest,
    RuntimeClient,
    RuntimeContainer,
)
from berth.providers.docker_runtime import DockerRuntime

__all__ = [
    "ContainerInfo",
    "CreateRequest",
    "RuntimeClient",
    "RuntimeContainer",
    "DockerRuntime",
]
