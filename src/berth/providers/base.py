"""Base runtime client interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from berth.utils.ports import PortInfo, PortKey


ProgressCallback = Callable[[Dict[str, Any]], None]


@dataclass
class ContainerInfo:
    """Result of inspecting a single container."""
    id: str
    name: str
    image: str
    status: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class RuntimeContainer:
    """A container as reported by a runtime listing."""
    id: str
    names: List[str]
    image: str
    state: str
    ports: List[PortInfo] = field(default_factory=list)

    @property
    def logical_name(self) -> str:
        """First name with the runtime's leading "/" removed."""
        if not self.names:
            return ""
        return self.names[0].lstrip("/")


@dataclass
class CreateRequest:
    """Everything a runtime needs to create one container."""
    name: str
    image: str
    env: List[str] = field(default_factory=list)
    exposed_ports: List[PortKey] = field(default_factory=list)
    port_bindings: Dict[str, str] = field(default_factory=dict)
    command: Optional[List[str]] = None
    volumes: List[str] = field(default_factory=list)
    networks: List[str] = field(default_factory=list)


class RuntimeClient(ABC):
    """Interface to a container runtime daemon.

    Failures raise RuntimeClientError. Inspect calls return None when the
    object does not exist rather than raising.
    """

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the daemon answers."""
        pass

    @abstractmethod
    async def inspect_image(self, reference: str) -> Optional[Dict[str, Any]]:
        """Inspect an image by reference."""
        pass

    @abstractmethod
    async def pull_image(self, reference: str, on_progress: Optional[ProgressCallback] = None) -> None:
        """Pull an image, feeding each progress event to on_progress."""
        pass

    @abstractmethod
    async def inspect_container(self, name: str) -> Optional[ContainerInfo]:
        """Inspect a container by name."""
        pass

    @abstractmethod
    async def create_container(self, request: CreateRequest) -> str:
        """Create a container and return the runtime id."""
        pass

    @abstractmethod
    async def start_container(self, name: str) -> None:
        pass

    @abstractmethod
    async def stop_container(self, name: str) -> None:
        pass

    @abstractmethod
    async def restart_container(self, name: str) -> None:
        pass

    @abstractmethod
    async def remove_container(self, name: str, force: bool = True, remove_volumes: bool = True) -> None:
        pass

    @abstractmethod
    async def list_containers(self, all: bool = True) -> List[RuntimeContainer]:
        """List containers, including stopped ones when all is set."""
        pass

    @abstractmethod
    async def fetch_logs(self, name: str, tail_lines: int = 100) -> bytes:
        """Read the last tail_lines of a container's stdout and stderr."""
        pass

    async def close(self) -> None:
        """Release the connection."""
        return None
