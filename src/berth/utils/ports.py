"""Port mapping parsing."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Set, Tuple, Union

from berth.errors import InvalidPortMapping


DEFAULT_PROTOCOL = "tcp"
PROTOCOLS = {"tcp", "udp", "sctp"}

# (container port, protocol)
PortKey = Tuple[int, str]


@dataclass
class PortMapping:
    """Resolved port bindings for a container."""
    bindings: Dict[PortKey, str] = field(default_factory=dict)
    exposed: Set[PortKey] = field(default_factory=set)

    def __bool__(self) -> bool:
        return bool(self.bindings)

    def docker_bindings(self) -> Dict[str, str]:
        """Bindings keyed the way the docker API expects ("80/tcp")."""
        return {f"{port}/{proto}": host for (port, proto), host in self.bindings.items()}


@dataclass(frozen=True)
class PortInfo:
    """A port as observed on a runtime container."""
    private_port: int
    public_port: Optional[int] = None
    protocol: str = DEFAULT_PROTOCOL


def _parse_port(value: str, entry: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise InvalidPortMapping(entry, f"port {value!r} is not a number") from None
    if not 1 <= port <= 65535:
        raise InvalidPortMapping(entry, f"port {port} out of range")
    return port


def parse_entry(entry: str) -> Tuple[PortKey, str]:
    """Parse one "[hostPort]:containerPort[/protocol]" entry."""
    parts = entry.split(":")
    if len(parts) != 2:
        raise InvalidPortMapping(entry)

    host_port, container_port = (p.strip() for p in parts)
    # an empty host port lets the daemon pick an ephemeral one
    if host_port:
        _parse_port(host_port, entry)

    protocol = DEFAULT_PROTOCOL
    if "/" in container_port:
        container_port, protocol = container_port.split("/", 1)
        protocol = protocol.strip().lower()
        if protocol not in PROTOCOLS:
            raise InvalidPortMapping(entry, f"unknown protocol {protocol!r}")

    return (_parse_port(container_port.strip(), entry), protocol), host_port


def parse_ports(field_value: Union[str, Iterable[str], None]) -> PortMapping:
    """Parse a comma separated port mapping field.

    Empty entries are skipped. When a container port appears twice the later
    host binding replaces the earlier one.
    """
    mapping = PortMapping()
    if not field_value:
        return mapping

    if isinstance(field_value, str):
        chunks = [field_value]
    else:
        chunks = list(field_value)

    for chunk in chunks:
        for raw in str(chunk).split(","):
            entry = raw.strip()
            if not entry:
                continue
            key, host_port = parse_entry(entry)
            mapping.bindings[key] = host_port
            mapping.exposed.add(key)

    return mapping


def summarize_ports(observed: Iterable[PortInfo]) -> str:
    """Render published ports as "public:private", comma separated."""
    return ",".join(
        f"{p.public_port}:{p.private_port}"
        for p in observed
        if p.public_port
    )
