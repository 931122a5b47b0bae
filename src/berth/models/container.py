"""Container specification and inventory models."""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


class ContainerStatus(str, Enum):
    """Observed container state.

    States the runtime reports outside the known set are kept as
    unrecognized members carrying the raw string.
    """
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    RESTARTING = "restarting"
    PAUSED = "paused"
    EXITED = "exited"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        known = cls._value2member_map_.get(value.lower())
        if known is not None:
            return known
        member = str.__new__(cls, value)
        member._name_ = "UNRECOGNIZED"
        member._value_ = value
        return member

    @property
    def recognized(self) -> bool:
        """Whether this is one of the known states."""
        return self._name_ != "UNRECOGNIZED"


class ContainerSpec(BaseModel):
    """Declarative container specification."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Logical container name")
    image: str = Field(..., description="Image reference")
    ports: str = Field(default="", description="hostPort:containerPort[/protocol], comma separated")
    env: Dict[str, str] = Field(default_factory=dict)
    volumes: List[str] = Field(default_factory=list)
    command: Optional[str] = Field(None, description="Whitespace delimited command override")
    networks: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Validate container name."""
        if not CONTAINER_NAME_RE.match(v):
            raise ValueError(f"Invalid container name: {v!r}")
        return v

    @field_validator("image")
    @classmethod
    def validate_image(cls, v):
        """Validate image reference."""
        v = v.strip()
        if not v:
            raise ValueError("Image reference must not be empty")
        return v

    @field_validator("ports", mode="before")
    @classmethod
    def join_ports(cls, v):
        """Accept a list of mappings as well as the comma separated form."""
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return ",".join(str(item) for item in v)
        return v

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v):
        """Coerce env values to strings (YAML yields ints and bools)."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @field_validator("volumes", "networks", mode="before")
    @classmethod
    def default_lists(cls, v):
        """Treat null as an empty list."""
        return [] if v is None else v


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class InventoryRecord:
    """Persisted view of one logical container."""
    name: str
    image: str
    ports: str = ""
    runtime_id: str = ""
    status: ContainerStatus = ContainerStatus.CREATED
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.status, ContainerStatus):
            self.status = ContainerStatus(self.status)

    def set_status(self, value) -> bool:
        """Overwrite status from an observation. Returns True if it changed."""
        status = value if isinstance(value, ContainerStatus) else ContainerStatus(value)
        changed = status.value != self.status.value
        self.status = status
        return changed

    def to_dict(self) -> Dict[str, Any]:
        """Render a JSON-safe dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "ports": self.ports,
            "runtime_id": self.runtime_id,
            "status": self.status.value,
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
        }
