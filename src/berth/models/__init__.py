"""Pydantic models for configuration and validation."""

from berth.models.config import BerthConfig, AgentConfig, RuntimeConfig, InventoryConfig
from berth.models.container import ContainerSpec, ContainerStatus, InventoryRecord

__all__ = [
    "BerthConfig",
    "AgentConfig",
    "RuntimeConfig",
    "InventoryConfig",
    "ContainerSpec",
    "ContainerStatus",
    "InventoryRecord",
]
