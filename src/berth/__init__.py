"""
Berth - Declarative single-host container provisioning.

Provisions containers declared in YAML on a Docker daemon and keeps a local
inventory of known containers reconciled with what the daemon reports.
"""

__version__ = "1.0.0"
__author__ = "Berth Development Team"

# Re-export key components for easier access
from berth.models.config import BerthConfig
from berth.models.container import ContainerSpec, ContainerStatus, InventoryRecord

__all__ = [
    "BerthConfig",
    "ContainerSpec",
    "ContainerStatus",
    "InventoryRecord",
]
