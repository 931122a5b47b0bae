"""Configuration models."""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentConfig(BaseModel):
    """Agent configuration."""
    socket_path: str = Field(default="./state/berth-agent.sock")
    host: Optional[str] = Field(None, description="Optional TCP bind address")
    port: int = Field(default=8470, ge=0, le=65535)
    reconciliation_interval: int = Field(default=30, ge=5)
    reconcile_on_start: bool = Field(default=True)
    apply_on_load: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    state_dir: str = Field(default="./state")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class RuntimeConfig(BaseModel):
    """Container runtime (docker daemon) connection settings."""
    base_url: Optional[str] = Field(None, description="Daemon URL, defaults to the environment")
    timeout: int = Field(default=60, ge=1)
    inspect_timeout: float = Field(default=5.0, gt=0)
    reserved_prefixes: List[str] = Field(default_factory=lambda: ["k8s_"])
    sentinel_names: List[str] = Field(default_factory=lambda: ["POD"])


class InventoryConfig(BaseModel):
    """Inventory store settings."""
    backend: Literal["sqlite", "memory"] = Field(default="sqlite")
    path: str = Field(default="./state/berth.db")


class BerthConfig(BaseModel):
    """Main configuration model."""
    model_config = ConfigDict(extra="ignore")

    agent: AgentConfig = Field(default_factory=AgentConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
