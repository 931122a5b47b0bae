"""Configuration management for the agent."""

import asyncio
import hashlib
import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError
from pydantic import ValidationError

from berth.models.config import BerthConfig
from berth.models.container import ContainerSpec


logger = logging.getLogger(__name__)


CONTAINER_PATTERNS = ("*.yaml", "*.yml")


class ConfigManager:
    """Manages configuration loading and container documents."""

    def __init__(self, config_dir: Path):
        """Initialize configuration manager."""
        self.config_dir = Path(config_dir)
        self.yaml = YAML(typ="safe")
        self.config: Optional[BerthConfig] = None
        self.containers: Dict[str, ContainerSpec] = {}
        self._config_hashes: Dict[str, str] = {}

    @property
    def containers_dir(self) -> Path:
        return self.config_dir / "containers"

    async def load(self):
        """Load all configuration files."""
        logger.info(f"Loading configuration from {self.config_dir}")

        self._config_hashes = {}
        await self._load_main_config()
        await self._load_containers()

        logger.info(f"Configuration loaded successfully ({len(self.containers)} containers declared)")

    async def _load_main_config(self):
        """Load main configuration file."""
        config_file = self.config_dir / "config.yaml"
        if not config_file.exists():
            raise FileNotFoundError(f"Main config not found: {config_file}")

        try:
            data = await self._read_yaml(config_file)
            self.config = BerthConfig(**(data or {}))
            logger.debug(f"Loaded main config: {config_file}")
        except ValidationError as e:
            logger.error(f"Invalid main config: {e}")
            raise

    async def _load_containers(self):
        """Load container documents."""
        if not self.containers_dir.exists():
            logger.warning(f"Containers directory not found: {self.containers_dir}")
            self.containers = {}
            return

        files = sorted(
            f for pattern in CONTAINER_PATTERNS for f in self.containers_dir.glob(pattern)
        )

        containers: Dict[str, ContainerSpec] = {}
        for yaml_file in files:
            try:
                data = await self._read_yaml(yaml_file)
                specs = self.specs_from_data(data)
            except Exception as e:
                logger.error(f"Error loading {yaml_file}: {e}")
                continue

            for spec in specs:
                if spec.name in containers:
                    logger.warning(f"Container {spec.name} declared more than once, using {yaml_file}")
                containers[spec.name] = spec
            logger.debug(f"Loaded {len(specs)} containers from {yaml_file}")

        self.containers = containers

    @staticmethod
    def specs_from_data(data: Any) -> List[ContainerSpec]:
        """Build specs from a parsed container document.

        The document holds a "containers" key with either a list of entries
        carrying their own name, or a mapping of name to entry.
        """
        if not data:
            return []
        if not isinstance(data, dict) or "containers" not in data:
            raise ValueError("Container document must have a 'containers' key")

        entries = data["containers"] or []
        if isinstance(entries, dict):
            return [ContainerSpec(**{**(spec or {}), "name": name}) for name, spec in entries.items()]
        if isinstance(entries, list):
            if not all(isinstance(entry, dict) for entry in entries):
                raise ValueError("Each container entry must be a mapping")
            return [ContainerSpec(**entry) for entry in entries]
        raise ValueError("'containers' must be a list or a mapping")

    def parse_document(self, text: str) -> List[ContainerSpec]:
        """Parse a container document given as YAML text."""
        try:
            data = self.yaml.load(io.StringIO(text))
        except YAMLError as e:
            raise ValueError(f"Invalid YAML document: {e}") from e
        return self.specs_from_data(data)

    async def _read_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse YAML file."""
        content = await asyncio.to_thread(file_path.read_text)
        # Store hash for change detection
        self._config_hashes[str(file_path)] = hashlib.md5(content.encode()).hexdigest()
        return await asyncio.to_thread(self.yaml.load, content)

    def has_changed(self) -> bool:
        """Check if configuration files changed since the last load."""
        current = [self.config_dir / "config.yaml"]
        if self.containers_dir.exists():
            current.extend(
                f for pattern in CONTAINER_PATTERNS for f in self.containers_dir.glob(pattern)
            )

        hashes = {
            str(f): hashlib.md5(f.read_text().encode()).hexdigest()
            for f in current if f.exists()
        }
        return hashes != self._config_hashes

    def get_container_spec(self, name: str) -> Optional[ContainerSpec]:
        """Get container specification by name."""
        return self.containers.get(name)
