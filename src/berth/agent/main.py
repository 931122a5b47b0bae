"""Main agent implementation."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import List, Optional

from watchfiles import awatch

from berth.agent.config import ConfigManager
from berth.agent.engine import StateEngine
from berth.agent.server import AgentServer
from berth.inventory import InventoryStore, create_store
from berth.providers import DockerRuntime, RuntimeClient
from berth.utils.logging import setup_logging


logger = logging.getLogger(__name__)


class BerthAgent:
    """Main agent wiring runtime, inventory, engine and API together."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the agent."""
        self.config_dir = config_dir or Path("./configs")
        self.config_manager: Optional[ConfigManager] = None
        self.runtime: Optional[RuntimeClient] = None
        self.store: Optional[InventoryStore] = None
        self.state_engine: Optional[StateEngine] = None
        self.server: Optional[AgentServer] = None
        self.shutdown_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    async def initialize(self):
        """Initialize agent components."""
        self.config_manager = ConfigManager(self.config_dir)
        await self.config_manager.load()

        config = self.config_manager.config
        setup_logging(config.agent.log_level)

        state_dir = Path(config.agent.state_dir)
        state_dir.mkdir(parents=True, exist_ok=True)

        self.runtime = DockerRuntime(config.runtime)
        if not await self.runtime.ping():
            logger.warning("Docker daemon unavailable, operations will fail until it is reachable")

        self.store = create_store(config.inventory)
        await self.store.initialize()

        self.state_engine = StateEngine(
            runtime=self.runtime,
            store=self.store,
            config_manager=self.config_manager,
            reserved_prefixes=config.runtime.reserved_prefixes,
            sentinel_names=config.runtime.sentinel_names,
            inspect_timeout=config.runtime.inspect_timeout,
        )

        socket_path = Path(config.agent.socket_path)
        if not socket_path.is_absolute():
            socket_path = state_dir / socket_path.name

        self.server = AgentServer(
            socket_path=socket_path,
            host=config.agent.host,
            port=config.agent.port,
            state_engine=self.state_engine,
            config_manager=self.config_manager,
        )

        logger.info("Agent initialized successfully")

    async def run(self):
        """Run the agent main loop."""
        await self.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.shutdown)

        try:
            await self.server.start()
            await self._startup()

            self._tasks.append(asyncio.create_task(self._reconciliation_loop()))
            self._tasks.append(asyncio.create_task(self._config_watch_loop()))

            logger.info("Agent started, waiting for shutdown signal")
            await self.shutdown_event.wait()

        finally:
            await self._cleanup()

    async def _startup(self):
        """Initial sync with the runtime and optional apply of declared containers."""
        config = self.config_manager.config
        if config.agent.reconcile_on_start:
            try:
                await self.state_engine.reconcile()
            except Exception as e:
                logger.error(f"Startup reconciliation failed: {e}")

        if config.agent.apply_on_load:
            await self.state_engine.apply_all()

    async def _reconciliation_loop(self):
        """Run periodic reconciliation."""
        interval = self.config_manager.config.agent.reconciliation_interval

        while not self.shutdown_event.is_set():
            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if self.shutdown_event.is_set():
                break

            try:
                logger.debug("Starting reconciliation cycle")
                await self.state_engine.reconcile()
            except Exception as e:
                logger.error(f"Reconciliation error: {e}", exc_info=True)

    async def _config_watch_loop(self):
        """Watch for configuration changes."""
        logger.info(f"Starting config watcher on {self.config_manager.config_dir}")
        try:
            async for _changes in awatch(self.config_manager.config_dir, stop_event=self.shutdown_event):
                if not self.config_manager.has_changed():
                    continue
                logger.info("Configuration changed, reloading")
                try:
                    await self.config_manager.load()
                    if self.config_manager.config.agent.apply_on_load:
                        await self.state_engine.apply_all()
                except Exception as e:
                    logger.error(f"Failed to reload configuration: {e}")
        except Exception as e:
            if not self.shutdown_event.is_set():
                logger.error(f"Config watch error: {e}", exc_info=True)

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self.shutdown_event.set()

    async def _cleanup(self):
        """Clean up resources."""
        logger.info("Cleaning up agent resources")

        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.server:
            await self.server.stop()
        if self.runtime:
            await self.runtime.close()
        if self.store:
            await self.store.close()

        logger.info("Agent cleanup completed")


async def run_agent():
    """Run the agent."""
    config_dir = os.environ.get("BERTH_CONFIG_DIR")
    agent = BerthAgent(config_dir=Path(config_dir) if config_dir else None)
    await agent.run()
