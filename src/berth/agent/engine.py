"""Container state engine: provisioning, lifecycle and inventory tracking."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from berth.agent.config import ConfigManager
from berth.agent.locks import NameLocks
from berth.agent.provisioner import Provisioner
from berth.agent.reconciler import (
    DEFAULT_RESERVED_PREFIXES,
    DEFAULT_SENTINEL_NAMES,
    ReconcileReport,
    Reconciler,
)
from berth.errors import (
    NotFound,
    RecordNotFound,
    RuntimeClientError,
    RuntimeOperationFailed,
)
from berth.inventory.base import InventoryStore
from berth.models.container import ContainerSpec, ContainerStatus, InventoryRecord
from berth.providers.base import RuntimeClient
from berth.utils.ports import parse_ports


logger = logging.getLogger(__name__)


# name and id identify a record and cannot be edited
UPDATABLE_FIELDS = ("image", "ports", "runtime_id", "status")


class StateEngine:
    """Provisions containers and keeps their inventory records current.

    Every mutating operation on a name holds that name's lock, so a
    provision racing a stop on the same name cannot interleave.
    """

    def __init__(
        self,
        runtime: RuntimeClient,
        store: InventoryStore,
        config_manager: Optional[ConfigManager] = None,
        reserved_prefixes: Iterable[str] = DEFAULT_RESERVED_PREFIXES,
        sentinel_names: Iterable[str] = DEFAULT_SENTINEL_NAMES,
        inspect_timeout: float = 5.0,
    ):
        """Initialize state engine."""
        self.runtime = runtime
        self.store = store
        self.config_manager = config_manager
        self.inspect_timeout = inspect_timeout
        self.locks = NameLocks()
        self.provisioner = Provisioner(runtime)
        self.reconciler = Reconciler(
            runtime,
            store,
            locks=self.locks,
            reserved_prefixes=reserved_prefixes,
            sentinel_names=sentinel_names,
        )
        self.last_reconciliation: Optional[datetime] = None
        self.last_report: Optional[ReconcileReport] = None
        self._reconciliation_lock = asyncio.Lock()

    # -- Provisioning --

    async def apply(self, spec: ContainerSpec) -> InventoryRecord:
        """Provision spec and record the result in the inventory."""
        async with self.locks.hold(spec.name):
            logger.info(f"Provisioning container {spec.name}")
            runtime_id = await self.provisioner.provision(spec)
            return await self._record_provisioned(spec, runtime_id)

    async def _record_provisioned(self, spec: ContainerSpec, runtime_id: str) -> InventoryRecord:
        try:
            record = await self.store.find_by_key(spec.name)
        except RecordNotFound:
            record = InventoryRecord(
                name=spec.name,
                image=spec.image,
                ports=spec.ports,
                runtime_id=runtime_id,
                status=ContainerStatus.CREATED,
            )
            return await self.store.create(record)

        record.image = spec.image
        record.ports = spec.ports
        record.runtime_id = runtime_id
        record.set_status(ContainerStatus.CREATED)
        return await self.store.save(record)

    async def apply_configured(self, name: str) -> InventoryRecord:
        """Provision a container declared in the configuration."""
        spec = self.config_manager.get_container_spec(name) if self.config_manager else None
        if spec is None:
            raise NotFound(name, what="Container spec")
        return await self.apply(spec)

    async def apply_all(self) -> Dict[str, Dict[str, Any]]:
        """Provision every declared container, continuing past failures."""
        results: Dict[str, Dict[str, Any]] = {}
        if not self.config_manager:
            return results

        for name, spec in self.config_manager.containers.items():
            try:
                record = await self.apply(spec)
                results[name] = {"success": True, "runtime_id": record.runtime_id}
            except Exception as e:
                logger.error(f"Failed to provision container {name}: {e}")
                results[name] = {"success": False, "error": str(e), "kind": getattr(e, "kind", "error")}
        return results

    # -- Lifecycle --

    async def start_container(self, name: str) -> InventoryRecord:
        """Start a tracked container."""
        return await self._lifecycle(name, "start", self.runtime.start_container, ContainerStatus.RUNNING)

    async def stop_container(self, name: str) -> InventoryRecord:
        """Stop a tracked container."""
        return await self._lifecycle(name, "stop", self.runtime.stop_container, ContainerStatus.STOPPED)

    async def restart_container(self, name: str) -> InventoryRecord:
        """Restart a tracked container."""
        return await self._lifecycle(name, "restart", self.runtime.restart_container, ContainerStatus.RUNNING)

    async def _lifecycle(self, name: str, operation: str, call, status: ContainerStatus) -> InventoryRecord:
        async with self.locks.hold(name):
            record = await self._find(name)
            try:
                await call(record.name)
            except RuntimeClientError as e:
                logger.error(f"Failed to {operation} container {name}: {e}")
                raise RuntimeOperationFailed(operation, name, e) from e

            record.set_status(status)
            record = await self.store.save(record)
            logger.info(f"Container {name} is now {status.value}")
            return record

    async def remove_container(self, name: str) -> None:
        """Remove the container and delete its record.

        The record is deleted even when the runtime removal fails.
        """
        async with self.locks.hold(name):
            record = await self._find(name)
            try:
                await self.runtime.remove_container(record.name, force=True, remove_volumes=True)
            except RuntimeClientError as e:
                logger.warning(f"Error removing runtime container {name}, deleting record anyway: {e}")
            await self.store.delete(record)
            logger.info(f"Container {name} removed from inventory")

    async def update_record(self, name: str, changes: Dict[str, Any]) -> InventoryRecord:
        """Edit fields of a tracked record without touching the runtime.

        Only the fields in UPDATABLE_FIELDS may be changed and a new ports
        value must parse. The next reconcile overwrites what it observes.
        """
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(unknown)}")
        if not changes:
            raise ValueError("No fields to update")
        for key, value in changes.items():
            if not isinstance(value, str):
                raise ValueError(f"Field {key} must be a string")
        if "ports" in changes:
            parse_ports(changes["ports"])

        async with self.locks.hold(name):
            record = await self._find(name)
            for key, value in changes.items():
                if key == "status":
                    record.set_status(value)
                else:
                    setattr(record, key, value)
            record = await self.store.save(record)
            logger.info(f"Updated inventory record {name}: {', '.join(sorted(changes))}")
            return record

    async def _find(self, name: str) -> InventoryRecord:
        try:
            return await self.store.find_by_key(name)
        except RecordNotFound:
            raise NotFound(name) from None

    # -- Reads --

    async def get_container(self, name: str, refresh: bool = True) -> InventoryRecord:
        """Return the record for name, refreshing its status first."""
        record = await self._find(name)
        if refresh:
            await self._refresh(record)
        return record

    async def list_containers(self, refresh: bool = True) -> List[InventoryRecord]:
        """Return all records, refreshing their status first."""
        records = await self.store.find_all()
        if refresh and records:
            await asyncio.gather(*(self._refresh(r) for r in records))
        return records

    async def _refresh(self, record: InventoryRecord):
        """Overwrite status from one bounded inspect, keeping it on any failure."""
        try:
            info = await asyncio.wait_for(
                self.runtime.inspect_container(record.name),
                timeout=self.inspect_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Status refresh for {record.name} timed out, keeping {record.status.value}")
            return
        except RuntimeClientError as e:
            logger.warning(f"Status refresh for {record.name} failed, keeping {record.status.value}: {e}")
            return

        if info is not None and info.status:
            record.set_status(info.status)

    async def container_logs(self, name: str, tail_lines: int = 100) -> str:
        """Return the last lines of a tracked container's output."""
        record = await self._find(name)
        try:
            data = await self.runtime.fetch_logs(record.name, tail_lines=tail_lines)
        except RuntimeClientError as e:
            raise RuntimeOperationFailed("read logs of", name, e) from e
        if isinstance(data, bytes):
            return data.decode("utf-8", errors="replace")
        return str(data)

    # -- Reconciliation --

    async def reconcile(self) -> ReconcileReport:
        """Perform a full inventory reconciliation."""
        async with self._reconciliation_lock:
            start_time = datetime.now()
            logger.info("Starting inventory reconciliation")

            try:
                report = await self.reconciler.reconcile()
            except Exception as e:
                logger.error(f"Reconciliation failed: {e}")
                raise

            self.last_reconciliation = datetime.now()
            self.last_report = report
            duration = (self.last_reconciliation - start_time).total_seconds()
            logger.info(f"Inventory reconciliation completed in {duration:.2f}s")
            return report

    def status_summary(self) -> Dict[str, Any]:
        """Agent-level status information."""
        return {
            "running": True,
            "last_reconciliation": self.last_reconciliation.isoformat()
                if self.last_reconciliation else None,
            "last_report": self.last_report.to_dict() if self.last_report else None,
            "declared": len(self.config_manager.containers) if self.config_manager else 0,
        }
