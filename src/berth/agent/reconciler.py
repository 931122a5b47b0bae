"""Inventory reconciliation against the runtime's container list."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from berth.agent.locks import NameLocks
from berth.errors import BerthError, RecordNotFound, RuntimeClientError, RuntimeOperationFailed
from berth.inventory.base import InventoryStore
from berth.models.container import InventoryRecord
from berth.providers.base import RuntimeClient, RuntimeContainer
from berth.utils.ports import summarize_ports


logger = logging.getLogger(__name__)


DEFAULT_RESERVED_PREFIXES = ("k8s_",)
DEFAULT_SENTINEL_NAMES = ("POD",)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, object]:
        return {
            "created": list(self.created),
            "updated": list(self.updated),
            "skipped": list(self.skipped),
            "missing": list(self.missing),
            "failures": dict(self.failures),
        }


class Reconciler:
    """Brings inventory records in line with what the runtime reports.

    Runtime containers without a record get one; matched records have their
    status, image, ports and runtime id overwritten. Records the runtime no longer
    reports are listed as missing and left untouched.
    """

    def __init__(
        self,
        runtime: RuntimeClient,
        store: InventoryStore,
        locks: Optional[NameLocks] = None,
        reserved_prefixes: Iterable[str] = DEFAULT_RESERVED_PREFIXES,
        sentinel_names: Iterable[str] = DEFAULT_SENTINEL_NAMES,
    ):
        self.runtime = runtime
        self.store = store
        self.locks = locks or NameLocks()
        self.reserved_prefixes = tuple(reserved_prefixes)
        self.sentinel_names = frozenset(sentinel_names)

    def is_system_container(self, name: str) -> bool:
        """Whether name belongs to runtime infrastructure, not to users."""
        return name in self.sentinel_names or any(
            name.startswith(prefix) for prefix in self.reserved_prefixes
        )

    async def reconcile(self) -> ReconcileReport:
        """Run one pass.

        Listing failures abort the pass before anything is written. Failures
        writing a single record are collected in the report.
        """
        try:
            containers = await self.runtime.list_containers(all=True)
        except RuntimeClientError as e:
            raise RuntimeOperationFailed("list", "*", e) from e

        records = await self.store.find_all()
        unmatched: Dict[str, InventoryRecord] = {r.name: r for r in records}

        report = ReconcileReport()
        observed: Dict[str, RuntimeContainer] = {}
        for container in containers:
            name = container.logical_name
            if not name or self.is_system_container(name):
                report.skipped.append(name or container.id[:12])
                continue
            observed[name] = container

        for name in observed:
            unmatched.pop(name, None)

        tasks = [self._sync_one(name, container, report) for name, container in observed.items()]
        await asyncio.gather(*tasks)

        report.missing = sorted(unmatched)
        if report.missing:
            logger.warning(f"Inventory records not reported by the runtime: {', '.join(report.missing)}")

        logger.info(
            f"Reconciled inventory: {len(report.created)} created, {len(report.updated)} updated, "
            f"{len(report.skipped)} skipped, {len(report.failures)} failed"
        )
        return report

    async def _sync_one(
        self,
        name: str,
        container: RuntimeContainer,
        report: ReconcileReport,
    ):
        ports = summarize_ports(container.ports)
        try:
            async with self.locks.hold(name):
                # re-read under the lock, an apply may have run since the snapshot
                try:
                    record = await self.store.find_by_key(name)
                except RecordNotFound:
                    record = None

                if record is not None:
                    record.set_status(container.state)
                    record.image = container.image
                    record.ports = ports
                    if container.id and record.runtime_id != container.id:
                        record.runtime_id = container.id
                    await self.store.save(record)
                    report.updated.append(name)
                else:
                    await self.store.create(InventoryRecord(
                        name=name,
                        image=container.image,
                        ports=ports,
                        runtime_id=container.id,
                        status=container.state,
                    ))
                    report.created.append(name)
                    logger.info(f"Discovered untracked container {name}")
        except BerthError as e:
            logger.error(f"Failed to reconcile record {name}: {e}")
            report.failures[name] = str(e)
