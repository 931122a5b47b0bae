"""Tests for the StateEngine."""

import asyncio

import pytest
from unittest.mock import MagicMock, Mock

from requests.exceptions import ConnectionError as RequestsConnectionError

from berth.agent.engine import StateEngine
from berth.errors import ImagePullFailed, InvalidPortMapping, NotFound, RuntimeOperationFailed
from berth.models.config import RuntimeConfig
from berth.models.container import ContainerSpec, ContainerStatus, InventoryRecord
from berth.providers.base import RuntimeContainer
from berth.providers.docker_runtime import DockerRuntime


@pytest.fixture
def spec():
    return ContainerSpec(name="web", image="nginx", ports="8080:80")


@pytest.fixture
def mock_config_manager(spec):
    """Create a mock ConfigManager with one declared container."""
    manager = Mock()
    manager.containers = {
        "web": spec,
        "broken": ContainerSpec(name="broken", image="private/app"),
    }
    manager.get_container_spec.side_effect = manager.containers.get
    return manager


@pytest.fixture
def state_engine(runtime, store, mock_config_manager):
    return StateEngine(runtime, store, config_manager=mock_config_manager, inspect_timeout=0.2)


@pytest.mark.asyncio
class TestApply:
    """Test provisioning through the engine."""

    async def test_apply_creates_record(self, state_engine, store, spec):
        record = await state_engine.apply(spec)

        assert record.status is ContainerStatus.CREATED
        assert record.runtime_id == "id-1"
        assert record.ports == "8080:80"
        assert (await store.find_by_key("web")).runtime_id == "id-1"

    async def test_reapply_keeps_single_record(self, state_engine, store, spec):
        """Applying twice leaves one record pointing at the newest container."""
        first = await state_engine.apply(spec)
        second = await state_engine.apply(spec)

        records = await store.find_all()
        assert len(records) == 1
        assert records[0].id == first.id
        assert records[0].runtime_id == second.runtime_id == "id-2"

    async def test_apply_failure_leaves_no_record(self, state_engine, runtime, store, spec):
        runtime.fail.add("pull")

        with pytest.raises(ImagePullFailed):
            await state_engine.apply(spec)

        assert await store.find_all() == []

    async def test_apply_configured_unknown(self, state_engine):
        with pytest.raises(NotFound):
            await state_engine.apply_configured("ghost")

    async def test_apply_all_continues_past_failures(self, state_engine, runtime):
        runtime.images.add("nginx")
        runtime.fail.add("pull")

        results = await state_engine.apply_all()

        assert results["web"]["success"] is True
        assert results["broken"]["success"] is False
        assert results["broken"]["kind"] == "image_pull_failed"


@pytest.mark.asyncio
class TestLifecycle:
    """Test start, stop, restart and remove."""

    async def test_status_follows_lifecycle(self, state_engine, store, spec):
        await state_engine.apply(spec)

        assert (await state_engine.start_container("web")).status is ContainerStatus.RUNNING
        assert (await state_engine.stop_container("web")).status is ContainerStatus.STOPPED
        assert (await state_engine.restart_container("web")).status is ContainerStatus.RUNNING
        assert (await store.find_by_key("web")).status is ContainerStatus.RUNNING

    async def test_failed_stop_keeps_status(self, state_engine, runtime, store, spec):
        await state_engine.apply(spec)
        await state_engine.start_container("web")
        runtime.fail.add("stop")

        with pytest.raises(RuntimeOperationFailed) as exc_info:
            await state_engine.stop_container("web")

        assert exc_info.value.operation == "stop"
        assert (await store.find_by_key("web")).status is ContainerStatus.RUNNING

    async def test_unknown_name(self, state_engine, runtime):
        with pytest.raises(NotFound):
            await state_engine.start_container("ghost")

        assert runtime.ops("start") == []

    async def test_remove_deletes_record(self, state_engine, runtime, store, spec):
        await state_engine.apply(spec)

        await state_engine.remove_container("web")

        assert await store.find_all() == []
        assert "web" not in runtime.containers

    async def test_remove_deletes_record_when_runtime_fails(self, state_engine, runtime, store, spec):
        await state_engine.apply(spec)
        runtime.fail.add("remove")

        await state_engine.remove_container("web")

        assert await store.find_all() == []

    async def test_same_name_operations_are_serialized(self, state_engine, runtime, spec):
        """A provision and a stop on one name never interleave."""
        await state_engine.apply(spec)
        order = []
        original_create = runtime.create_container

        async def slow_create(request):
            order.append("create-begin")
            await asyncio.sleep(0.05)
            order.append("create-end")
            return await original_create(request)

        original_stop = runtime.stop_container

        async def tracked_stop(name):
            order.append("stop")
            await original_stop(name)

        runtime.create_container = slow_create
        runtime.stop_container = tracked_stop

        await asyncio.gather(state_engine.apply(spec), state_engine.stop_container("web"))

        assert order == ["create-begin", "create-end", "stop"]

    async def test_reconcile_waits_for_inflight_apply(self, state_engine, runtime, store, spec):
        """A reconcile update for a name lands after a running provision of it."""
        runtime.listing = [RuntimeContainer(id="rt-web", names=["/web"], image="nginx", state="running")]
        order = []
        original_create = runtime.create_container

        async def slow_create(request):
            order.append("create-begin")
            await asyncio.sleep(0.05)
            order.append("create-end")
            return await original_create(request)

        original_save = store.save

        async def tracked_save(record):
            order.append("save")
            return await original_save(record)

        runtime.create_container = slow_create
        store.save = tracked_save

        _, report = await asyncio.gather(state_engine.apply(spec), state_engine.reconcile())

        assert order == ["create-begin", "create-end", "save"]
        assert report.updated == ["web"]
        assert report.created == []
        record = await store.find_by_key("web")
        assert record.status is ContainerStatus.RUNNING
        assert record.runtime_id == "rt-web"


@pytest.mark.asyncio
class TestUpdateRecord:
    """Test editing tracked records."""

    async def test_update_fields(self, state_engine, runtime, store, spec):
        await state_engine.apply(spec)
        calls_before = list(runtime.calls)

        record = await state_engine.update_record("web", {"image": "nginx:1.25", "ports": "9090:80", "status": "paused"})

        assert record.image == "nginx:1.25"
        assert record.status is ContainerStatus.PAUSED
        stored = await store.find_by_key("web")
        assert stored.ports == "9090:80"
        assert runtime.calls == calls_before

    async def test_update_unknown_name(self, state_engine):
        with pytest.raises(NotFound):
            await state_engine.update_record("ghost", {"image": "nginx"})

    async def test_update_rejects_key_fields(self, state_engine, store, spec):
        await state_engine.apply(spec)

        with pytest.raises(ValueError):
            await state_engine.update_record("web", {"name": "other"})

        assert (await store.find_by_key("web")).name == "web"

    async def test_update_rejects_bad_ports(self, state_engine, store, spec):
        await state_engine.apply(spec)

        with pytest.raises(InvalidPortMapping):
            await state_engine.update_record("web", {"ports": "8080"})

        assert (await store.find_by_key("web")).ports == "8080:80"

    async def test_update_requires_fields(self, state_engine):
        with pytest.raises(ValueError):
            await state_engine.update_record("web", {})


@pytest.mark.asyncio
class TestReads:
    """Test refresh-on-read and logs."""

    async def test_get_refreshes_status(self, state_engine, runtime, spec):
        await state_engine.apply(spec)
        runtime.containers["web"].status = "exited"

        record = await state_engine.get_container("web")

        assert record.status is ContainerStatus.EXITED

    async def test_refresh_failure_keeps_status(self, state_engine, runtime, spec):
        await state_engine.apply(spec)
        runtime.fail.add("inspect")

        record = await state_engine.get_container("web")

        assert record.status is ContainerStatus.CREATED

    async def test_refresh_timeout_keeps_status(self, state_engine, runtime, spec):
        await state_engine.apply(spec)

        async def hang(name):
            await asyncio.sleep(5)

        runtime.inspect_container = hang

        record = await state_engine.get_container("web")

        assert record.status is ContainerStatus.CREATED

    async def test_refresh_does_not_persist(self, state_engine, runtime, store, spec):
        await state_engine.apply(spec)
        runtime.containers["web"].status = "exited"

        records = await state_engine.list_containers()

        assert records[0].status is ContainerStatus.EXITED
        assert (await store.find_by_key("web")).status is ContainerStatus.CREATED

    async def test_list_without_refresh(self, state_engine, runtime, store):
        await store.create(InventoryRecord(name="db", image="postgres", status="running"))

        records = await state_engine.list_containers(refresh=False)

        assert [r.name for r in records] == ["db"]
        assert runtime.ops("inspect") == []

    async def test_get_unknown(self, state_engine):
        with pytest.raises(NotFound):
            await state_engine.get_container("ghost")

    async def test_logs(self, state_engine, runtime, spec):
        await state_engine.apply(spec)
        runtime.logs["web"] = b"hello\n\xff"

        logs = await state_engine.container_logs("web", tail_lines=10)

        assert logs.startswith("hello\n")

    async def test_logs_failure(self, state_engine, runtime, spec):
        await state_engine.apply(spec)
        runtime.fail.add("logs")

        with pytest.raises(RuntimeOperationFailed):
            await state_engine.container_logs("web")


@pytest.mark.asyncio
async def test_reconcile_records_summary(state_engine):
    report = await state_engine.reconcile()

    summary = state_engine.status_summary()
    assert report.ok
    assert summary["running"] is True
    assert summary["last_reconciliation"] is not None
    assert summary["declared"] == 2


@pytest.mark.asyncio
class TestDaemonUnreachable:
    """Test engine behaviour when the docker daemon cannot be reached."""

    @pytest.fixture
    def docker_engine(self, store):
        client = MagicMock()
        down = RequestsConnectionError("Connection aborted.")
        client.api.inspect_container.side_effect = down
        client.api.start.side_effect = down
        client.api.containers.side_effect = down
        return StateEngine(DockerRuntime(RuntimeConfig(), client=client), store)

    async def test_list_keeps_stored_status(self, docker_engine, store):
        await store.create(InventoryRecord(name="web", image="nginx", status="running"))

        records = await docker_engine.list_containers()

        assert records[0].status is ContainerStatus.RUNNING

    async def test_start_fails_with_operation_error(self, docker_engine, store):
        await store.create(InventoryRecord(name="web", image="nginx", status="exited"))

        with pytest.raises(RuntimeOperationFailed):
            await docker_engine.start_container("web")

        assert (await store.find_by_key("web")).status is ContainerStatus.EXITED

    async def test_reconcile_fails_with_operation_error(self, docker_engine, store):
        await store.create(InventoryRecord(name="web", image="nginx", status="running"))

        with pytest.raises(RuntimeOperationFailed):
            await docker_engine.reconcile()
