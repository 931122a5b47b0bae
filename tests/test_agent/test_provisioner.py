"""Tests for container provisioning."""

import pytest

from berth.agent.provisioner import Provisioner, build_create_request
from berth.errors import ImagePullFailed, InvalidPortMapping, ReplaceFailed, RuntimeOperationFailed
from berth.models.container import ContainerSpec
from berth.providers.base import ContainerInfo


@pytest.fixture
def spec():
    return ContainerSpec(
        name="web",
        image="nginx:1.25",
        ports="8080:80,5353:53/udp",
        env={"B": "2", "A": "1"},
        command="nginx -g daemon-off",
        volumes=["/srv:/usr/share/nginx/html"],
        networks=["front"],
    )


class TestBuildCreateRequest:
    """Test translation of specs into create requests."""

    def test_fields(self, spec):
        request = build_create_request(spec)

        assert request.name == "web"
        assert request.image == "nginx:1.25"
        assert request.env == ["A=1", "B=2"]
        assert request.exposed_ports == [(53, "udp"), (80, "tcp")]
        assert request.port_bindings == {"80/tcp": "8080", "53/udp": "5353"}
        assert request.command == ["nginx", "-g", "daemon-off"]
        assert request.volumes == ["/srv:/usr/share/nginx/html"]
        assert request.networks == ["front"]

    def test_blank_command_means_image_default(self):
        request = build_create_request(ContainerSpec(name="web", image="nginx", command="   "))

        assert request.command is None

    def test_equal_specs_give_equal_requests(self, spec):
        assert build_create_request(spec) == build_create_request(spec.model_copy())


@pytest.mark.asyncio
class TestProvisioner:
    """Test the provisioning sequence."""

    async def test_pulls_missing_image(self, runtime, spec):
        runtime_id = await Provisioner(runtime).provision(spec)

        assert runtime_id == "id-1"
        assert runtime.ops() == ["inspect_image", "pull", "inspect", "create"]

    async def test_skips_pull_for_present_image(self, runtime, spec):
        runtime.images.add(spec.image)

        await Provisioner(runtime).provision(spec)

        assert "pull" not in runtime.ops()

    async def test_idempotent_requests(self, runtime, spec):
        """Provisioning the same spec twice creates identical containers."""
        provisioner = Provisioner(runtime)

        await provisioner.provision(spec)
        await provisioner.provision(spec)

        assert len(runtime.requests) == 2
        assert runtime.requests[0] == runtime.requests[1]
        assert list(runtime.containers) == ["web"]

    async def test_replaces_existing_container(self, runtime, spec):
        """An existing same-named container is removed once before create."""
        runtime.images.add(spec.image)
        runtime.containers["web"] = ContainerInfo(id="old", name="web", image="nginx:1.24", status="running")

        runtime_id = await Provisioner(runtime).provision(spec)

        assert runtime.ops("remove", "create") == ["remove", "create"]
        assert runtime.containers["web"].id == runtime_id != "old"

    async def test_invalid_ports_touch_nothing(self, runtime):
        bad = ContainerSpec(name="web", image="nginx", ports="8080")

        with pytest.raises(InvalidPortMapping):
            await Provisioner(runtime).provision(bad)

        assert runtime.calls == []

    async def test_pull_failure(self, runtime, spec):
        runtime.fail.add("pull")

        with pytest.raises(ImagePullFailed) as exc_info:
            await Provisioner(runtime).provision(spec)

        assert exc_info.value.image == "nginx:1.25"
        assert "create" not in runtime.ops()
        assert "remove" not in runtime.ops()

    async def test_replace_failure(self, runtime, spec):
        runtime.images.add(spec.image)
        runtime.containers["web"] = ContainerInfo(id="old", name="web", image="nginx", status="running")
        runtime.fail.add("remove")

        with pytest.raises(ReplaceFailed):
            await Provisioner(runtime).provision(spec)

        assert "create" not in runtime.ops()
        assert runtime.containers["web"].id == "old"

    async def test_create_failure_leaves_name_absent(self, runtime, spec):
        runtime.images.add(spec.image)
        runtime.containers["web"] = ContainerInfo(id="old", name="web", image="nginx", status="running")
        runtime.fail.add("create")

        with pytest.raises(RuntimeOperationFailed) as exc_info:
            await Provisioner(runtime).provision(spec)

        assert exc_info.value.operation == "create"
        assert "web" not in runtime.containers
