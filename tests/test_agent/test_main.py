"""Tests for agent wiring and the berth-agent entry point."""

import os

import pytest
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from berth.agent import __main__ as agent_entry
from berth.agent.main import BerthAgent, run_agent
from berth.inventory import MemoryInventory


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "containers").mkdir()
    (tmp_path / "config.yaml").write_text(f"""
agent:
  state_dir: {tmp_path / "state"}
  socket_path: agent.sock
  apply_on_load: true
inventory:
  backend: memory
""")
    (tmp_path / "containers" / "web.yaml").write_text("containers:\n  web:\n    image: nginx\n")
    return tmp_path


@pytest.mark.asyncio
class TestBerthAgent:
    """Test agent initialization and startup."""

    @patch("berth.agent.main.DockerRuntime")
    async def test_initialize(self, mock_runtime_cls, config_dir):
        mock_runtime_cls.return_value.ping = AsyncMock(return_value=False)
        agent = BerthAgent(config_dir)

        await agent.initialize()

        assert isinstance(agent.store, MemoryInventory)
        assert agent.state_engine.runtime is mock_runtime_cls.return_value
        assert agent.server.socket_path == config_dir / "state" / "agent.sock"
        assert (config_dir / "state").is_dir()

    @patch("berth.agent.main.DockerRuntime")
    async def test_startup_reconciles_and_applies(self, mock_runtime_cls, config_dir):
        mock_runtime_cls.return_value.ping = AsyncMock(return_value=True)
        agent = BerthAgent(config_dir)
        await agent.initialize()
        agent.state_engine.reconcile = AsyncMock()
        agent.state_engine.apply_all = AsyncMock(return_value={})

        await agent._startup()

        agent.state_engine.reconcile.assert_awaited_once()
        agent.state_engine.apply_all.assert_awaited_once()

    @patch("berth.agent.main.DockerRuntime")
    async def test_startup_survives_reconcile_failure(self, mock_runtime_cls, config_dir):
        mock_runtime_cls.return_value.ping = AsyncMock(return_value=True)
        agent = BerthAgent(config_dir)
        await agent.initialize()
        agent.state_engine.reconcile = AsyncMock(side_effect=RuntimeError("daemon down"))
        agent.state_engine.apply_all = AsyncMock(return_value={})

        await agent._startup()

        agent.state_engine.apply_all.assert_awaited_once()

    @patch("berth.agent.main.DockerRuntime")
    async def test_cleanup_closes_resources(self, mock_runtime_cls, config_dir):
        runtime = mock_runtime_cls.return_value
        runtime.ping = AsyncMock(return_value=True)
        runtime.close = AsyncMock()
        agent = BerthAgent(config_dir)
        await agent.initialize()
        agent.server.stop = AsyncMock()

        await agent._cleanup()

        agent.server.stop.assert_awaited_once()
        runtime.close.assert_awaited_once()

    async def test_shutdown_sets_event(self, config_dir):
        agent = BerthAgent(config_dir)

        agent.shutdown()

        assert agent.shutdown_event.is_set()


@pytest.mark.asyncio
async def test_run_agent_honours_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BERTH_CONFIG_DIR", str(tmp_path))

    with patch("berth.agent.main.BerthAgent") as mock_agent_cls:
        mock_agent_cls.return_value.run = AsyncMock()
        await run_agent()

    mock_agent_cls.assert_called_once_with(config_dir=tmp_path)
    mock_agent_cls.return_value.run.assert_awaited_once()


def test_entry_point_sets_config_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("BERTH_CONFIG_DIR", raising=False)
    seen = {}

    async def fake_run_agent():
        seen["dir"] = os.environ.get("BERTH_CONFIG_DIR")

    with patch.object(agent_entry, "run_agent", fake_run_agent):
        result = CliRunner().invoke(agent_entry.app, ["--config-dir", str(tmp_path)])

    assert result.exit_code == 0
    assert seen["dir"] == str(tmp_path)


def test_entry_point_reports_errors():
    async def failing_run_agent():
        raise FileNotFoundError("Main config not found: configs/config.yaml")

    with patch.object(agent_entry, "run_agent", failing_run_agent):
        result = CliRunner().invoke(agent_entry.app, [])

    assert result.exit_code == 1
