"""HTTP/REST server for agent communication."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import web
from pydantic import ValidationError

from berth.agent.config import ConfigManager
from berth.agent.engine import StateEngine
from berth.errors import BerthError, InvalidPortMapping, NotFound
from berth.models.container import ContainerSpec


logger = logging.getLogger(__name__)


class CommandError(ValueError):
    """Malformed command or missing arguments."""

    kind = "bad_request"


def _status_for(error: Exception) -> int:
    if isinstance(error, NotFound) or getattr(error, "kind", None) == "not_found":
        return 404
    if isinstance(error, (InvalidPortMapping, ValidationError, CommandError, ValueError)):
        return 400
    return 500


def _require_name(args: Dict[str, Any]) -> str:
    name = args.get("name")
    if not name:
        raise CommandError("Container name required")
    return name


class AgentServer:
    """Agent HTTP server."""

    def __init__(self, socket_path: Path, host: Optional[str], port: int, state_engine: StateEngine, config_manager: ConfigManager):
        """Initialize server."""
        self.socket_path = Path(socket_path)
        self.host = host
        self.port = port
        self.state_engine = state_engine
        self.config_manager = config_manager
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""
        self.app.router.add_get('/health', self._handle_health)
        self.app.router.add_post('/api/v1/command', self._handle_command)

    async def start(self):
        """Start the server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        # Bind to Unix socket
        if self.socket_path.exists():
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        site_unix = web.UnixSite(self.runner, str(self.socket_path))
        await site_unix.start()
        os.chmod(self.socket_path, 0o660)
        logger.info(f"Agent listening on unix:{self.socket_path}")

        # Bind to TCP if configured
        if self.host:
            site_tcp = web.TCPSite(self.runner, self.host, self.port)
            await site_tcp.start()
            logger.info(f"Agent listening on tcp://{self.host}:{self.port}")

    async def stop(self):
        """Stop the server."""
        if self.runner:
            await self.runner.cleanup()
        if self.socket_path.exists():
            self.socket_path.unlink()
        logger.info("Agent server stopped")

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_command(self, request: web.Request) -> web.Response:
        """Handle standard REST command."""
        try:
            data = await request.json()
        except ValueError:
            return web.json_response(
                {"success": False, "error": "Invalid JSON request", "kind": CommandError.kind},
                status=400,
            )

        command = data.get("command") if isinstance(data, dict) else None
        args = (data.get("args") or {}) if isinstance(data, dict) else {}

        try:
            response_data = await self._process_command(command, args)
            return web.json_response({"success": True, "data": response_data})
        except Exception as e:
            status = _status_for(e)
            if status == 500:
                logger.error(f"Command {command} failed: {e}", exc_info=not isinstance(e, BerthError))
            else:
                logger.info(f"Command {command} rejected: {e}")
            return web.json_response(
                {"success": False, "error": str(e), "kind": getattr(e, "kind", "error")},
                status=status,
            )

    async def _process_command(self, command: str, args: Dict[str, Any]) -> Any:
        """Process the command logic."""
        handlers = {
            "status": self._handle_status,
            "list": self._handle_list,
            "apply": self._handle_apply,
            "start": self._handle_start,
            "stop": self._handle_stop,
            "restart": self._handle_restart,
            "remove": self._handle_remove,
            "logs": self._handle_logs,
            "update": self._handle_update,
            "reconcile": self._handle_reconcile,
            "reload": self._handle_reload,
            "validate": self._handle_validate,
        }

        handler = handlers.get(command)
        if not handler:
            raise CommandError(f"Unknown command: {command}")

        return await handler(args)

    # -- Command Handlers (Delegated to StateEngine/ConfigManager) --

    async def _handle_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_name = args.get("container")
        if container_name:
            record = await self.state_engine.get_container(container_name)
            return {"containers": {container_name: record.to_dict()}}

        records = await self.state_engine.list_containers()
        return {
            "agent": self.state_engine.status_summary(),
            "containers": {r.name: r.to_dict() for r in records},
        }

    async def _handle_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        records = await self.state_engine.list_containers(refresh=args.get("refresh", True))
        return {"containers": {r.name: r.to_dict() for r in records}}

    async def _handle_apply(self, args: Dict[str, Any]) -> Dict[str, Any]:
        if args.get("all"):
            return {"results": await self.state_engine.apply_all()}

        if args.get("document"):
            specs = self.config_manager.parse_document(args["document"])
            results = {}
            for spec in specs:
                try:
                    record = await self.state_engine.apply(spec)
                    results[spec.name] = {"success": True, "runtime_id": record.runtime_id}
                except BerthError as e:
                    results[spec.name] = {"success": False, "error": str(e), "kind": e.kind}
            return {"results": results}

        if args.get("spec"):
            record = await self.state_engine.apply(ContainerSpec(**args["spec"]))
        else:
            record = await self.state_engine.apply_configured(_require_name(args))
        return {"container": record.name, "created": True, "record": record.to_dict()}

    async def _handle_start(self, args: Dict[str, Any]) -> Dict[str, Any]:
        record = await self.state_engine.start_container(_require_name(args))
        return {"container": record.name, "started": True, "status": record.status.value}

    async def _handle_stop(self, args: Dict[str, Any]) -> Dict[str, Any]:
        record = await self.state_engine.stop_container(_require_name(args))
        return {"container": record.name, "stopped": True, "status": record.status.value}

    async def _handle_restart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        record = await self.state_engine.restart_container(_require_name(args))
        return {"container": record.name, "restarted": True, "status": record.status.value}

    async def _handle_remove(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_name = _require_name(args)
        await self.state_engine.remove_container(container_name)
        return {"container": container_name, "removed": True}

    async def _handle_update(self, args: Dict[str, Any]) -> Dict[str, Any]:
        fields = args.get("fields")
        if not isinstance(fields, dict):
            raise CommandError("fields must be an object")
        record = await self.state_engine.update_record(_require_name(args), fields)
        return {"container": record.name, "updated": True, "record": record.to_dict()}

    async def _handle_logs(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_name = _require_name(args)
        try:
            tail = int(args.get("tail", 100))
        except (TypeError, ValueError):
            raise CommandError("tail must be an integer") from None
        logs = await self.state_engine.container_logs(container_name, tail_lines=tail)
        return {"container": container_name, "logs": logs}

    async def _handle_reconcile(self, args: Dict[str, Any]) -> Dict[str, Any]:
        report = await self.state_engine.reconcile()
        return {"reconciled": True, "report": report.to_dict()}

    async def _handle_reload(self, args: Dict[str, Any]) -> Dict[str, Any]:
        await self.config_manager.load()
        return {"reloaded": True, "containers": len(self.config_manager.containers)}

    async def _handle_validate(self, args: Dict[str, Any]) -> Dict[str, Any]:
        # parse into a scratch manager, the live declared set stays as loaded
        candidate = ConfigManager(self.config_manager.config_dir)
        try:
            await candidate.load()
        except Exception as e:
            return {"valid": False, "error": str(e)}
        return {"valid": True, "containers": len(candidate.containers)}
