"""HTTP client for communicating with the agent."""

from pathlib import Path
from typing import Dict, Any, Optional
import httpx


DEFAULT_SOCKET = "./state/berth-agent.sock"


class AgentError(Exception):
    """Communication error or agent-side failure."""

    def __init__(self, message: str, kind: str = "error", status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class AgentClient:
    """Client for communicating with agent via Unix socket or TCP."""

    def __init__(self, socket_path: Optional[str] = None, host: Optional[str] = None, timeout: float = 120.0):
        """Initialize agent client."""
        self.socket_path = Path(socket_path) if socket_path else None
        self.host = host
        self.timeout = timeout

        if not self.socket_path and not self.host:
            self.socket_path = Path(DEFAULT_SOCKET)

        if self.host:
            self.base_url = f"http://{self.host}"
            self.transport = None  # Default TCP transport
        else:
            # Use Unix socket
            self.base_url = "http://localhost"
            self.transport = httpx.HTTPTransport(uds=str(self.socket_path))

    def request(self, command: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a command to the agent and return its data payload."""
        if not self.host and not self.socket_path.exists():
            raise AgentError(f"Agent socket not found at {self.socket_path}")

        payload = {
            "command": command,
            "args": args or {}
        }

        try:
            with httpx.Client(transport=self.transport, base_url=self.base_url, timeout=self.timeout) as client:
                response = client.post("/api/v1/command", json=payload)
        except httpx.RequestError as e:
            raise AgentError(f"Connection error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            raise AgentError(
                f"HTTP error {response.status_code}: {response.text}",
                status_code=response.status_code,
            ) from None

        if not data.get("success"):
            raise AgentError(
                data.get("error") or f"HTTP error {response.status_code}",
                kind=data.get("kind", "error"),
                status_code=response.status_code,
            )

        return data.get("data", {})
