"""Scripted stand-ins for the transport and the clock."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import IO, Any, Callable, Dict, List, Optional, Tuple

from habprov.errors import ConnectError
from habprov.transport import Communicator, RemoteCommand


@dataclass
class Response:
    status: int = 0
    stdout: bytes = b""
    stderr: bytes = b""


class FakeCommunicator(Communicator):
    """Scripted communicator; responses are matched by command substring."""

    def __init__(
        self,
        responses: Optional[Dict[str, Response]] = None,
        *,
        connect_failures: int = 0,
        timeout: float = 10.0,
        retry_interval: float = 3.0,
    ) -> None:
        self.responses = dict(responses or {})
        self.connect_failures = connect_failures
        self.timeout = timeout
        self.retry_interval = retry_interval
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.connected = False
        self.commands: List[str] = []
        self.uploads: List[Tuple[str, bytes]] = []

    def connect(self, output: Optional[Callable[[str], None]] = None) -> None:
        self.connect_calls += 1
        if self.connect_failures < 0 or self.connect_calls <= self.connect_failures:
            raise ConnectError(f"host still booting (attempt {self.connect_calls})")
        self.connected = True

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    def _response(self, command: str) -> Response:
        for needle, response in self.responses.items():
            if needle in command:
                return response
        return Response()

    def start(self, cmd: RemoteCommand) -> None:
        assert self.connected, "command started without a connection"
        self.commands.append(cmd.command)
        response = self._response(cmd.command)

        def _produce() -> None:
            if response.stdout:
                cmd.stdout.write(response.stdout)
            if response.stderr:
                cmd.stderr.write(response.stderr)
            cmd.set_exited(response.status)

        threading.Thread(target=_produce, daemon=True).start()

    def upload(self, path: str, content: IO[Any]) -> None:
        self.uploads.append((path, content.read()))


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
