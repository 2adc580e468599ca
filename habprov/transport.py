"""
Transport capability interface.

A :class:`Communicator` connects to a host, starts remote commands whose
output is written to caller supplied byte sinks, and uploads file contents.
The SSH implementation lives in :mod:`habprov.ssh`; :class:`DryRunCommunicator`
records what would have been executed without touching the network.
"""

from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass, field
from typing import IO, Any, Callable, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0
DEFAULT_RETRY_INTERVAL = 3.0


@dataclass
class RemoteCommand:
    """A single remote invocation; created per call and discarded afterwards."""

    command: str
    stdout: Optional[IO[bytes]] = None
    stderr: Optional[IO[bytes]] = None
    exit_status: Optional[int] = None
    error: Optional[BaseException] = None
    _exited: threading.Event = field(default_factory=threading.Event, repr=False)

    def set_exited(self, status: int, error: Optional[BaseException] = None) -> None:
        self.exit_status = status
        if error is not None:
            self.error = error
        self._exited.set()

    @property
    def exited(self) -> bool:
        return self._exited.is_set()

    def wait(self) -> int:
        """Block until the remote process reported completion."""
        self._exited.wait()
        assert self.exit_status is not None
        return self.exit_status


class Communicator(abc.ABC):
    """Remote execution session used by the provisioner."""

    timeout: float = DEFAULT_TIMEOUT
    retry_interval: float = DEFAULT_RETRY_INTERVAL

    @abc.abstractmethod
    def connect(self, output: Optional[Callable[[str], None]] = None) -> None:
        """Open the session; raise :class:`~habprov.errors.ConnectError` on failure."""

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Release the session."""

    @abc.abstractmethod
    def start(self, cmd: RemoteCommand) -> None:
        """
        Start *cmd* remotely and return immediately.

        Output is written to ``cmd.stdout`` / ``cmd.stderr`` and
        ``cmd.set_exited`` is called once the remote process finished.
        """

    @abc.abstractmethod
    def upload(self, path: str, content: IO[bytes]) -> None:
        """Write *content* to *path* on the remote host."""


class DryRunCommunicator(Communicator):
    """Record-only transport: every command succeeds without output."""

    def __init__(self, host: str = "dry-run") -> None:
        self.host = host
        self.connected = False
        self.commands: List[str] = []
        self.uploads: List[Tuple[str, bytes]] = []
        # ("exec", command) / ("upload", path) in the order they happened.
        self.actions: List[Tuple[str, str]] = []

    def connect(self, output: Optional[Callable[[str], None]] = None) -> None:
        LOGGER.debug("Dry-run connect to %s", self.host)
        if output:
            output(f"Connecting to {self.host} (dry run)")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def start(self, cmd: RemoteCommand) -> None:
        self.commands.append(cmd.command)
        self.actions.append(("exec", cmd.command))
        cmd.set_exited(0)

    def upload(self, path: str, content: IO[Any]) -> None:
        data = content.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.uploads.append((path, data))
        self.actions.append(("upload", path))


__all__ = [
    "Communicator",
    "DEFAULT_RETRY_INTERVAL",
    "DEFAULT_TIMEOUT",
    "DryRunCommunicator",
    "RemoteCommand",
]
