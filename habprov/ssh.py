"""
SSH communicator built on paramiko.

Each remote command runs on a fresh session channel.  Two pump threads copy
``recv`` / ``recv_stderr`` data into the command's byte sinks as it arrives;
the command is marked exited once the exit status is known and both pumps
reached end of stream.
"""

from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable, Mapping, Optional

import paramiko

from habprov.errors import ConfigError, ConnectError, TransportError
from habprov.transport import (
    DEFAULT_RETRY_INTERVAL,
    DEFAULT_TIMEOUT,
    Communicator,
    RemoteCommand,
)

LOGGER = logging.getLogger(__name__)

_RECV_SIZE = 32768


@dataclass(slots=True)
class SSHConfig:
    host: str
    user: str = "root"
    port: int = 22
    password: Optional[str] = None
    private_key: Optional[Path] = None
    passphrase: Optional[str] = None
    agent: bool = True
    connect_timeout: float = 10.0
    timeout: float = DEFAULT_TIMEOUT
    retry_interval: float = DEFAULT_RETRY_INTERVAL

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SSHConfig":
        data = dict(payload)
        host = data.get("host")
        if not host:
            raise ConfigError("SSH connection requires a host", field="connection.host")
        user = data.get("user") or data.get("username") or "root"
        identity = data.get("private_key") or data.get("identity_file")

        try:
            port = int(data.get("port") or 22)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                "SSH port must be an integer", field="connection.port", value=data.get("port")
            ) from exc

        def _seconds(key: str, default: float) -> float:
            value = data.get(key)
            if value is None or value == "":
                return default
            try:
                return float(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(
                    f"SSH {key} must be numeric", field=f"connection.{key}", value=value
                ) from exc

        agent = data.get("agent")
        return cls(
            host=str(host),
            user=str(user),
            port=port,
            password=str(data["password"]) if data.get("password") else None,
            private_key=Path(str(identity)).expanduser() if identity else None,
            passphrase=str(data["passphrase"]) if data.get("passphrase") else None,
            agent=True if agent is None else bool(agent),
            connect_timeout=_seconds("connect_timeout", 10.0),
            timeout=_seconds("timeout", DEFAULT_TIMEOUT),
            retry_interval=_seconds("retry_interval", DEFAULT_RETRY_INTERVAL),
        )


class SSHCommunicator(Communicator):
    """paramiko-backed :class:`Communicator`."""

    def __init__(
        self,
        config: SSHConfig,
        *,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        self.config = config
        self.timeout = config.timeout
        self.retry_interval = config.retry_interval
        self._client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None

    # ------------------------------------------------------------ connection
    def connect(self, output: Optional[Callable[[str], None]] = None) -> None:
        cfg = self.config
        if output:
            output("Connecting to remote host via SSH...")
            output(f"  Host: {cfg.host}")
            output(f"  User: {cfg.user}")
            output(f"  Password: {cfg.password is not None}")
            output(f"  Private key: {cfg.private_key is not None}")
            output(f"  SSH Agent: {cfg.agent}")

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=cfg.host,
                port=cfg.port,
                username=cfg.user,
                password=cfg.password,
                key_filename=str(cfg.private_key) if cfg.private_key else None,
                passphrase=cfg.passphrase,
                allow_agent=cfg.agent,
                look_for_keys=cfg.private_key is None and cfg.password is None,
                timeout=cfg.connect_timeout,
            )
        except (paramiko.SSHException, socket.error) as exc:
            client.close()
            raise ConnectError(f"SSH connect to {cfg.host}:{cfg.port} failed: {exc}") from exc
        self._client = client
        LOGGER.info("Connected to %s@%s:%s", cfg.user, cfg.host, cfg.port)
        if output:
            output("Connected!")

    def disconnect(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        LOGGER.info("Disconnected from %s", self.config.host)

    def _transport(self) -> paramiko.Transport:
        if self._client is None:
            raise TransportError("SSH session is not connected")
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise TransportError("SSH transport is not active")
        return transport

    # -------------------------------------------------------------- commands
    def start(self, cmd: RemoteCommand) -> None:
        try:
            channel = self._transport().open_session()
            channel.exec_command(cmd.command)
        except (paramiko.SSHException, socket.error) as exc:
            raise TransportError(f"Error executing command {cmd.command!r}: {exc}") from exc
        threading.Thread(
            target=self._supervise,
            args=(channel, cmd),
            name="habprov-ssh-wait",
            daemon=True,
        ).start()

    def _supervise(self, channel: paramiko.Channel, cmd: RemoteCommand) -> None:
        errors: list[BaseException] = []
        pumps = [
            threading.Thread(
                target=self._pump,
                args=(channel.recv, cmd.stdout, errors),
                name="habprov-ssh-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(channel.recv_stderr, cmd.stderr, errors),
                name="habprov-ssh-stderr",
                daemon=True,
            ),
        ]
        status = -1
        try:
            for pump in pumps:
                pump.start()
            status = channel.recv_exit_status()
            for pump in pumps:
                pump.join()
            channel.close()
        except Exception as exc:
            LOGGER.warning("SSH command %r failed while waiting for exit: %s", cmd.command, exc)
            errors.insert(0, exc)
            status = -1
        finally:
            # The runner blocks on this; it must fire on every path.
            cmd.set_exited(status, errors[0] if errors else None)

    @staticmethod
    def _pump(
        recv: Callable[[int], bytes],
        sink: Optional[IO[bytes]],
        errors: list[BaseException],
    ) -> None:
        # Keep reading after a failed write so the remote side never stalls
        # on a full channel window.
        while True:
            try:
                data = recv(_RECV_SIZE)
            except (OSError, paramiko.SSHException) as exc:
                LOGGER.warning("SSH output pump failed: %s", exc)
                errors.append(exc)
                return
            if not data:
                return
            if sink is None:
                continue
            try:
                sink.write(data)
            except (OSError, ValueError) as exc:
                LOGGER.warning("SSH output sink failed: %s", exc)
                errors.append(exc)
                sink = None

    # ----------------------------------------------------------------- files
    def upload(self, path: str, content: IO[bytes]) -> None:
        client = self._client
        if client is None:
            raise TransportError("SSH session is not connected")
        LOGGER.debug("SFTP upload -> %s", path)
        try:
            sftp = client.open_sftp()
            try:
                sftp.putfo(content, path)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"Error uploading {path}: {exc}") from exc


__all__ = ["SSHCommunicator", "SSHConfig"]
