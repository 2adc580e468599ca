"""
Provisioning sequence controller.

A run walks a fixed, fail-fast sequence over a single connection::

    validate -> connect -> install (unless skipped) -> supervisor -> services

The connection is released once it was opened, whatever the outcome of the
later stages.  Failures never roll back; the remote host keeps whatever the
completed steps produced.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from habprov import commands
from habprov.config import ProvisionerConfig, ServiceType, decode_config
from habprov.errors import ConfigError, ProvisionError
from habprov.registrar import ServiceRegistrar
from habprov.relay import OutputSink
from habprov.retry import Clock, connect_with_retry
from habprov.runner import RemoteSession
from habprov.transport import Communicator

LOGGER = logging.getLogger(__name__)


class Stage(str, Enum):
    VALIDATE = "validate"
    CONNECT = "connect"
    INSTALL = "install"
    SUPERVISOR = "supervisor"
    SERVICES = "services"


@dataclass(frozen=True)
class ProvisionOutcome:
    succeeded: bool
    stage: Optional[Stage] = None
    error: Optional[ProvisionError] = None
    service: Optional[str] = None

    @classmethod
    def success(cls) -> "ProvisionOutcome":
        return cls(succeeded=True)

    @classmethod
    def failure(
        cls, stage: Stage, error: ProvisionError, service: Optional[str] = None
    ) -> "ProvisionOutcome":
        return cls(succeeded=False, stage=stage, error=error, service=service)

    def describe(self) -> str:
        if self.succeeded:
            return "Provisioning succeeded"
        where = f"{self.stage.value}" if self.stage else "unknown stage"
        if self.service:
            where += f" ({self.service})"
        return f"Provisioning failed during {where}: {self.error}"

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error


class Provisioner:
    """Drive one provisioning run against *communicator*."""

    def __init__(
        self,
        config: ProvisionerConfig,
        communicator: Communicator,
        output: OutputSink,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config
        self.communicator = communicator
        self.output = output
        self.clock = clock
        self.session = RemoteSession(communicator, output, use_sudo=config.use_sudo)
        self.registrar = ServiceRegistrar(self.session)

    @contextlib.contextmanager
    def connection(self) -> Iterator[Communicator]:
        connect_with_retry(self.communicator, self.output, clock=self.clock)
        try:
            yield self.communicator
        finally:
            self.communicator.disconnect()

    def apply(self) -> ProvisionOutcome:
        stage = Stage.CONNECT
        service_name: Optional[str] = None
        try:
            with self.connection():
                if not self.config.skip_hab_install:
                    stage = Stage.INSTALL
                    self.install_hab()
                stage = Stage.SUPERVISOR
                self.start_supervisor()
                stage = Stage.SERVICES
                for service in self.config.services:
                    service_name = service.name
                    self.registrar.register(service)
                service_name = None
        except ProvisionError as exc:
            outcome = ProvisionOutcome.failure(stage, exc, service_name)
            LOGGER.error("%s", outcome.describe())
            self.output(outcome.describe())
            return outcome
        LOGGER.info("Provisioning complete (%d services)", len(self.config.services))
        return ProvisionOutcome.success()

    # ----------------------------------------------------------------- install
    def install_hab(self) -> None:
        use_sudo = self.config.use_sudo
        self.session.run(commands.download_installer())
        self.session.run(commands.run_installer(self.config.version, use_sudo))
        self.create_hab_user()
        self.session.run(commands.remove_installer())

    def create_hab_user(self) -> None:
        use_sudo = self.config.use_sudo
        self.session.run(commands.install_busybox(use_sudo))
        self.session.run(commands.add_hab_user(use_sudo))

    # -------------------------------------------------------------- supervisor
    def start_supervisor(self) -> None:
        self.session.run(
            commands.install_supervisor(self.config.version, self.config.use_sudo)
        )
        options = commands.supervisor_options(self.config)
        if self.config.service_type is ServiceType.SYSTEMD:
            self.start_systemd(options)
        else:
            self.start_unmanaged(options)

    def start_unmanaged(self, options: list[str]) -> None:
        use_sudo = self.config.use_sudo
        for step in commands.prepare_sup_log_dir(use_sudo):
            self.session.run(step)
        self.session.run(commands.launch_unmanaged(options, use_sudo))

    def start_systemd(self, options: list[str]) -> None:
        use_sudo = self.config.use_sudo
        self.session.put_file(commands.systemd_unit(options), commands.SYSTEMD_UNIT_PATH)
        self.session.run(commands.systemctl("daemon-reload", use_sudo))
        self.session.run(
            commands.systemctl("start", use_sudo, commands.SYSTEMD_UNIT_NAME)
        )


def provision(
    raw: Mapping[str, Any],
    communicator: Communicator,
    output: OutputSink,
    *,
    clock: Optional[Clock] = None,
) -> ProvisionOutcome:
    """Validate *raw* and, when valid, run the full sequence."""
    try:
        config = decode_config(raw)
    except ConfigError as exc:
        outcome = ProvisionOutcome.failure(Stage.VALIDATE, exc)
        output(outcome.describe())
        return outcome
    return Provisioner(config, communicator, output, clock=clock).apply()


__all__ = ["ProvisionOutcome", "Provisioner", "Stage", "provision"]
