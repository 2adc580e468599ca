from __future__ import annotations

import logging

from habprov import commands
from habprov.config import ServiceSpec
from habprov.runner import RemoteSession

LOGGER = logging.getLogger(__name__)


class ServiceRegistrar:
    """Install a Habitat package, lay down its ``user.toml`` and load it."""

    def __init__(self, session: RemoteSession) -> None:
        self.session = session

    def register(self, service: ServiceSpec) -> None:
        use_sudo = self.session.use_sudo
        LOGGER.info("Registering service %s", service.name)
        self.session.run(commands.install_package(service.name, use_sudo))
        if service.user_toml is not None:
            self.upload_user_toml(service)
        self.session.run(commands.start_service(service, use_sudo))

    def upload_user_toml(self, service: ServiceSpec) -> None:
        dest_dir = service.service_dir
        self.session.run(commands.make_dir(dest_dir, self.session.use_sudo))
        assert service.user_toml is not None
        self.session.put_file(service.user_toml, f"{dest_dir}/user.toml")


__all__ = ["ServiceRegistrar"]
