"""
Remote command builders.

Every step is assembled as an argument list and rendered with
:func:`shlex.join`, so values from the configuration are always quoted.  Shell
syntax (redirection, backgrounding) is only wrapped around rendered argument
lists, never spliced into them.
"""

from __future__ import annotations

import re
import shlex
import uuid
from typing import List, Optional, Sequence

from habprov.config import Bind, ProvisionerConfig, ServiceSpec

INSTALL_URL = (
    "https://raw.githubusercontent.com/habitat-sh/habitat/master/components/hab/install.sh"
)
INSTALL_SCRIPT = "install.sh"
SUP_LOG_DIR = "/hab/sup/default"
SUP_LOG_FILE = f"{SUP_LOG_DIR}/sup.log"
SYSTEMD_UNIT_NAME = "hab-supervisor"
SYSTEMD_UNIT_PATH = f"/etc/systemd/system/{SYSTEMD_UNIT_NAME}.service"
# Relative to the login user's home, which both SFTP and exec sessions start in.
STAGING_DIR = ".habprov"

SYSTEMD_UNIT_TEMPLATE = """[Unit]
Description=Habitat Supervisor

[Service]
ExecStart=/bin/hab sup run{options}
Restart=on-failure

[Install]
WantedBy=default.target
"""


def render(args: Sequence[str]) -> str:
    return shlex.join(list(args))


def elevate(args: Sequence[str], use_sudo: bool, *, preserve_env: bool = False) -> List[str]:
    if not use_sudo:
        return list(args)
    prefix = ["sudo", "-E"] if preserve_env else ["sudo"]
    return prefix + list(args)


def noninteractive(args: Sequence[str]) -> List[str]:
    return ["env", "HAB_NONINTERACTIVE=true", *args]


# ---------------------------------------------------------------------------
# Runtime install
# ---------------------------------------------------------------------------


def download_installer(url: str = INSTALL_URL) -> List[str]:
    return ["curl", "-L0", "-o", INSTALL_SCRIPT, url]


def run_installer(version: Optional[str], use_sudo: bool) -> List[str]:
    args = ["bash", f"./{INSTALL_SCRIPT}"]
    if version:
        args.extend(["-v", version])
    return elevate(args, use_sudo)


def remove_installer() -> List[str]:
    return ["rm", "-f", INSTALL_SCRIPT]


def install_busybox(use_sudo: bool) -> List[str]:
    return elevate(["hab", "install", "core/busybox"], use_sudo)


def add_hab_user(use_sudo: bool) -> List[str]:
    return elevate(
        ["hab", "pkg", "exec", "core/busybox", "adduser", "-D", "-g", "", "hab"],
        use_sudo,
    )


# ---------------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------------


def install_supervisor(version: Optional[str], use_sudo: bool) -> List[str]:
    ident = f"core/hab-sup/{version}" if version else "core/hab-sup"
    return noninteractive(elevate(["hab", "install", ident], use_sudo, preserve_env=True))


def supervisor_options(config: ProvisionerConfig) -> List[str]:
    options: List[str] = []
    if config.permanent_peer:
        options.append("-I")
    if config.listen_gossip:
        options.extend(["--listen-gossip", config.listen_gossip])
    if config.listen_http:
        options.extend(["--listen-http", config.listen_http])
    if config.peer:
        options.extend(["--peer", config.peer])
    if config.ring_key:
        options.extend(["--ring", config.ring_key])
    return options


def supervisor_run(options: Sequence[str], use_sudo: bool) -> List[str]:
    return elevate(["hab", "sup", "run", *options], use_sudo)


def prepare_sup_log_dir(use_sudo: bool) -> List[List[str]]:
    return [
        elevate(["mkdir", "-p", SUP_LOG_DIR], use_sudo),
        elevate(["chmod", "o+w", SUP_LOG_DIR], use_sudo),
    ]


def launch_unmanaged(options: Sequence[str], use_sudo: bool) -> str:
    """Background the supervisor in its own session with output sent to the log."""
    run = render(["setsid", *supervisor_run(options, use_sudo)])
    log = shlex.quote(SUP_LOG_FILE)
    return f"({run} > {log} 2>&1 < /dev/null &) ; sleep 1"


_SYSTEMD_SAFE_RE = re.compile(r"^[A-Za-z0-9_@%+=:,./-]+$")


def systemd_quote(arg: str) -> str:
    """
    Quote one ``ExecStart=`` word using systemd's rules rather than the shell's.

    systemd expands ``%`` specifiers and ``$`` variables even inside quotes, so
    both are doubled; the word is wrapped in double quotes with C-style escapes
    when it holds anything outside a conservative safe set.
    """

    text = arg.replace("%", "%%").replace("$", "$$")
    if text and _SYSTEMD_SAFE_RE.match(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def systemd_unit(options: Sequence[str]) -> str:
    rendered = "".join(f" {systemd_quote(option)}" for option in options)
    return SYSTEMD_UNIT_TEMPLATE.format(options=rendered)


def systemctl(action: str, use_sudo: bool, unit: Optional[str] = None) -> List[str]:
    args = ["systemctl", action]
    if unit:
        args.append(unit)
    return elevate(args, use_sudo)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def install_package(name: str, use_sudo: bool) -> List[str]:
    return noninteractive(elevate(["hab", "pkg", "install", name], use_sudo, preserve_env=True))


def service_options(service: ServiceSpec) -> List[str]:
    options: List[str] = []
    if service.topology is not None:
        options.extend(["--topology", service.topology.value])
    if service.strategy is not None:
        options.extend(["--strategy", service.strategy.value])
    if service.channel:
        options.extend(["--channel", service.channel])
    if service.url:
        options.extend(["--url", service.url])
    if service.group:
        options.extend(["--group", service.group])
    for bind in service.binds:
        options.extend(bind_args(bind))
    return options


def bind_args(bind: Bind) -> List[str]:
    return bind.to_args()


def start_service(service: ServiceSpec, use_sudo: bool) -> List[str]:
    return elevate(["hab", "sup", "start", service.name, *service_options(service)], use_sudo)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def make_dir(path: str, use_sudo: bool, *, mode: str = "0755") -> List[str]:
    return elevate(["mkdir", "-p", "-m", mode, path], use_sudo)


def make_staging_dir() -> List[str]:
    return ["mkdir", "-p", "-m", "0700", STAGING_DIR]


def staging_path(destination: str, nonce: Optional[str] = None) -> str:
    """Return a per-upload path inside the private staging directory."""
    token = re.sub(r"[^A-Za-z0-9_.-]+", "_", destination.strip("/")) or "upload"
    return f"{STAGING_DIR}/{nonce or uuid.uuid4().hex}.{token}"


def install_file(source: str, destination: str, use_sudo: bool, *, mode: str = "0644") -> List[str]:
    return elevate(["install", "-m", mode, source, destination], use_sudo)


def remove_file(path: str) -> List[str]:
    return ["rm", "-f", path]


__all__ = [
    "INSTALL_URL",
    "SUP_LOG_FILE",
    "SYSTEMD_UNIT_NAME",
    "SYSTEMD_UNIT_PATH",
    "add_hab_user",
    "bind_args",
    "download_installer",
    "elevate",
    "install_busybox",
    "install_file",
    "install_package",
    "install_supervisor",
    "launch_unmanaged",
    "make_dir",
    "make_staging_dir",
    "noninteractive",
    "prepare_sup_log_dir",
    "remove_file",
    "remove_installer",
    "render",
    "run_installer",
    "service_options",
    "staging_path",
    "start_service",
    "supervisor_options",
    "supervisor_run",
    "systemctl",
    "systemd_quote",
    "systemd_unit",
]
