from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from habprov.config import load_document, validate_config
from habprov.errors import ConfigError
from habprov.logging_setup import init_logging
from habprov.output import open_transcript, tee
from habprov.provisioner import provision
from habprov.ssh import SSHCommunicator, SSHConfig
from habprov.transport import DryRunCommunicator

app = typer.Typer(
    add_completion=False,
    help="Provision Habitat supervisors and services on remote hosts.",
)
logger = logging.getLogger(__name__)


def _load(path: Path) -> Dict[str, Any]:
    try:
        return load_document(path)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _connection_settings(raw: Dict[str, Any]) -> Dict[str, Any]:
    connection = raw.get("connection") or {}
    if not isinstance(connection, dict):
        typer.echo("error: 'connection' must be a mapping", err=True)
        raise typer.Exit(code=2)
    return dict(connection)


@app.command()
def validate(
    config: Path = typer.Argument(..., help="Provisioner YAML document."),
) -> None:
    """Check the provisioner configuration without contacting the host."""
    raw = _load(config)
    errors = validate_config(raw)
    for err in errors:
        typer.echo(f"{err.field or 'config'}: {err}", err=True)
    if errors:
        raise typer.Exit(code=1)
    services = raw.get("service") or raw.get("services") or []
    count = 1 if isinstance(services, dict) else len(services)
    typer.echo(json.dumps({"ok": True, "services": count}, indent=2))


@app.command()
def plan(
    config: Path = typer.Argument(..., help="Provisioner YAML document."),
) -> None:
    """Print the remote commands and uploads an apply would perform."""
    raw = _load(config)
    host = str(_connection_settings(raw).get("host") or "dry-run")
    communicator = DryRunCommunicator(host=host)
    outcome = provision(raw, communicator, lambda line: None)
    for kind, text in communicator.actions:
        typer.echo(f"# upload {text}" if kind == "upload" else text)
    if not outcome.succeeded:
        typer.echo(outcome.describe(), err=True)
        raise typer.Exit(code=1)


@app.command()
def apply(
    config: Path = typer.Argument(..., help="Provisioner YAML document."),
    host: Optional[str] = typer.Option(None, help="Override connection.host."),
    user: Optional[str] = typer.Option(None, help="Override connection.user."),
    port: Optional[int] = typer.Option(None, help="Override connection.port."),
    password: Optional[str] = typer.Option(
        None, envvar="HABPROV_SSH_PASSWORD", help="SSH password."
    ),
    private_key: Optional[Path] = typer.Option(None, help="SSH private key file."),
    timeout: Optional[float] = typer.Option(
        None, help="Seconds to keep retrying the initial connection."
    ),
    retry_interval: Optional[float] = typer.Option(
        None, help="Seconds between connection attempts."
    ),
    sudo: Optional[bool] = typer.Option(None, "--sudo/--no-sudo", help="Override use_sudo."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log remote output."),
) -> None:
    """Provision the host described by CONFIG over SSH."""
    run_dir, _ = init_logging("apply", level="DEBUG" if verbose else "INFO")
    raw = _load(config)
    settings = _connection_settings(raw)
    overrides = {
        "host": host,
        "user": user,
        "port": port,
        "password": password,
        "private_key": str(private_key) if private_key else None,
        "timeout": timeout,
        "retry_interval": retry_interval,
    }
    settings.update({key: value for key, value in overrides.items() if value is not None})
    if sudo is not None:
        raw["use_sudo"] = sudo

    try:
        ssh_config = SSHConfig.from_mapping(settings)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    writer, transcript = open_transcript(ssh_config.host)
    logger.info("Provisioning %s (transcript=%s, logs=%s)", ssh_config.host, transcript, run_dir)
    outcome = provision(raw, SSHCommunicator(ssh_config), tee(typer.echo, writer))
    if not outcome.succeeded:
        raise typer.Exit(code=1)


__all__ = ["app"]
