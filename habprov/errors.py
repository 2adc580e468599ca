from __future__ import annotations

from typing import Any, Optional, Sequence


class ProvisionError(RuntimeError):
    """Base class for failures reported by a provisioning run."""


class ConfigError(ProvisionError):
    """Raised when the provisioner configuration holds an invalid value."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        errors: Sequence["ConfigError"] = (),
    ) -> None:
        super().__init__(message)
        self.field = field
        self.value = value
        self.errors = tuple(errors)

    @classmethod
    def combine(cls, errors: Sequence["ConfigError"]) -> "ConfigError":
        if len(errors) == 1:
            return errors[0]
        message = "; ".join(str(err) for err in errors)
        return cls(message, errors=errors)


class ConnectError(ProvisionError):
    """Raised when the remote session cannot be established."""


class ExecutionError(ProvisionError):
    """Raised when a remote command did not complete successfully."""


class NonZeroExitError(ExecutionError):
    def __init__(self, command: str, status: int) -> None:
        super().__init__(
            f"Command {command!r} exited with non-zero exit status: {status}"
        )
        self.command = command
        self.status = status


class TransportError(ProvisionError):
    """Raised on I/O failures while starting commands or moving data."""


__all__ = [
    "ConfigError",
    "ConnectError",
    "ExecutionError",
    "NonZeroExitError",
    "ProvisionError",
    "TransportError",
]
