"""
Provisioner configuration models.

The provisioner consumes a plain mapping (usually loaded from YAML) and decodes
it into frozen pydantic models.  Decoding validates the enumerated values
(update strategy, topology, service type) before any remote interaction
starts; :func:`validate_config` reports one :class:`ConfigError` per invalid
field so callers can surface every problem at once.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple, Type

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from habprov.errors import ConfigError

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_PACKAGE_RE = re.compile(r"^[A-Za-z0-9_-]+/[A-Za-z0-9_.+-]+(/[A-Za-z0-9_.+-]+){0,2}$")


class UpdateStrategy(str, Enum):
    AT_ONCE = "at-once"
    ROLLING = "rolling"
    NONE = "none"


class Topology(str, Enum):
    LEADER = "leader"
    STANDALONE = "standalone"


class ServiceType(str, Enum):
    UNMANAGED = "unmanaged"
    SYSTEMD = "systemd"


def _choice(value: Any, enum_cls: Type[Enum], label: str) -> Optional[Enum]:
    if value is None or isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return enum_cls(text)
    except ValueError:
        raise ValueError(f"{text} is not a valid {label}.") from None


def _optional_token(value: Any, label: str) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if any(ch.isspace() for ch in text):
        raise ValueError(f"{text!r} is not a valid {label}.")
    return text


class Bind(BaseModel):
    """Wiring between a service and a peer service group."""

    alias: str
    service: str
    group: str

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("alias", "service", "group", mode="before")
    @classmethod
    def _token(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not _TOKEN_RE.match(text):
            raise ValueError(f"{text!r} is not a valid bind component.")
        return text

    @classmethod
    def parse(cls, text: str) -> "Bind":
        """Parse ``alias:service.group``; raises ``ValueError`` when malformed."""
        parts = [part for part in re.split(r"[:.]", str(text)) if part]
        if len(parts) != 3 or not all(_TOKEN_RE.match(part) for part in parts):
            raise ValueError(f"Invalid bind specification: {text}")
        return cls(alias=parts[0], service=parts[1], group=parts[2])

    def as_string(self) -> str:
        return f"{self.alias}:{self.service}.{self.group}"

    def to_args(self) -> List[str]:
        return ["--bind", self.as_string()]

    def to_option(self) -> str:
        return " ".join(self.to_args())


class ServiceSpec(BaseModel):
    """A Habitat package to load into the supervisor."""

    name: str
    strategy: Optional[UpdateStrategy] = None
    topology: Optional[Topology] = None
    channel: Optional[str] = None
    group: Optional[str] = None
    url: Optional[str] = None
    binds: Tuple[Bind, ...] = ()
    user_toml: Optional[str] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _merge_binds(cls, data: Any) -> Any:
        # ``bind`` holds mappings, ``binds`` holds "alias:service.group" strings;
        # both end up in ``binds`` in that order.
        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        merged: List[Any] = []
        for key in ("bind", "binds"):
            entries = payload.pop(key, None)
            if entries is None:
                continue
            if isinstance(entries, (str, Mapping)):
                entries = [entries]
            merged.extend(entries)
        payload["binds"] = merged
        return payload

    @field_validator("name", mode="before")
    @classmethod
    def _package_ident(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not _PACKAGE_RE.match(text):
            raise ValueError(
                f"{text!r} is not a valid package identifier (origin/name[/version[/release]])."
            )
        return text

    @field_validator("strategy", mode="before")
    @classmethod
    def _strategy(cls, value: Any) -> Optional[Enum]:
        return _choice(value, UpdateStrategy, "update strategy")

    @field_validator("topology", mode="before")
    @classmethod
    def _topology(cls, value: Any) -> Optional[Enum]:
        return _choice(value, Topology, "topology")

    @field_validator("channel", "group", mode="before")
    @classmethod
    def _tokens(cls, value: Any, info: ValidationInfo) -> Optional[str]:
        return _optional_token(value, info.field_name)

    @field_validator("url", mode="before")
    @classmethod
    def _url(cls, value: Any) -> Optional[str]:
        return _optional_token(value, "url")

    @field_validator("binds", mode="before")
    @classmethod
    def _parse_binds(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        return [Bind.parse(item) if isinstance(item, str) else item for item in value]

    @field_validator("user_toml", mode="before")
    @classmethod
    def _user_toml(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value)
        return text if text.strip() else None

    @property
    def package_name(self) -> str:
        return self.name.split("/")[1]

    @property
    def service_dir(self) -> str:
        return f"/hab/svc/{self.package_name}"


class ProvisionerConfig(BaseModel):
    """Settings for one provisioning run."""

    version: Optional[str] = None
    services: Tuple[ServiceSpec, ...] = Field(
        default=(), validation_alias=AliasChoices("service", "services")
    )
    permanent_peer: bool = False
    listen_gossip: Optional[str] = None
    listen_http: Optional[str] = None
    peer: Optional[str] = None
    ring_key: Optional[str] = None
    skip_hab_install: bool = False
    use_sudo: bool = False
    service_type: ServiceType = ServiceType.UNMANAGED

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @field_validator(
        "version", "listen_gossip", "listen_http", "peer", "ring_key", mode="before"
    )
    @classmethod
    def _scalar(cls, value: Any, info: ValidationInfo) -> Optional[str]:
        return _optional_token(value, info.field_name)

    @field_validator("services", mode="before")
    @classmethod
    def _services(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, Mapping):
            return [value]
        return value

    @field_validator("service_type", mode="before")
    @classmethod
    def _service_type(cls, value: Any) -> Enum:
        return _choice(value, ServiceType, "service_type") or ServiceType.UNMANAGED


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------


def _to_config_error(err: Mapping[str, Any]) -> ConfigError:
    field = ".".join(str(part) for part in err.get("loc") or ())
    cause = (err.get("ctx") or {}).get("error")
    if isinstance(cause, Exception):
        message = str(cause)
    else:
        message = f"{field}: {err.get('msg')}" if field else str(err.get("msg"))
    return ConfigError(message, field=field or None, value=err.get("input"))


def _decode(raw: Any) -> Tuple[Optional[ProvisionerConfig], List[ConfigError]]:
    if not isinstance(raw, Mapping):
        return None, [ConfigError("provisioner configuration must be a mapping", value=raw)]
    try:
        return ProvisionerConfig.model_validate(dict(raw)), []
    except ValidationError as exc:
        return None, [_to_config_error(err) for err in exc.errors()]


def validate_config(raw: Any) -> List[ConfigError]:
    """Return one :class:`ConfigError` per invalid field of *raw*."""
    _, errors = _decode(raw)
    return errors


def decode_config(raw: Any) -> ProvisionerConfig:
    """Decode *raw* into a :class:`ProvisionerConfig` or raise :class:`ConfigError`."""
    config, errors = _decode(raw)
    if errors:
        raise ConfigError.combine(errors)
    assert config is not None
    return config


def load_document(path: str | Path) -> dict:
    """Read a YAML (or JSON) provisioner document from *path*."""
    source = Path(path).expanduser()
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration {source}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse configuration {source}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {source} must contain a mapping", value=data)
    return data


__all__ = [
    "Bind",
    "ProvisionerConfig",
    "ServiceSpec",
    "ServiceType",
    "Topology",
    "UpdateStrategy",
    "decode_config",
    "load_document",
    "validate_config",
]
