from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from habprov.config import (
    Bind,
    ServiceType,
    Topology,
    UpdateStrategy,
    decode_config,
    load_document,
    validate_config,
)
from habprov.errors import ConfigError


@pytest.mark.parametrize("strategy", ["at-once", "rolling", "none"])
@pytest.mark.parametrize("topology", ["leader", "standalone"])
def test_valid_enumerations_are_accepted(strategy: str, topology: str) -> None:
    raw = {"services": [{"name": "core/redis", "strategy": strategy, "topology": topology}]}
    assert validate_config(raw) == []
    config = decode_config(raw)
    assert config.services[0].strategy is UpdateStrategy(strategy)
    assert config.services[0].topology is Topology(topology)


def test_one_error_per_invalid_field() -> None:
    raw = {
        "service_type": "launchd",
        "services": [
            {"name": "core/redis", "strategy": "sometimes", "topology": "mesh"},
            {"name": "core/nginx", "strategy": "rolling"},
        ],
    }
    errors = validate_config(raw)
    by_field = {err.field: str(err) for err in errors}
    assert len(errors) == 3
    assert by_field["service_type"] == "launchd is not a valid service_type."
    assert by_field["services.0.strategy"] == "sometimes is not a valid update strategy."
    assert by_field["services.0.topology"] == "mesh is not a valid topology."


def test_decode_config_combines_errors() -> None:
    raw = {"services": [{"name": "core/redis", "strategy": "x", "topology": "y"}]}
    with pytest.raises(ConfigError) as excinfo:
        decode_config(raw)
    assert len(excinfo.value.errors) == 2
    assert "x is not a valid update strategy." in str(excinfo.value)


def test_single_error_is_raised_directly() -> None:
    with pytest.raises(ConfigError) as excinfo:
        decode_config({"service_type": "bogus"})
    assert excinfo.value.field == "service_type"
    assert excinfo.value.value == "bogus"


def test_defaults_and_empty_values() -> None:
    config = decode_config(
        {"service_type": "", "service": [{"name": "core/redis", "strategy": "", "channel": ""}]}
    )
    assert config.service_type is ServiceType.UNMANAGED
    assert config.use_sudo is False
    assert config.skip_hab_install is False
    service = config.services[0]
    assert service.strategy is None
    assert service.channel is None
    assert service.user_toml is None


def test_binds_merge_mappings_then_strings(redis_config: dict) -> None:
    service = decode_config(redis_config).services[0]
    assert [bind.as_string() for bind in service.binds] == [
        "db:postgres.default",
        "backend:api.prod",
    ]


def test_bind_renders_option_fragment() -> None:
    bind = Bind(alias="db", service="postgres", group="default")
    assert bind.to_option() == "--bind db:postgres.default"
    assert Bind.parse("db:postgres.default") == bind


@pytest.mark.parametrize("text", ["db:postgres", "db:postgres.default.extra", "db:pg sql.default"])
def test_malformed_bind_string(text: str) -> None:
    errors = validate_config({"services": [{"name": "core/redis", "binds": [text]}]})
    assert len(errors) == 1
    assert str(errors[0]) == f"Invalid bind specification: {text}"
    assert errors[0].field == "services.0.binds"


def test_package_identifier_is_required() -> None:
    errors = validate_config({"services": [{"name": "redis"}]})
    assert len(errors) == 1
    assert errors[0].field == "services.0.name"


def test_package_name_and_service_dir() -> None:
    service = decode_config({"services": [{"name": "core/redis/4.0.14"}]}).services[0]
    assert service.package_name == "redis"
    assert service.service_dir == "/hab/svc/redis"


def test_numeric_version_is_stringified() -> None:
    assert decode_config({"version": 0.79}).version == "0.79"


def test_config_is_immutable(redis_config: dict) -> None:
    config = decode_config(redis_config)
    with pytest.raises(ValidationError):
        config.use_sudo = True  # type: ignore[misc]


def test_non_mapping_config() -> None:
    errors = validate_config(["core/redis"])
    assert len(errors) == 1


def test_load_document_reads_yaml(tmp_path: Path) -> None:
    path = tmp_path / "habitat.yaml"
    path.write_text(
        "use_sudo: true\n"
        "connection:\n"
        "  host: 10.0.0.9\n"
        "service:\n"
        "  - name: core/redis\n"
        "    user_toml: |\n"
        "      port = 6380\n",
        encoding="utf-8",
    )
    raw = load_document(path)
    assert raw["connection"] == {"host": "10.0.0.9"}
    config = decode_config(raw)
    assert config.use_sudo is True
    assert config.services[0].user_toml == "port = 6380\n"


def test_load_document_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_document(path)


def test_load_document_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_document(tmp_path / "missing.yaml")
