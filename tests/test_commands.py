from __future__ import annotations

import pytest

from habprov import commands
from habprov.config import Bind, decode_config


def _service(**fields):
    payload = {"name": "core/redis", **fields}
    return decode_config({"services": [payload]}).services[0]


def test_bind_fragment() -> None:
    bind = Bind(alias="db", service="postgres", group="default")
    assert commands.render(commands.bind_args(bind)) == "--bind db:postgres.default"


def test_service_options_follow_declared_order(redis_config: dict) -> None:
    service = decode_config(redis_config).services[0]
    assert commands.render(commands.service_options(service)) == (
        "--topology leader --strategy rolling --channel stable --group cache "
        "--bind db:postgres.default --bind backend:api.prod"
    )


def test_start_service_with_url_is_quoted() -> None:
    service = _service(url="https://bldr.example.com/v1?a=1&b=2")
    assert commands.render(commands.start_service(service, use_sudo=True)) == (
        "sudo hab sup start core/redis --url 'https://bldr.example.com/v1?a=1&b=2'"
    )


def test_start_service_without_options() -> None:
    assert commands.render(commands.start_service(_service(), use_sudo=False)) == (
        "hab sup start core/redis"
    )


def test_install_package_keeps_environment_under_sudo() -> None:
    assert commands.render(commands.install_package("core/redis", True)) == (
        "env HAB_NONINTERACTIVE=true sudo -E hab pkg install core/redis"
    )
    assert commands.render(commands.install_package("core/redis", False)) == (
        "env HAB_NONINTERACTIVE=true hab pkg install core/redis"
    )


def test_runtime_install_steps() -> None:
    assert commands.render(commands.download_installer()) == (
        f"curl -L0 -o install.sh {commands.INSTALL_URL}"
    )
    assert commands.render(commands.run_installer("0.79.1", True)) == (
        "sudo bash ./install.sh -v 0.79.1"
    )
    assert commands.render(commands.run_installer(None, False)) == "bash ./install.sh"
    assert commands.render(commands.add_hab_user(False)) == (
        "hab pkg exec core/busybox adduser -D -g '' hab"
    )


def test_supervisor_install_pins_version() -> None:
    assert commands.render(commands.install_supervisor("0.79.1", True)) == (
        "env HAB_NONINTERACTIVE=true sudo -E hab install core/hab-sup/0.79.1"
    )
    assert commands.render(commands.install_supervisor(None, False)) == (
        "env HAB_NONINTERACTIVE=true hab install core/hab-sup"
    )


def test_supervisor_options(redis_config: dict) -> None:
    config = decode_config({**redis_config, "listen_http": "0.0.0.0:9631"})
    assert commands.supervisor_options(config) == [
        "-I",
        "--listen-gossip",
        "0.0.0.0:9638",
        "--listen-http",
        "0.0.0.0:9631",
        "--peer",
        "10.0.0.5",
        "--ring",
        "prod-ring",
    ]


def test_launch_unmanaged() -> None:
    assert commands.launch_unmanaged(["--peer", "10.0.0.5"], use_sudo=True) == (
        "(setsid sudo hab sup run --peer 10.0.0.5 > /hab/sup/default/sup.log 2>&1 "
        "< /dev/null &) ; sleep 1"
    )


def test_systemd_unit() -> None:
    unit = commands.systemd_unit(["-I", "--peer", "10.0.0.5"])
    assert "ExecStart=/bin/hab sup run -I --peer 10.0.0.5\n" in unit
    assert "Restart=on-failure" in unit
    assert unit.endswith("WantedBy=default.target\n")
    assert "ExecStart=/bin/hab sup run\n" in commands.systemd_unit([])


def test_staging_path_is_private_and_unique() -> None:
    target = "/etc/systemd/system/hab-supervisor.service"
    assert commands.staging_path(target, "abc123") == (
        ".habprov/abc123.etc_systemd_system_hab-supervisor.service"
    )
    assert commands.staging_path(target) != commands.staging_path(target)
    assert commands.make_staging_dir() == ["mkdir", "-p", "-m", "0700", ".habprov"]


def test_systemd_unit_uses_systemd_quoting() -> None:
    unit = commands.systemd_unit(["--ring", "it's", "--peer", 'a"b\\c', "--listen-http", "50%$HOME"])
    assert (
        "ExecStart=/bin/hab sup run --ring \"it's\" --peer \"a\\\"b\\\\c\" "
        "--listen-http \"50%%$$HOME\"\n"
    ) in unit
    assert "'\"'\"'" not in unit


@pytest.mark.parametrize(
    ("arg", "expected"),
    [
        ("0.0.0.0:9638", "0.0.0.0:9638"),
        ("-I", "-I"),
        ("", '""'),
        ("100%", "100%%"),
        ("with space", '"with space"'),
    ],
)
def test_systemd_quote(arg: str, expected: str) -> None:
    assert commands.systemd_quote(arg) == expected
