import json

import pytest

from tasmota_exporter.config import (
    DEFAULT_LISTEN_ADDRESS,
    ConfigError,
    Settings,
    load_config_file,
    parse_listen_address,
    resolve_settings,
)
from tasmota_exporter.outlets import Outlet


@pytest.mark.parametrize(
    "s, expected",
    [
        (":8092", ("", 8092)),
        ("127.0.0.1:9000", ("127.0.0.1", 9000)),
        ("9000", ("", 9000)),
        (" 0.0.0.0:80 ", ("0.0.0.0", 80)),
    ],
)
def test_parse_listen_address(s, expected):
    assert parse_listen_address(s) == expected


@pytest.mark.parametrize("s", ["localhost", "host:port", ":", ":70000"])
def test_parse_listen_address_invalid(s):
    with pytest.raises(ConfigError):
        parse_listen_address(s)


def test_resolve_defaults():
    settings = resolve_settings(outlets="livingroom:192.168.1.100", environ={})

    assert settings == Settings(outlets=(Outlet("livingroom", "192.168.1.100"),))
    assert settings.listen_address == DEFAULT_LISTEN_ADDRESS
    assert settings.telemetry_path == "/metrics"
    assert settings.timeout_seconds == 5.0
    assert settings.log_level == "info"
    assert settings.host_port == ("", 8092)


def test_resolve_requires_outlets():
    with pytest.raises(ConfigError, match="required"):
        resolve_settings(environ={})


def test_resolve_rejects_when_no_outlet_is_valid():
    with pytest.raises(ConfigError, match="no valid outlet"):
        resolve_settings(outlets="invalid,livingroom:", environ={})


def test_resolve_from_environment():
    settings = resolve_settings(
        environ={
            "TASMOTA_OUTLETS": "a:10.0.0.1,b:10.0.0.2",
            "TASMOTA_LISTEN_ADDR": "127.0.0.1:9999",
            "LOG_LEVEL": "DEBUG",
        }
    )

    assert settings.outlets == (Outlet("a", "10.0.0.1"), Outlet("b", "10.0.0.2"))
    assert settings.listen_address == "127.0.0.1:9999"
    assert settings.log_level == "debug"


def test_flags_override_environment():
    settings = resolve_settings(
        outlets="flag:10.0.0.9",
        listen_address=":1234",
        environ={"TASMOTA_OUTLETS": "env:10.0.0.1", "TASMOTA_LISTEN_ADDR": ":9999"},
    )

    assert settings.outlets == (Outlet("flag", "10.0.0.9"),)
    assert settings.listen_address == ":1234"


def test_yaml_config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """
web:
  listen_address: "127.0.0.1:9100"
  telemetry_path: /probe
scrape:
  timeout_seconds: 2.5
log_level: warn
outlets:
  - name: kitchen
    address: 10.0.0.5
  - name: garage
    address: 10.0.0.6:8080
""",
        encoding="utf-8",
    )

    settings = resolve_settings(config_file=str(path), environ={})

    assert settings.outlets == (Outlet("kitchen", "10.0.0.5"), Outlet("garage", "10.0.0.6:8080"))
    assert settings.listen_address == "127.0.0.1:9100"
    assert settings.telemetry_path == "/probe"
    assert settings.timeout_seconds == 2.5
    assert settings.log_level == "warn"


def test_config_file_from_environment_and_flag_precedence(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"outlets": "file:10.0.0.1", "scrape": {"timeout_seconds": 3}}), encoding="utf-8")

    settings = resolve_settings(timeout_seconds=1.0, environ={"TASMOTA_EXPORTER_CONFIG": str(path)})

    assert settings.outlets == (Outlet("file", "10.0.0.1"),)
    assert settings.timeout_seconds == 1.0


def test_empty_config_file_is_empty_mapping(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config_file(str(path)) == {}


def test_config_file_root_must_be_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config_file(str(path))


def test_config_file_must_parse(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config_file(str(path))


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config_file(str(tmp_path / "nope.yaml"))


@pytest.mark.parametrize("timeout", [0, -1, "soon"])
def test_invalid_timeout(timeout):
    with pytest.raises(ConfigError):
        resolve_settings(outlets="a:10.0.0.1", timeout_seconds=timeout, environ={})


def test_invalid_telemetry_path():
    with pytest.raises(ConfigError):
        resolve_settings(outlets="a:10.0.0.1", telemetry_path="metrics", environ={})


def test_invalid_outlets_type_in_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("outlets:\n  kitchen: 10.0.0.5\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        resolve_settings(config_file=str(path), environ={})
