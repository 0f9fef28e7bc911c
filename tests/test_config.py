from pathlib import Path

import pytest

from bindmetrics.config import load_app_config, load_yaml

REQUIRED = {
    "influx_host": "http://localhost:8086",
    "influx_user": "writer",
    "influx_pass": "secret",
    "influx_db_name": "dns",
}


def test_defaults_with_required_overrides():
    config = load_app_config(env={}, overrides=REQUIRED)
    assert config.influx_host == "http://localhost:8086"
    assert config.log_level == "info"
    assert config.log_file is None
    assert config.flush_interval_seconds == 10.0
    assert config.chunk_size == 1000
    assert config.max_point_age_seconds == 600.0
    assert config.timeout_seconds == 2.0
    assert config.error_buffer_size == 10


def test_missing_required_fields_are_listed():
    with pytest.raises(ValueError) as excinfo:
        load_app_config(env={}, overrides={"influx_host": "http://localhost:8086"})
    message = str(excinfo.value)
    assert "influx_user" in message
    assert "influx_pass" in message
    assert "influx_db_name" in message


def test_precedence_yaml_env_overrides(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "influx-host: http://yaml:8086\n"
        "influx_user: yaml-user\n"
        "influx_pass: yaml-pass\n"
        "influx_db_name: yaml-db\n"
        "chunk_size: 250\n"
        "log_level: debug\n",
        encoding="utf-8",
    )
    env = {"INFLUX_USER": "env-user", "LOG_LEVEL": "warn", "INFLUX_PASS": ""}
    config = load_app_config(path, env=env, overrides={"influx_db_name": "cli-db", "log_level": None})

    assert config.influx_host == "http://yaml:8086"
    assert config.influx_user == "env-user"
    assert config.influx_pass == "yaml-pass"
    assert config.influx_db_name == "cli-db"
    assert config.chunk_size == 250
    assert config.log_level == "warn"


def test_env_values_are_parsed():
    env = {
        "INFLUX_HOST": "http://env:8086",
        "INFLUX_USER": "u",
        "INFLUX_PASS": "p",
        "INFLUX_DB_NAME": "d",
        "FLUSH_INTERVAL_SECONDS": "2.5",
        "ERROR_BUFFER_SIZE": "20",
        "LOG_FILE": "/var/log/bind-log-metrics.log",
    }
    config = load_app_config(env=env)
    assert config.flush_interval_seconds == 2.5
    assert config.error_buffer_size == 20
    assert config.log_file == Path("/var/log/bind-log-metrics.log")


@pytest.mark.parametrize(
    "extra",
    [{"chunk_size": 0}, {"chunk_size": "many"}, {"timeout_seconds": -1}, {"log_level": "verbose"}],
)
def test_invalid_values_raise(extra):
    with pytest.raises(ValueError):
        load_app_config(env={}, overrides={**REQUIRED, **extra})


def test_integer_settings_reject_fractions_and_booleans(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("chunk_size: 1.5\n", encoding="utf-8")
    with pytest.raises(ValueError, match="chunk_size"):
        load_app_config(path, env={}, overrides=REQUIRED)

    path.write_text("error_buffer_size: true\n", encoding="utf-8")
    with pytest.raises(ValueError, match="error_buffer_size"):
        load_app_config(path, env={}, overrides=REQUIRED)

    path.write_text("chunk_size: 500.0\nerror_buffer_size: '20'\n", encoding="utf-8")
    config = load_app_config(path, env={}, overrides=REQUIRED)
    assert config.chunk_size == 500
    assert config.error_buffer_size == 20


def test_load_yaml_missing(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_yaml(tmp_path / "missing.yaml")


def test_load_yaml_requires_mapping(tmp_path: Path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml(path)
