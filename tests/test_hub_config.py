import json

import pytest
import yaml

from hub_config import HubConfig, load_hub_config


def test_defaults_without_file_or_env():
    assert load_hub_config(env={}) == HubConfig()


def test_yaml_file_then_env_override(tmp_path):
    path = tmp_path / "hub.yaml"
    path.write_text(
        yaml.safe_dump({"data_dir": "/srv/hub", "workspace_id": "WS-FILE", "top_gaps": 3, "cloud_enabled": False}),
        encoding="utf-8",
    )

    config = load_hub_config(
        path,
        env={"AUDIT_HUB_WORKSPACE_ID": "WS-ENV", "AUDIT_HUB_TEMPERATURE": "0.7", "AUDIT_HUB_CLOUD_ENABLED": "yes"},
    )

    assert config.data_dir == "/srv/hub"
    assert config.workspace_id == "WS-ENV"
    assert config.top_gaps == 3
    assert config.temperature == 0.7
    assert config.cloud_enabled is True


def test_json_file(tmp_path):
    path = tmp_path / "hub.json"
    path.write_text(json.dumps({"remote_url": "https://hub.example", "llm_timeout": 5}), encoding="utf-8")

    config = load_hub_config(path, env={})

    assert config.remote_url == "https://hub.example"
    assert config.llm_timeout == 5.0


@pytest.mark.parametrize("value, expected", [("0", False), ("off", False), ("TRUE", True), ("on", True)])
def test_boolean_env_values(value, expected):
    assert load_hub_config(env={"AUDIT_HUB_CLOUD_ENABLED": value}).cloud_enabled is expected


def test_remote_timeout_is_separate_from_llm_timeout():
    config = load_hub_config(env={"AUDIT_HUB_REMOTE_TIMEOUT": "7.5"})

    assert config.remote_timeout == 7.5
    assert config.llm_timeout == HubConfig().llm_timeout


def test_empty_env_value_keeps_default():
    assert load_hub_config(env={"AUDIT_HUB_REMOTE_URL": ""}).remote_url is None


def test_unknown_keys_rejected(tmp_path):
    path = tmp_path / "hub.yaml"
    path.write_text("data_dir: x\nmodel: llama3\n", encoding="utf-8")
    with pytest.raises(ValueError, match="model"):
        load_hub_config(path, env={})


def test_missing_or_unsupported_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_hub_config(tmp_path / "missing.yaml", env={})

    path = tmp_path / "hub.toml"
    path.write_text("x = 1", encoding="utf-8")
    with pytest.raises(ValueError):
        load_hub_config(path, env={})
