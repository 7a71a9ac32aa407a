"""
Tests for configuration loading and validation
"""

import pytest
import yaml

from config import ENV_OVERRIDES, Config, load_config
from fakes import make_raw_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(ENV_OVERRIDES) + ["BRIDGE_CONFIG"]:
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, raw):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return str(path)


def test_load_valid_config(tmp_path):
    cfg = load_config(write_config(tmp_path, make_raw_config()))

    assert cfg.asana["project_id"] == "P1"
    assert cfg.timezone == "UTC+6"
    assert cfg.task_id_attribute == "AsanaTaskID"
    assert cfg.status_attribute == "Asana Status"
    assert cfg.conversation_id_field == "Intercom Conversation ID"
    assert cfg.field_map["Wallet"] == "Wallet"
    assert cfg.timeout == 30.0
    assert cfg.max_retries == 3


def test_environment_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("ASANA_PROJECT_ID", "P9")
    monkeypatch.setenv("INTERCOM_ACCESS_TOKEN", "from-env")

    cfg = load_config(write_config(tmp_path, make_raw_config()))

    assert cfg.asana["project_id"] == "P9"
    assert cfg.intercom["access_token"] == "from-env"


def test_config_path_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("BRIDGE_CONFIG", write_config(tmp_path, make_raw_config()))
    assert load_config().asana["workspace_id"] == "W1"


def test_missing_file_uses_environment_only(tmp_path, monkeypatch):
    for name, value in [("INTERCOM_ACCESS_TOKEN", "a"), ("INTERCOM_ADMIN_ID", "1"), ("ASANA_ACCESS_TOKEN", "b"),
                        ("ASANA_WORKSPACE_ID", "W"), ("ASANA_PROJECT_ID", "P")]:
        monkeypatch.setenv(name, value)

    cfg = load_config(str(tmp_path / "missing.yaml"))

    assert cfg.asana["project_id"] == "P"
    assert cfg.timezone == "UTC"


def test_invalid_config_lists_every_problem(tmp_path):
    raw = make_raw_config()
    del raw["asana"]["project_id"]
    raw["intercom"]["access_token"] = ""
    raw["sync"]["closing_statuses"] = "Done"

    with pytest.raises(ValueError) as exc:
        load_config(write_config(tmp_path, raw))

    message = str(exc.value)
    assert "Missing asana.project_id" in message
    assert "Missing intercom.access_token" in message
    assert "sync.closing_statuses must be a list" in message


def test_project_routing_validation():
    raw = make_raw_config()
    raw["asana"]["project_routing"] = {"projects": {"SSG": "P2"}}
    assert "asana.project_routing needs an 'attribute'" in Config(raw=raw).validate()

    raw["asana"]["project_routing"] = {"attribute": "Payment Method", "projects": ["P2"]}
    assert "asana.project_routing.projects must be a mapping" in Config(raw=raw).validate()


def test_top_level_must_be_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))
