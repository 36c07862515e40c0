from __future__ import annotations

from pathlib import Path

import pytest

from chat_bridge.config import DEFAULTS, load_config


def test_missing_file_uses_defaults(tmp_path: Path, clean_env):
    cfg = load_config(str(tmp_path / "absent.yaml"))
    assert cfg["history"]["max_turns"] == DEFAULTS["history"]["max_turns"]
    assert cfg["services"]["base_url"] == "http://127.0.0.1:5000"


def test_file_values_merge_over_defaults(tmp_path: Path, clean_env):
    path = tmp_path / "cfg.yaml"
    path.write_text("history:\n  max_turns: 5\n", encoding="utf-8")
    cfg = load_config(str(path))
    assert cfg["history"]["max_turns"] == 5
    assert cfg["groups"]["pattern"] == DEFAULTS["groups"]["pattern"]


def test_env_overrides(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CHAT_BRIDGE__HISTORY__MAX_TURNS", "7")
    monkeypatch.setenv("CHAT_BRIDGE__SERVICES__BASE_URL", "http://svc:9000")
    cfg = load_config(str(tmp_path / "absent.yaml"))
    assert cfg["history"]["max_turns"] == 7
    assert cfg["services"]["base_url"] == "http://svc:9000"


def test_env_selects_config_file(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "cfg.yaml"
    path.write_text("server:\n  port: 4000\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_BRIDGE_CONFIG", str(path))
    assert load_config()["server"]["port"] == 4000


def test_invalid_yaml_raises(tmp_path: Path, clean_env):
    path = tmp_path / "cfg.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_defaults_are_not_mutated(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CHAT_BRIDGE__HISTORY__MAX_TURNS", "3")
    load_config(str(tmp_path / "absent.yaml"))
    assert DEFAULTS["history"]["max_turns"] == 20


def test_env_values_are_read_as_yaml_scalars(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CHAT_BRIDGE__GROUPS__PATTERN", "null")
    monkeypatch.setenv("CHAT_BRIDGE__SERVICES__TIMEOUT", "2.5")
    monkeypatch.setenv("CHAT_BRIDGE__SERVER__CORS_ORIGINS", "[a, b]")
    monkeypatch.setenv("CHAT_BRIDGE__NEW__FLAG", "true")
    cfg = load_config(str(tmp_path / "absent.yaml"))
    assert cfg["groups"]["pattern"] is None
    assert cfg["services"]["timeout"] == 2.5
    assert cfg["server"]["cors_origins"] == "[a, b]"
    assert cfg["new"] == {"flag": True}
