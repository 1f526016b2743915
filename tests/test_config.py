from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from conversation_history.config import load_config
from conversation_history.kv import DiskStore, InMemoryStore
from conversation_history.session import build_session, make_store


def test_defaults_when_file_missing(tmp_path: Path, clean_env):
    cfg = load_config(str(tmp_path / "nope.yaml"))
    assert cfg["history"]["max_entries"] == 50
    assert cfg["index"]["max_conversations"] == 50
    assert cfg["index"]["placeholder_title"] == "New Chat"


def test_file_values_overlay_defaults(tmp_path: Path, clean_env):
    path = tmp_path / "c.yaml"
    path.write_text(yaml.safe_dump({"index": {"title_chars": 10}}), encoding="utf-8")

    cfg = load_config(str(path))
    assert cfg["index"]["title_chars"] == 10
    assert cfg["index"]["preview_chars"] == 100


def test_env_path_and_overrides(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "c.yaml"
    path.write_text("storage:\n  backend: memory\n", encoding="utf-8")
    monkeypatch.setenv("CONVERSATION_HISTORY_CONFIG", str(path))
    monkeypatch.setenv("CONVERSATION_HISTORY__HISTORY__MAX_ENTRIES", "5")
    monkeypatch.setenv("CONVERSATION_HISTORY__LOGGING__VERBOSE", "true")

    cfg = load_config()
    assert cfg["storage"]["backend"] == "memory"
    assert cfg["history"]["max_entries"] == 5
    assert cfg["logging"]["verbose"] is True


def test_invalid_yaml_raises(tmp_path: Path, clean_env):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_bundled_default_config_parses(project_root: Path, clean_env):
    cfg = load_config(str(project_root / "config" / "default.yaml"))
    assert cfg["storage"]["backend"] == "disk"
    assert cfg["history"]["snapshot_limit"] is None


def test_make_store_backends(tmp_path: Path):
    assert isinstance(make_store({"storage": {"backend": "memory"}}), InMemoryStore)
    disk = make_store({"storage": {"backend": "disk", "data_dir": str(tmp_path / "d")}})
    assert isinstance(disk, DiskStore)
    with pytest.raises(ValueError):
        make_store({"storage": {"backend": "redis"}})


def test_configured_limits_reach_the_session(store):
    session = build_session({"history": {"max_entries": 3}, "index": {"title_chars": 4}}, store=store)
    for i in range(5):
        session.chat.receive(f"line {i}", sender="alice", timestamp=i + 1, message_id=f"c{i}")

    assert [m.id for m in session.history.load_current()] == ["c2", "c3", "c4"]
    assert session.get_conversation_list()[0].title == "line..."
