"""Tests for configuration loading."""

from prtasks_core.config import DEFAULT_CONFIG, load_config


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["model"] == "anthropic"
    assert config["batch_size"] == 5
    assert config["max_batches"] == 0
    assert config["resume"] is True
    assert config["store"] == "file"
    assert config["default_status"] == "todo"
    assert config["low_priority_status"] == "pending"


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".prtasks.yml"
    cfg.write_text("model: openai\nbatch_size: 2\nsmart_retry: false\n")
    config = load_config(config_path=str(cfg))
    assert config["model"] == "openai"
    assert config["batch_size"] == 2
    assert config["smart_retry"] is False
    assert config["max_attempts"] == DEFAULT_CONFIG["max_attempts"]


def test_low_priority_patterns_loaded(tmp_path):
    cfg = tmp_path / ".prtasks.yml"
    cfg.write_text("low_priority_patterns:\n  - 'nit:'\n  - 'typo:'\n")
    config = load_config(config_path=str(cfg))
    assert config["low_priority_patterns"] == ["nit:", "typo:"]


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".prtasks.yml"
    cfg.write_text("")
    config = load_config(config_path=str(cfg))
    assert config["timeout_seconds"] == DEFAULT_CONFIG["timeout_seconds"]


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".prtasks.yml"
    cfg.write_text("batch_size: 2\n")
    config = load_config(config_path=str(cfg), cli_overrides={"batch_size": 9})
    assert config["batch_size"] == 9


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".prtasks.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": None})
    assert config["model"] == "openai"


def test_default_pattern_list_is_not_shared(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config["low_priority_patterns"].append("zzz:")
    assert "zzz:" not in DEFAULT_CONFIG["low_priority_patterns"]


def test_env_vars_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
    monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["github_token"] == "gh-token"
    assert config["anthropic_api_key"] == "ant-key"
    assert config["openai_api_key"] == "oai-key"


def test_missing_env_vars_are_none(monkeypatch, tmp_path):
    for var in ("GITHUB_TOKEN", "ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["github_token"] is None
    assert config["anthropic_api_key"] is None
