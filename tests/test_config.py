"""Tests for configuration loading and validation."""

import os

import pytest
import yaml

from patchwright.config import (
    CONFIG_FIELDS,
    Config,
    ProviderPreset,
    _validate_bool,
    _validate_int_range,
    _validate_name_list,
    validate_config_value,
)
from patchwright.errors import ConfigurationError
from patchwright.llm import DEFAULT_SYSTEM_PROMPT


class TestConfigLoad:
    """Config.load() from YAML files."""

    def test_load_from_yaml(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.api_key_env == "TEST_API_KEY"
        assert config.api_base == "http://localhost:8080/v1"
        assert config.read_token_limit == 500
        assert config.max_file_size_mb == 2
        assert config.restricted_files == [".env", "secrets.yml"]
        assert config._config_source == str(config_yaml_file)

    def test_load_providers(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert set(config.providers) == {"local", "remote"}
        local = config.providers["local"]
        assert isinstance(local, ProviderPreset)
        assert local.model == "openai/local-model"
        assert local.options == {"temperature": 0.0}
        assert config.providers["remote"].api_base == "https://example.invalid/v1"

    def test_defaults_when_no_config(self, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.restricted_files == [".env", ".gitignore", ".patchwrightignore"]
        assert config.require_tracked_edits is True
        assert config._config_source == ""
        assert config.api_key_env == "OPENROUTER_API_KEY"
        assert set(config.providers) == {"deepseek-free", "qwen-coder-free"}
        assert config.project_root == str(tmp_dir.resolve())

    def test_global_config_used_without_project_file(self, tmp_dir, isolated_home, sample_config_data):
        with open(isolated_home / "config.yml", "w") as f:
            yaml.dump(sample_config_data, f)
        config = Config.load(str(tmp_dir))
        assert "local" in config.providers

    def test_project_file_beats_global(self, config_yaml_file, tmp_dir, isolated_home):
        with open(isolated_home / "config.yml", "w") as f:
            yaml.dump({"providers": {"global": {"model": "x/y"}}}, f)
        config = Config.load(str(tmp_dir))
        assert "global" not in config.providers

    def test_invalid_values_fall_back_to_defaults(self, tmp_dir, sample_config_data):
        sample_config_data["read-token-limit"] = "lots"
        sample_config_data["verbose"] = "maybe"
        with open(tmp_dir / ".patchwright.yml", "w") as f:
            yaml.dump(sample_config_data, f)
        config = Config.load(str(tmp_dir))
        assert config.read_token_limit == 2000
        assert config.verbose is False

    def test_provider_without_model_is_skipped(self, tmp_dir):
        with open(tmp_dir / ".patchwright.yml", "w") as f:
            yaml.dump({"providers": {"broken": {"description": "no model"}, "ok": {"model": "a/b"}}}, f)
        config = Config.load(str(tmp_dir))
        assert list(config.providers) == ["ok"]

    def test_unreadable_yaml_is_ignored(self, tmp_dir):
        (tmp_dir / ".patchwright.yml").write_text("providers: [unclosed\n")
        config = Config.load(str(tmp_dir))
        assert "deepseek-free" in config.providers

    def test_env_overrides(self, config_yaml_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("PATCHWRIGHT_PROVIDER", "remote")
        monkeypatch.setenv("PATCHWRIGHT_VERBOSE", "true")
        config = Config.load(str(tmp_dir))
        assert config.active_provider == "remote"
        assert config.verbose is True

    def test_dotenv_supplies_api_key(self, config_yaml_file, tmp_dir):
        (tmp_dir / ".env").write_text("TEST_API_KEY=from-dotenv\n")
        try:
            config = Config.load(str(tmp_dir))
            assert config.resolve_api_key() == "from-dotenv"
        finally:
            os.environ.pop("TEST_API_KEY", None)


class TestCredentials:

    def test_require_api_key_missing(self, tmp_dir):
        config = Config.load(str(tmp_dir))
        with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
            config.require_api_key()

    def test_require_api_key_from_env(self, tmp_dir, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        assert Config.load(str(tmp_dir)).require_api_key() == "sk-test"

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
        assert Config(api_key="file-key").resolve_api_key() == "file-key"

    def test_summary_never_shows_key(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-secret")
        summary = Config(providers=Config.get_default_providers()).summary()
        assert "sk-secret" not in str(summary)
        assert summary["api_key"] == "OPENROUTER_API_KEY (set)"


class TestSystemPrompt:

    def test_builtin_prompt(self):
        assert Config().load_system_prompt() == DEFAULT_SYSTEM_PROMPT

    def test_prompt_file(self, tmp_path):
        path = tmp_path / "prompt.md"
        path.write_text("custom prompt")
        assert Config(prompt_file=str(path)).load_system_prompt() == "custom prompt"

    def test_home_prompt(self, isolated_home):
        (isolated_home / "prompts").mkdir()
        (isolated_home / "prompts" / "repl.md").write_text("home prompt")
        assert Config().load_system_prompt() == "home prompt"


class TestSessionsPath:

    def test_default_under_home(self, isolated_home):
        assert Config().sessions_path == isolated_home / "sessions"

    def test_configured(self, tmp_path):
        assert Config(sessions_dir=str(tmp_path / "s")).sessions_path == tmp_path / "s"


class TestValidators:

    def test_int_range(self):
        assert _validate_int_range("42", 1, 100) == (True, 42, "")
        valid, clamped, _ = _validate_int_range(500, 1, 100)
        assert not valid and clamped == 100
        assert _validate_int_range("x", 1, 100)[0] is False

    @pytest.mark.parametrize("raw,expected", [("yes", True), ("OFF", False), (True, True), ("1", True)])
    def test_bool(self, raw, expected):
        assert _validate_bool(raw) == (True, expected, "")

    def test_bool_rejects_garbage(self):
        assert _validate_bool("perhaps")[0] is False

    def test_name_list(self):
        assert _validate_name_list(".env, secrets.yml,.env") == (True, [".env", "secrets.yml"], "")
        assert _validate_name_list(["a", " b "]) == (True, ["a", "b"], "")
        assert _validate_name_list(3)[0] is False

    def test_every_field_default_validates(self):
        for key, spec in CONFIG_FIELDS.items():
            if spec.validator is None:
                continue
            valid, _, _ = validate_config_value(key, spec.default)
            assert valid, key

    def test_unknown_key_passes_through(self):
        assert validate_config_value("no-such-key", 7) == (True, 7, "")


class TestAccessSettings:

    def test_tracked_edits_can_be_disabled(self, tmp_dir):
        with open(tmp_dir / ".patchwright.yml", "w") as f:
            yaml.dump({"require-tracked-edits": "no"}, f)
        assert Config.load(str(tmp_dir)).require_tracked_edits is False

    def test_ignore_spec_falls_back_to_home(self, tmp_dir, isolated_home):
        (isolated_home / ".patchwrightignore").write_text("private/\n")
        spec = Config.load(str(tmp_dir)).ignore_spec()
        assert spec.match_file("private/notes.txt")

    def test_no_ignore_file(self, tmp_dir):
        assert Config.load(str(tmp_dir)).ignore_spec() is None
