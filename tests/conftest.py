"""Shared fixtures for patchwright tests."""

import io
import os
from unittest.mock import MagicMock

import pytest
import yaml
from rich.console import Console

import patchwright.config as config_module


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Point the global config home at an empty directory."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    for var in ("PATCHWRIGHT_PROVIDER", "PATCHWRIGHT_VERBOSE", "OPENROUTER_API_KEY", "TEST_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def sample_config_data():
    """Minimal .patchwright.yml data dict."""
    return {
        "api-key-env": "TEST_API_KEY",
        "api-base": "http://localhost:8080/v1",
        "read-token-limit": 500,
        "max-file-size-mb": 2,
        "restricted-files": [".env", "secrets.yml"],
        "verbose": False,
        "providers": {
            "local": {
                "model": "openai/local-model",
                "description": "Local test model",
                "options": {"temperature": 0.0},
            },
            "remote": {
                "model": "openrouter/some/model",
                "api-base": "https://example.invalid/v1",
                "description": "Remote test model",
            },
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".patchwright.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def quiet_console():
    """A real Rich Console writing into a buffer."""
    return Console(file=io.StringIO(), width=120, force_terminal=False)


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    c.input = MagicMock(return_value="e")
    return c
