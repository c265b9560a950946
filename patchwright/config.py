"""
Configuration: provider catalog, credential and REPL settings.

Loading priority:
  1. Project dir .patchwright.yml
  2. Git root .patchwright.yml
  3. Global ~/.patchwright/config.yml

.env files in the home dir and the project dir are loaded first and never
override variables that are already set.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError
from .logger import get_logger
from .tools.git_ops import find_git_root
from .tools.security import IGNORE_FILENAME, load_ignore_spec

_log = get_logger(__name__)

CONFIG_DIR = Path(os.environ.get("PATCHWRIGHT_HOME") or Path.home() / ".patchwright").expanduser()
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".patchwright.yml"

DEFAULT_API_BASE = "https://openrouter.ai/api/v1"
DEFAULT_API_KEY_ENV = "OPENROUTER_API_KEY"
DEFAULT_RESTRICTED_FILES = [".env", ".gitignore", IGNORE_FILENAME]


# ── Value validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field definition with validation rules."""
    key: str
    field_name: str
    description: str
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_name_list(value: Any) -> tuple[bool, List[str], str]:
    """Validate a list of bare file names."""
    if isinstance(value, str):
        raw_values = value.split(",")
    elif isinstance(value, list):
        raw_values = [str(item) for item in value]
    else:
        return False, [], "Must be a list of file names"
    cleaned = []
    for item in raw_values:
        name = item.strip()
        if name and name not in cleaned:
            cleaned.append(name)
    return True, cleaned, ""


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "active-provider": ConfigFieldSpec(
        key="active-provider",
        field_name="active_provider",
        description="Provider preset used without asking",
        default=None,
    ),
    "read-token-limit": ConfigFieldSpec(
        key="read-token-limit",
        field_name="read_token_limit",
        description="Token ceiling for ranged <read> requests",
        default=2000,
        validator=lambda v: _validate_int_range(v, 100, 200000),
    ),
    "max-file-size-mb": ConfigFieldSpec(
        key="max-file-size-mb",
        field_name="max_file_size_mb",
        description="Largest file the read tool will open",
        default=10,
        validator=lambda v: _validate_int_range(v, 1, 1024),
    ),
    "restricted-files": ConfigFieldSpec(
        key="restricted-files",
        field_name="restricted_files",
        description="File names tools may never touch",
        default=list(DEFAULT_RESTRICTED_FILES),
        validator=_validate_name_list,
    ),
    "require-tracked-edits": ConfigFieldSpec(
        key="require-tracked-edits",
        field_name="require_tracked_edits",
        description="Only let <replace> edit files tracked by git",
        default=True,
        validator=_validate_bool,
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Enable verbose logging",
        default=False,
        validator=_validate_bool,
    ),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """Validate a config value by its YAML key. Unknown keys pass through."""
    spec = CONFIG_FIELDS.get(key)
    if spec is None or spec.validator is None:
        return True, value, ""
    return spec.validator(value)


@dataclass
class ProviderPreset:
    name: str
    model: str
    api_base: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    description: str = ""


@dataclass
class Config:
    api_key: Optional[str] = None
    api_key_env: str = DEFAULT_API_KEY_ENV
    api_base: str = DEFAULT_API_BASE
    active_provider: Optional[str] = None
    providers: Dict[str, ProviderPreset] = field(default_factory=dict)
    sessions_dir: Optional[str] = None
    prompt_file: Optional[str] = None
    read_token_limit: int = 2000
    max_file_size_mb: int = 10
    restricted_files: List[str] = field(default_factory=lambda: list(DEFAULT_RESTRICTED_FILES))
    require_tracked_edits: bool = True
    verbose: bool = False
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = find_git_root(project_path)
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        if not config.providers:
            config.providers = cls.get_default_providers()
        config._apply_env()
        config.project_root = str(project_path)
        return config

    @classmethod
    def get_default_providers(cls) -> Dict[str, ProviderPreset]:
        return {
            "deepseek-free": ProviderPreset(
                name="deepseek-free", model="openrouter/deepseek/deepseek-chat-v3-0324:free",
                description="DeepSeek V3 via OpenRouter (free tier)",
            ),
            "qwen-coder-free": ProviderPreset(
                name="qwen-coder-free", model="openrouter/qwen/qwen3-coder:free",
                description="Qwen3 Coder via OpenRouter (free tier)",
            ),
        }

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Ignoring unreadable config %s: %s", filepath, e)
            return
        if not isinstance(data, dict):
            _log.warning("Ignoring config %s: top level is not a mapping", filepath)
            return

        self.api_key = data.get("api-key") or None
        self.api_key_env = data.get("api-key-env") or DEFAULT_API_KEY_ENV
        self.api_base = data.get("api-base") or DEFAULT_API_BASE
        self.active_provider = data.get("active-provider")
        self.sessions_dir = data.get("sessions-dir")
        self.prompt_file = data.get("prompt-file")

        for key in ("read-token-limit", "max-file-size-mb", "restricted-files",
                    "require-tracked-edits", "verbose"):
            if key not in data:
                continue
            spec = CONFIG_FIELDS[key]
            valid, value, error = validate_config_value(key, data[key])
            if not valid:
                _log.warning("Config %s: %s (using %r)", key, error, spec.default)
                value = spec.default
            setattr(self, spec.field_name, value)

        self.providers = {}
        raw_providers = data.get("providers") or {}
        if not isinstance(raw_providers, dict):
            _log.warning("Config providers must be a mapping; ignoring")
            raw_providers = {}
        for name, p in raw_providers.items():
            if not isinstance(p, dict) or not p.get("model"):
                _log.warning("Skipping provider %r without a model", name)
                continue
            options = p.get("options") or {}
            self.providers[name] = ProviderPreset(
                name=name, model=p["model"],
                api_base=p.get("api-base"),
                options=dict(options) if isinstance(options, dict) else {},
                description=p.get("description", ""),
            )

    def _apply_env(self):
        env_map = {
            "PATCHWRIGHT_PROVIDER": ("active_provider", str),
            "PATCHWRIGHT_VERBOSE": ("verbose", lambda v: v.lower() in ("true", "1")),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                setattr(self, attr, conv(val))

    # ── Accessors ──

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        return os.environ.get(self.api_key_env) or None

    def require_api_key(self) -> str:
        key = self.resolve_api_key()
        if not key:
            raise ConfigurationError(
                f"{self.api_key_env} is missing. Set it in the environment, a .env file, "
                f"or as api-key in {PROJECT_CONFIG_NAME}."
            )
        return key

    def get_provider(self, name: Optional[str]) -> Optional[ProviderPreset]:
        if not name:
            return None
        return self.providers.get(name)

    def list_providers(self) -> List[ProviderPreset]:
        return list(self.providers.values())

    @property
    def sessions_path(self) -> Path:
        if self.sessions_dir:
            return Path(self.sessions_dir).expanduser()
        return CONFIG_DIR / "sessions"

    def ignore_spec(self):
        """Patterns from the project ignore file, else the one in the home dir."""
        return load_ignore_spec(self.project_root or ".", CONFIG_DIR)

    def load_system_prompt(self) -> str:
        """User prompt file wins; otherwise the built-in REPL prompt."""
        from .llm import DEFAULT_SYSTEM_PROMPT

        candidates = []
        if self.prompt_file:
            candidates.append(Path(self.prompt_file).expanduser())
        candidates.append(CONFIG_DIR / "prompts" / "repl.md")
        for path in candidates:
            if path.is_file():
                _log.info("Using system prompt from %s", path)
                return path.read_text(encoding="utf-8")
        return DEFAULT_SYSTEM_PROMPT

    def summary(self) -> dict:
        key = self.resolve_api_key()
        return {
            "config": self._config_source or "(defaults)",
            "project": self.project_root,
            "api_base": self.api_base,
            "api_key": f"{self.api_key_env} ({'set' if key else 'missing'})",
            "active_provider": self.active_provider or "(ask)",
            "providers": ", ".join(self.providers) or "(none)",
            "sessions": str(self.sessions_path),
            "read_token_limit": self.read_token_limit,
            "max_file_size_mb": self.max_file_size_mb,
            "restricted_files": ", ".join(self.restricted_files) or "(none)",
            "require_tracked_edits": self.require_tracked_edits,
        }
