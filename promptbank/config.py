"""Configuration loading for promptbank.

Settings come from (in order of increasing precedence):
1. Global: ~/.promptbank/config.json
2. Per-workspace: {workspace}/.promptbank/config.json
3. Environment: PROMPTBANK_API_URL, PROMPTBANK_TOKEN, PROMPTBANK_USER,
   PROMPTBANK_DEVICE_NAME

String values in config files may reference environment variables as ${VAR}
or ${VAR:-default}.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from promptbank.models import DEFAULT_MAX_VERSIONS
from promptbank.sync.quota import DEFAULT_WARNING_THRESHOLD
from promptbank.sync.team import Team

__all__ = [
    "PromptBankConfig",
    "load_config",
    "expand_env_vars",
    "get_default_promptbank_dir",
    "workspace_storage_dir",
]

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
WORKSPACE_DIRNAME = ".promptbank"

# Pattern to match ${VAR} or ${VAR:-default} syntax
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

_ENV_OVERRIDES = {
    "PROMPTBANK_API_URL": "api_url",
    "PROMPTBANK_TOKEN": "token",
    "PROMPTBANK_USER": "user_id",
    "PROMPTBANK_DEVICE_NAME": "device_name",
}


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} and ${VAR:-default} references in a string."""

    def replacer(match: re.Match) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        default = match.group(2)
        return default if default is not None else ""

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_env_vars_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return expand_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: expand_env_vars_recursive(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars_recursive(item) for item in obj]
    return obj


def get_default_promptbank_dir() -> Path:
    """Get the default ~/.promptbank directory."""
    return Path.home() / ".promptbank"


def workspace_storage_dir(workspace: Path) -> Path:
    """Directory holding a workspace's prompts and sync state."""
    return Path(workspace) / WORKSPACE_DIRNAME


@dataclass
class PromptBankConfig:
    """Resolved promptbank settings."""

    api_url: str | None = None
    token: str | None = None
    user_id: str | None = None
    device_name: str | None = None
    timeout: float = 30.0
    upload_concurrency: int = 4
    quota_warning_threshold: float = DEFAULT_WARNING_THRESHOLD
    max_versions: int = DEFAULT_MAX_VERSIONS
    teams: list[Team] = field(default_factory=list)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.token and self.user_id)

    def merge_with(self, data: dict[str, Any]) -> "PromptBankConfig":
        """Return a copy with the given raw settings applied on top."""
        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in data.items():
            if key == "teams":
                values["teams"] = [Team.from_dict(team) for team in value or []]
            elif key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown config key: {key}")
        config = PromptBankConfig(**values)
        config.timeout = float(config.timeout)
        config.upload_concurrency = int(config.upload_concurrency)
        config.quota_warning_threshold = float(config.quota_warning_threshold)
        config.max_versions = int(config.max_versions)
        return config

    @classmethod
    def from_file(cls, path: Path, base: "PromptBankConfig | None" = None) -> "PromptBankConfig":
        """Load settings from a JSON file, expanding environment variables.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            json.JSONDecodeError: If the file contains invalid JSON.
        """
        with open(path) as f:
            data = json.load(f)
        data = expand_env_vars_recursive(data)
        return (base or cls()).merge_with(data)


def load_config(
    workspace: Path | None = None,
    promptbank_dir: Path | None = None,
    environ: dict[str, str] | None = None,
) -> PromptBankConfig:
    """Load and merge configuration from all sources.

    Args:
        workspace: Workspace root for workspace-specific config.
        promptbank_dir: Override for ~/.promptbank (for testing).
        environ: Override for os.environ (for testing).

    Returns:
        Merged PromptBankConfig.
    """
    if promptbank_dir is None:
        promptbank_dir = get_default_promptbank_dir()
    if environ is None:
        environ = dict(os.environ)

    config = PromptBankConfig()
    paths = [promptbank_dir / CONFIG_FILENAME]
    if workspace is not None:
        paths.append(workspace_storage_dir(workspace) / CONFIG_FILENAME)

    for path in paths:
        if not path.exists():
            continue
        try:
            config = PromptBankConfig.from_file(path, base=config)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            # Don't fail on a bad config file
            logger.warning(f"Failed to load config from {path}: {e}")

    overrides = {
        attr: environ[name] for name, attr in _ENV_OVERRIDES.items() if environ.get(name)
    }
    if overrides:
        config = config.merge_with(overrides)
    return config
