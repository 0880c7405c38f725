"""
dataconnect Config — Environment settings and connection config files.
"""

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

_TRUE = {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


@dataclass
class Settings:
    """Process-wide defaults, read from ``DATACONNECT_*`` variables."""

    log_level: str = "INFO"
    log_json: bool = False
    discovery_workers: Optional[int] = None
    sample_limit: int = 10
    default_limit: int = 100
    max_limit: int = 10000
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        settings = cls(
            log_level=env.get("DATACONNECT_LOG_LEVEL", "INFO").upper(),
            log_json=env.get("DATACONNECT_LOG_JSON", "").strip().lower() in _TRUE,
            discovery_workers=_env_int(env, "DATACONNECT_DISCOVERY_WORKERS", None),
            sample_limit=_env_int(env, "DATACONNECT_SAMPLE_LIMIT", 10),
            default_limit=_env_int(env, "DATACONNECT_DEFAULT_LIMIT", 100),
            max_limit=_env_int(env, "DATACONNECT_MAX_LIMIT", 10000),
            google_client_id=env.get("GOOGLE_CLIENT_ID") or None,
            google_client_secret=env.get("GOOGLE_CLIENT_SECRET") or None,
        )
        if settings.discovery_workers is not None and settings.discovery_workers < 1:
            raise ValueError("DATACONNECT_DISCOVERY_WORKERS must be >= 1")
        return settings

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Apply the default and maximum row caps to a requested limit."""
        if limit is None:
            return self.default_limit
        if limit < 0:
            raise ValueError("limit must be >= 0")
        return min(limit, self.max_limit)


def expand_env(value: Any, env: Optional[Mapping[str, str]] = None) -> Any:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references recursively.

    Raises:
        ValueError: If a referenced variable is unset and has no default.
    """
    env = os.environ if env is None else env

    if isinstance(value, str):
        def replace(match):
            name, default = match.group(1), match.group(2)
            if name in env:
                return env[name]
            if default is not None:
                return default
            raise ValueError(f"Environment variable {name} is not set")

        return _ENV_REF.sub(replace, value)
    if isinstance(value, dict):
        return {k: expand_env(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v, env) for v in value]
    return value


def load_config_file(path: str, env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Read a connection config from a YAML or JSON file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not a mapping.
    """
    path = os.path.expanduser(path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        if path.lower().endswith(".json"):
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return expand_env(data, env)
