"""
homeops/config.py
Single-household config. Persists to homeops_config.json in the project
root; HOMEOPS_<KEY> environment variables override file values.

Policy thresholds (confidence, daily cap, quiet window length) live as
constants in homeops.policy.response_policy — they are product rules,
not deployment settings. Secrets are never stored here: the config only
names the environment variables that hold them.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "homeops_config.json"
ENV_PREFIX      = "HOMEOPS_"

DEFAULT_CONFIG: Dict[str, Any] = {
    "db_path": "homeops.db",
    "raw_retention_days": 90,
    "counter_retention_days": 7,
    "timezone": "Europe/Stockholm",
    "quiet_start_hour": 22,
    "quiet_end_hour": 7,
    "model": "gpt-4o-mini",
    "llm_base_url": "https://api.openai.com/v1",
    "classify_timeout_sec": 10,
    "classify_max_retries": 1,
    "llm_api_key_env": "OPENAI_API_KEY",
    "telegram_api_base": "https://api.telegram.org",
    "dispatch_timeout_sec": 5,
    "bot_token_env": "TELEGRAM_BOT_TOKEN",
    "secret_ttl_sec": 300,
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def _coerce(raw: str, default: Any) -> Any:
    """Cast an env string to the type of the default value."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def apply_env_overrides(
    config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    merged = dict(config)
    for key, default in DEFAULT_CONFIG.items():
        env_key = ENV_PREFIX + key.upper()
        if env_key not in environ:
            continue
        try:
            merged[key] = _coerce(environ[env_key], default)
        except ValueError:
            logger.warning(f"Ignoring {env_key}: expected {type(default).__name__}")
    return merged


def load_config(
    project_root: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Load config from homeops_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    config = dict(DEFAULT_CONFIG)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            config = {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return apply_env_overrides(config, environ)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to homeops_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path
