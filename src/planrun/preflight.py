"""Preconditions checked once before a run mutates any state.

The agent needs its experimental teams feature switched on through the ``env``
table of ``<claude_dir>/settings.json``. Enabling it is an idempotent ensure
step rather than a side effect buried in the run.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from planrun.config import TEAMS_ENV_KEY, PlanrunConfig
from planrun.exceptions import PersistenceError, SettingsError
from planrun.invoker import AgentInvoker
from planrun.json_utils import write_json_atomic

logger = logging.getLogger(__name__)


def settings_path(claude_dir: Path) -> Path:
    return Path(claude_dir) / "settings.json"


def _read_settings(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except UnicodeDecodeError as e:
        raise SettingsError(f"Settings are not valid UTF-8: {e}", context={"path": str(path)}) from e
    except OSError as e:
        raise PersistenceError(f"Cannot read settings: {e}", path=path) from e

    if not content.strip():
        return {}
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise SettingsError(f"Invalid JSON in settings: {e}", context={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise SettingsError("Settings root must be a JSON object", context={"path": str(path)})
    return data


def has_teams_env_var(claude_dir: Path, key: str = TEAMS_ENV_KEY) -> bool:
    """True when settings.json sets ``env.<key>`` to a non-empty value."""
    try:
        data = _read_settings(settings_path(claude_dir))
    except (PersistenceError, SettingsError):
        return False
    env = data.get("env")
    return isinstance(env, dict) and bool(env.get(key))


def ensure_teams_env_var(claude_dir: Path, key: str = TEAMS_ENV_KEY) -> bool:
    """Set ``env.<key> = "1"`` in settings.json, keeping every other setting.

    Returns:
        True if the file was changed, False if the variable was already set.

    Raises:
        SettingsError: If the existing file is not a JSON object (it is never
            overwritten in that case)
        PersistenceError: If the file cannot be read or written
    """
    path = settings_path(claude_dir)
    data = _read_settings(path)

    env = data.setdefault("env", {})
    if not isinstance(env, dict):
        raise SettingsError("'env' in settings must be a JSON object", context={"path": str(path)})
    if env.get(key) == "1":
        return False

    env[key] = "1"
    write_json_atomic(path, data)
    logger.info("Enabled %s in %s", key, path)
    return True


def run_preflight(invoker: AgentInvoker, config: PlanrunConfig, claude_dir: Path) -> bool:
    """Check the invoker, then ensure the agent settings.

    Returns:
        True if settings.json was modified.
    """
    invoker.check_available()
    if not config.ensure_teams_env:
        return False
    return ensure_teams_env_var(claude_dir, config.teams_env_key)
