"""YAML configuration with ``${VAR:-default}`` expansion.

Placeholders are resolved from the config's paired env file first
(``config_<name>.yaml`` reads ``.env_<name>``), then from the process
environment, then from the inline default.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("coze-proxy")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_PATH_ENV = "COZEPROXY_CONFIG"

# ${NAME}, ${NAME:-fallback} or $NAME
_PLACEHOLDER = re.compile(
    r"\$\{(?P<braced>[A-Za-z_]\w*)(?::-(?P<fallback>[^}]*))?\}|\$(?P<bare>[A-Za-z_]\w*)"
)


def resolve_config_path(path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Env file that pairs with ``config_path`` unless ``env_path`` overrides it."""
    if env_path:
        return resolve_config_path(env_path)
    prefix, _, suffix = config_path.stem.partition("config_")
    if not prefix and suffix:
        return config_path.with_name(f".env_{suffix}")
    return config_path.with_name(".env")


def _read_env_file(env_file: Path) -> dict[str, str]:
    if not env_file.is_file():
        return {}
    logger.info(f"Reading environment overrides from {env_file}")
    return {k: v for k, v in dotenv_values(env_file).items() if v is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Read a YAML config and expand its placeholders.

    Args:
        path: Config file; defaults to ``$COZEPROXY_CONFIG`` and then
            ``configs/config_default.yaml`` under the project root.
        env_path: Env file to use instead of the paired one.
        substitute_env: Leave placeholders untouched when False.

    Raises:
        ConfigurationError: If the file is missing or is not a YAML mapping.
    """
    config_path = resolve_config_path(path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not config_path.is_file():
        logger.error(f"Config file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, _read_env_file(resolve_env_path(config_path, env_path)))
    logger.info(f"Loaded configuration from {config_path}")
    return data


def _expand(text: str, env_values: Mapping[str, str]) -> str:
    def lookup(match: re.Match) -> str:
        name = match.group("braced") or match.group("bare")
        value = env_values.get(name, os.environ.get(name))
        if value is not None:
            return value
        fallback = match.group("fallback")
        if fallback is not None:
            return fallback
        logger.warning(f"Config placeholder {match.group(0)} has no value; keeping it literally")
        return match.group(0)

    return _PLACEHOLDER.sub(lookup, text)


def _substitute_env_vars(obj: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Expand placeholders in every string nested inside ``obj``."""
    env_values = env_values or {}
    if isinstance(obj, str):
        return _expand(obj, env_values)
    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, env_values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    return obj
