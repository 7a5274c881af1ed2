"""Typed view over the loaded configuration dictionary."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .core.exceptions import ConfigurationError
from .types.chat import ModelType

logger = logging.getLogger("coze-proxy")

DEFAULT_BASE_URL = "https://api.coze.com"
DEFAULT_SESSION_NAME = "openai-proxy"
DEFAULT_USER_ID = "openai-proxy"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _clean_str(value: Any) -> Optional[str]:
    """Return a stripped string, or None for empty / unsubstituted values."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.startswith("${"):
        return None
    return text


def _parse_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid numeric config value {value!r}, using {default}")
        return default


def _parse_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer config value {value!r}, using {default}")
        return default


def _parse_origins(value: Any) -> list[str]:
    if value is None:
        return ["*"]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()] or ["*"]
    items = [item.strip() for item in str(value).split(",") if item.strip()]
    return items or ["*"]


@dataclass(frozen=True)
class JWTSettings:
    """Parameters of the signed-assertion (OAuth JWT) exchange."""

    app_id: str
    key_id: str
    aud: str
    private_key: str
    session_name: str = DEFAULT_SESSION_NAME
    duration_seconds: int = 900


@dataclass(frozen=True)
class CozeSettings:
    base_url: str = DEFAULT_BASE_URL
    api_key: Optional[str] = None
    bot_id: Optional[str] = None
    workflow_id: Optional[str] = None
    space_id: Optional[str] = None
    user_id: str = DEFAULT_USER_ID
    timeout: Optional[float] = None
    jwt: Optional[JWTSettings] = None


@dataclass(frozen=True)
class PollingSettings:
    interval_seconds: float = 1.0
    max_attempts: int = 60


@dataclass(frozen=True)
class SessionSettings:
    ttl_seconds: Optional[float] = 24 * 3600
    max_entries: int = 1000


@dataclass(frozen=True)
class WorkflowSettings:
    parameters: dict[str, Any] = field(default_factory=dict)
    is_async: bool = False


@dataclass(frozen=True)
class ProxySettings:
    coze: CozeSettings = field(default_factory=CozeSettings)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    default_model_type: ModelType = ModelType.CHAT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_enabled: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    logging_enabled: bool = False
    log_level: str = "INFO"
    polling: PollingSettings = field(default_factory=PollingSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)


def _parse_jwt(raw: Any) -> Optional[JWTSettings]:
    if not isinstance(raw, Mapping):
        return None
    app_id = _clean_str(raw.get("app_id"))
    if not app_id:
        return None
    private_key = _clean_str(raw.get("private_key")) or ""
    # Keys passed through env files usually carry literal "\n" sequences
    private_key = private_key.replace("\\n", "\n")
    return JWTSettings(
        app_id=app_id,
        key_id=_clean_str(raw.get("key_id")) or "",
        aud=_clean_str(raw.get("aud")) or "",
        private_key=private_key,
        session_name=_clean_str(raw.get("session_name")) or DEFAULT_SESSION_NAME,
        duration_seconds=_parse_int(raw.get("duration_seconds"), 900),
    )


def parse_settings(config: Mapping[str, Any]) -> ProxySettings:
    """Build ProxySettings from a loaded config dict.

    Server host/port honour COZEPROXY_HOST / COZEPROXY_PORT first.

    Raises:
        ConfigurationError: If default_model_type is not a known mode.
    """
    coze_cfg = config.get("coze") or {}
    proxy_cfg = config.get("proxy_settings") or {}
    workflow_cfg = config.get("workflow") or {}
    server_cfg = proxy_cfg.get("server") or {}
    cors_cfg = proxy_cfg.get("cors") or {}
    logging_cfg = proxy_cfg.get("logging") or {}
    polling_cfg = proxy_cfg.get("polling") or {}
    sessions_cfg = proxy_cfg.get("sessions") or {}

    coze = CozeSettings(
        base_url=(_clean_str(coze_cfg.get("base_url")) or DEFAULT_BASE_URL).rstrip("/"),
        api_key=_clean_str(coze_cfg.get("api_key")),
        bot_id=_clean_str(coze_cfg.get("bot_id")),
        workflow_id=_clean_str(coze_cfg.get("workflow_id")),
        space_id=_clean_str(coze_cfg.get("space_id")),
        user_id=_clean_str(coze_cfg.get("user_id")) or DEFAULT_USER_ID,
        timeout=_parse_float(coze_cfg.get("timeout"), None),
        jwt=_parse_jwt(coze_cfg.get("jwt")),
    )

    raw_mode = _clean_str(proxy_cfg.get("default_model_type")) or ModelType.CHAT.value
    try:
        default_mode = ModelType(raw_mode.lower())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid default_model_type: {raw_mode}") from exc

    parameters = workflow_cfg.get("parameters") or {}
    if not isinstance(parameters, Mapping):
        raise ConfigurationError("workflow.parameters must be a mapping")

    host = os.getenv("COZEPROXY_HOST") or _clean_str(server_cfg.get("host")) or DEFAULT_HOST
    port = _parse_int(
        os.getenv("COZEPROXY_PORT") or server_cfg.get("port"), DEFAULT_PORT
    )

    return ProxySettings(
        coze=coze,
        workflow=WorkflowSettings(
            parameters=dict(parameters),
            is_async=_parse_bool(workflow_cfg.get("is_async", False)),
        ),
        default_model_type=default_mode,
        host=host,
        port=port,
        cors_enabled=_parse_bool(cors_cfg.get("enabled", False)),
        cors_origins=_parse_origins(cors_cfg.get("origins")),
        logging_enabled=_parse_bool(logging_cfg.get("enabled", False)),
        log_level=_clean_str(logging_cfg.get("level")) or "INFO",
        polling=PollingSettings(
            interval_seconds=_parse_float(polling_cfg.get("interval_seconds"), 1.0) or 0.0,
            max_attempts=max(1, _parse_int(polling_cfg.get("max_attempts"), 60)),
        ),
        sessions=SessionSettings(
            ttl_seconds=_parse_float(sessions_cfg.get("ttl_seconds"), 24 * 3600) or None,
            max_entries=max(1, _parse_int(sessions_cfg.get("max_entries"), 1000)),
        ),
    )
