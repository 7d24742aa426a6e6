from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from chat_hook_plugins.retry import DEFAULT_RETRY_COMMAND

CONFIG_PATH_ENV_VAR = "CHAT_HOOK_PLUGINS_CONFIG"
LOG_LEVEL_ENV_VAR = "CHAT_HOOK_PLUGINS_LOG_LEVEL"

DEFAULT_PLUGINS = ["session-lifecycle", "message-repair", "retry"]


@dataclass
class RuntimeEnv:
    config_path: Path
    log_level_override: str | None


@dataclass
class PluginsConfig:
    plugins: list[str]
    retry_command: str
    debug_preview_chars: int
    status_output: str
    status_line_prefix: str
    log_level: str
    log_consumers: list | None


def resolve_runtime_env() -> RuntimeEnv:
    configured = os.environ.get(CONFIG_PATH_ENV_VAR, "").strip()
    config_path = Path(configured) if configured else Path.cwd() / "config.json"
    return RuntimeEnv(
        config_path=config_path,
        log_level_override=os.environ.get(LOG_LEVEL_ENV_VAR, "").strip() or None,
    )


def load_json_config(path: Path | None = None) -> dict:
    config_path = path if path is not None else Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _plugin_names(value: object) -> list[str]:
    if value is None:
        return list(DEFAULT_PLUGINS)
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, dict):
        # {"retry": true, "debug-logger": false} keeps declaration order
        value = [name for name, enabled in value.items() if _to_bool(enabled, default=True)]
    return [str(name).strip().lower() for name in value if str(name).strip()]


def parse_plugins_config(config: dict, env: RuntimeEnv | None = None) -> PluginsConfig:
    log_level = str(config.get("LogLevel", "INFO")).upper()
    if env is not None and env.log_level_override:
        log_level = env.log_level_override.upper()

    return PluginsConfig(
        plugins=_plugin_names(config.get("Plugins")),
        retry_command=str(config.get("RetryCommand", DEFAULT_RETRY_COMMAND)).strip() or DEFAULT_RETRY_COMMAND,
        debug_preview_chars=int(config.get("DebugPreviewChars", 80)),
        status_output=str(config.get("StatusOutput", "console")).strip().lower(),
        status_line_prefix=str(config.get("StatusLinePrefix", "")),
        log_level=log_level,
        log_consumers=config.get("LogConsumers"),
    )


def load_plugins_config() -> PluginsConfig:
    env = resolve_runtime_env()
    return parse_plugins_config(load_json_config(env.config_path), env)
