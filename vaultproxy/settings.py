from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

# Config file location (works in Docker + local)
DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent / "settings.yaml"

# env var -> (settings key, cast)
ENV_OVERRIDES = {
    "VAULT_ADDR": ("vault_addr", str),
    "VAULT_TIMEOUT_S": ("vault_timeout_s", float),
    "VAULT_POOL_MAX_SIZE": ("pool_max_size", int),
    "VAULT_POOL_IDLE_TTL_S": ("pool_idle_ttl_s", float),
    "ANTHROPIC_API_KEY": ("anthropic_api_key", str),
    "ANTHROPIC_BASE_URL": ("anthropic_base_url", str),
    "ANTHROPIC_VERSION": ("anthropic_version", str),
    "ANTHROPIC_MODEL": ("model", str),
    "ANTHROPIC_MAX_TOKENS": ("max_tokens", int),
    "MODEL_TIMEOUT_S": ("model_timeout_s", float),
    "AGENT_MAX_ROUNDS": ("max_rounds", int),
    "FRONTEND_ORIGIN": ("frontend_origin", str),
    "LOG_FORMAT": ("log_format", str),
}


@dataclass(frozen=True)
class Settings:
    vault_addr: str = "http://127.0.0.1:8200"
    vault_timeout_s: float = 30.0
    # Cached store sessions (one per caller token)
    pool_max_size: int = 256
    pool_idle_ttl_s: float = 900.0
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    model_timeout_s: float = 120.0
    # 0 = keep going until the model stops asking for tools
    max_rounds: int = 0
    frontend_origin: str = "http://localhost:5173"
    log_format: str = "console"
    path: str = ""


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        return {}
    return data


def load_settings(path: str | None = None) -> Settings:
    """
    Load settings from YAML, then apply environment overrides.

    Lookup order for the file: explicit path, VAULTPROXY_CONFIG, bundled settings.yaml.
    Unknown YAML keys are ignored.
    """
    p = Path(path or os.getenv("VAULTPROXY_CONFIG") or DEFAULT_SETTINGS_PATH)
    raw = _load_yaml(p)

    known = set(Settings.__dataclass_fields__) - {"path"}
    values: Dict[str, Any] = {k: v for k, v in raw.items() if k in known and v is not None}

    for env_name, (key, cast) in ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value is None or env_value.strip() == "":
            continue
        values[key] = cast(env_value.strip())

    for key, cast in (
        ("vault_timeout_s", float),
        ("pool_max_size", int),
        ("pool_idle_ttl_s", float),
        ("model_timeout_s", float),
        ("max_tokens", int),
        ("max_rounds", int),
    ):
        if key in values:
            values[key] = cast(values[key])

    values["vault_addr"] = str(values.get("vault_addr", Settings.vault_addr)).rstrip("/")
    values["anthropic_base_url"] = str(
        values.get("anthropic_base_url", Settings.anthropic_base_url)
    ).rstrip("/")

    return Settings(path=str(p), **values)
