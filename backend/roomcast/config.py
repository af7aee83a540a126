"""roomcast application configuration.

Loads settings from two YAML files:
  * roomcast.settings.yaml: non-secret configuration
  * roomcast.secrets.yaml: secrets (never committed)

Collaborator credentials fall back to the environment variables the web
client already uses (KLIPY_API_KEY, KLIPY_CUSTOMER_ID, INFURA_ARBITRUM_RPC_URL)
when the secrets file does not provide them.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomcast.settings.yaml")
SECRETS_FILE  = Path("roomcast.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class KlipySecrets(BaseModel):
    api_key:     Optional[str] = None
    customer_id: Optional[str] = None


class Secrets(BaseModel):
    klipy: KlipySecrets = Field(default_factory=KlipySecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 8080


class RoomSettings(BaseModel):
    """Per-room buffering and per-connection backpressure limits."""
    history_limit:        int   = Field(default=100, ge=1)
    replay_limit:         int   = Field(default=50, ge=0)
    send_queue_size:      int   = Field(default=256, ge=1)
    send_timeout_seconds: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def _replay_within_history(self) -> "RoomSettings":
        if self.replay_limit > self.history_limit:
            raise ValueError("replay_limit cannot exceed history_limit")
        return self


class LoggingSettings(BaseModel):
    # Names uvicorn accepts as well as the logging module
    level: Literal["critical", "error", "warning", "info", "debug"] = "info"

    @field_validator("level", mode="before")
    @classmethod
    def _lowercase_level(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class KlipySettings(BaseModel):
    base_url:        str   = "https://api.klipy.com/api/v1"
    default_locale:  str   = "en"
    timeout_seconds: float = 10.0


class ChainSettings(BaseModel):
    rpc_url:         str   = "https://arb1.arbitrum.io/rpc"
    timeout_seconds: float = 10.0


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    rooms:   RoomSettings    = Field(default_factory=RoomSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    klipy:   KlipySettings   = Field(default_factory=KlipySettings)
    chain:   ChainSettings   = Field(default_factory=ChainSettings)
    secrets: Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment fallbacks
# ---------------------------------------------------------------------------


def _apply_env_fallbacks(settings: AppSettings) -> None:
    """Fill collaborator credentials from the environment when unset."""
    klipy = settings.secrets.klipy
    if not klipy.api_key:
        klipy.api_key = os.environ.get("KLIPY_API_KEY") or None
    if not klipy.customer_id:
        klipy.customer_id = os.environ.get("KLIPY_CUSTOMER_ID") or None

    rpc_url = os.environ.get("INFURA_ARBITRUM_RPC_URL")
    if rpc_url and "rpc_url" not in settings.chain.model_fields_set:
        settings.chain.rpc_url = rpc_url
        logger.info("Chain RPC URL taken from INFURA_ARBITRUM_RPC_URL")


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _apply_env_fallbacks(app_settings)
    logger.info(
        "Settings loaded (server=%s:%s, history_limit=%s, replay_limit=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.rooms.history_limit,
        app_settings.rooms.replay_limit,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Drop the cached settings so the next get_config() reloads them."""
    global _config
    _config = None
