from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

import yaml

from .schema import (
    AdvancedConfig,
    AuthConfig,
    BotConfig,
    BridgeConfig,
    LlmConfig,
    LoggingConfig,
    MinecraftConfig,
    PersonalityConfig,
)

log = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_ROOT = PROJECT_ROOT / "config"
DEFAULT_CONFIG = CONFIG_ROOT / "bot.yaml"

# GitHub Actions sets CI=true; use that to relax certain checks there.
IS_CI = os.getenv("CI") == "true"

VALID_MODES = ("terminal", "mcp")
VALID_AUTH_MODES = ("offline", "microsoft")
DEFAULT_PASSWORD = "defaultPassword123"


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML config file, returning {} for an empty document."""
    if not path.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _build_section(cls: Type[T], raw: Any, section: str) -> T:
    """Instantiate a section dataclass, rejecting unknown keys."""
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"Config section '{section}' must be a mapping, got {type(raw)}")
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown keys in config section '{section}': {', '.join(unknown)}")
    return cls(**raw)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_int(value: str, variable: str) -> int:
    try:
        return int(value.strip(), 10)
    except ValueError:
        raise ValueError(f"{variable} must be a valid integer") from None


def _apply_env_overrides(cfg: BotConfig, environ: Mapping[str, str]) -> None:
    """Deployment secrets and host details may come from the environment."""
    if environ.get("MODE"):
        cfg.mode = environ["MODE"]
    if environ.get("MC_HOST"):
        cfg.minecraft.host = environ["MC_HOST"]
    if environ.get("MC_PORT"):
        cfg.minecraft.port = _parse_int(environ["MC_PORT"], "MC_PORT")
    if environ.get("MC_USERNAME"):
        cfg.minecraft.username = environ["MC_USERNAME"]
    if environ.get("MC_AUTH"):
        cfg.minecraft.auth = environ["MC_AUTH"]
    if environ.get("BRIDGE_HOST"):
        cfg.bridge.host = environ["BRIDGE_HOST"]
    if environ.get("BRIDGE_PORT"):
        cfg.bridge.port = _parse_int(environ["BRIDGE_PORT"], "BRIDGE_PORT")
    if "BOT_PASSWORD" in environ:
        cfg.auth.password = environ["BOT_PASSWORD"]
    if environ.get("AUTO_REGISTER"):
        cfg.auth.auto_register = _parse_bool(environ["AUTO_REGISTER"])
    if environ.get("LOG_LEVEL"):
        cfg.logging.level = environ["LOG_LEVEL"]
    if environ.get("LLM_MODEL_PATH"):
        cfg.llm.model_path = environ["LLM_MODEL_PATH"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_config(raw: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> BotConfig:
    """Build and validate a BotConfig from an already-parsed mapping."""
    cfg = BotConfig(
        mode=str(raw.get("mode", "terminal")),
        minecraft=_build_section(MinecraftConfig, raw.get("minecraft"), "minecraft"),
        bridge=_build_section(BridgeConfig, raw.get("bridge"), "bridge"),
        auth=_build_section(AuthConfig, raw.get("auth"), "auth"),
        personality=_build_section(PersonalityConfig, raw.get("personality"), "personality"),
        logging=_build_section(LoggingConfig, raw.get("logging"), "logging"),
        advanced=_build_section(AdvancedConfig, raw.get("advanced"), "advanced"),
        llm=_build_section(LlmConfig, raw.get("llm"), "llm"),
    )

    _apply_env_overrides(cfg, environ if environ is not None else {})
    _validate_config(cfg)
    return cfg


def load_environment(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BotConfig:
    """Main entry point: returns a fully resolved BotConfig.

    Resolution order: explicit `path`, then $BOT_CONFIG, then config/bot.yaml.
    Environment variables override file values.
    """
    env = os.environ if environ is None else environ
    if path is None:
        path = Path(env["BOT_CONFIG"]) if env.get("BOT_CONFIG") else DEFAULT_CONFIG

    raw = _load_yaml(path)
    cfg = build_config(raw, env)
    log.debug("Loaded configuration from %s (mode=%s)", path, cfg.mode)
    return cfg


def _validate_config(cfg: BotConfig) -> None:
    """Minimal sanity checks for the configuration."""
    if cfg.mode not in VALID_MODES:
        raise ValueError(f"mode must be one of: {', '.join(VALID_MODES)}")

    if cfg.minecraft.auth not in VALID_AUTH_MODES:
        raise ValueError(f"minecraft.auth must be one of: {', '.join(VALID_AUTH_MODES)}")

    if not cfg.minecraft.host.strip():
        raise ValueError("minecraft.host is required")

    for name, port in (("minecraft.port", cfg.minecraft.port), ("bridge.port", cfg.bridge.port)):
        if port < 1 or port > 65535:
            raise ValueError(f"{name} must be between 1 and 65535")

    if cfg.auth.auto_register and not cfg.auth.password.strip():
        raise ValueError("auth.password is required when auto_register is enabled")

    adv = cfg.advanced
    if adv.max_reconnect_attempts < 0:
        raise ValueError("advanced.max_reconnect_attempts must be >= 0")
    if adv.reconnect_delay_ms < 0:
        raise ValueError("advanced.reconnect_delay_ms must be >= 0")
    if adv.reconnect_cap_ms < adv.reconnect_delay_ms:
        raise ValueError("advanced.reconnect_cap_ms must be >= reconnect_delay_ms")
    if adv.movement_timeout_ms <= 0:
        raise ValueError("advanced.movement_timeout_ms must be > 0")
    if adv.connect_timeout_ms <= 0:
        raise ValueError("advanced.connect_timeout_ms must be > 0")
    if adv.stuck_sample_limit < 1:
        raise ValueError("advanced.stuck_sample_limit must be >= 1")

    if cfg.llm.model_path:
        model_path = Path(cfg.llm.model_path)
        if not model_path.exists():
            if IS_CI:
                # CI runners don't carry local model files.
                return
            raise FileNotFoundError(f"Missing model file: {model_path}")
