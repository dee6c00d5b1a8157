# BotConfig and section dataclasses
# src/env/schema.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class MinecraftConfig:
    """Game server the bot joins (through the bridge)."""
    host: str = "localhost"
    port: int = 25565
    username: str = "BotGirl"
    version: str = "1.20.1"
    auth: str = "offline"          # "offline" or "microsoft"


@dataclass
class BridgeConfig:
    """JSON-lines sidecar that hosts the real game client."""
    host: str = "127.0.0.1"
    port: int = 25590
    request_timeout_ms: int = 10_000


@dataclass
class AuthConfig:
    """Server-side /register and /login negotiation."""
    auto_register: bool = True
    password: str = "defaultPassword123"
    timeout_ms: int = 60_000
    check_interval_ms: int = 5_000
    min_attempt_interval_ms: int = 3_000
    initial_delay_ms: int = 1_000
    command_delay_ms: int = 2_000


@dataclass
class PersonalityConfig:
    """How players address the bot and how it talks back."""
    type: str = "shy"
    mention_prefix: str = "@"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    to_console: bool = True
    to_file: bool = True
    directory: str = "logs"


@dataclass
class AdvancedConfig:
    """Timing and retry knobs for the orchestration core."""
    max_reconnect_attempts: int = 10
    reconnect_delay_ms: int = 5_000
    reconnect_cap_ms: int = 60_000
    connect_timeout_ms: int = 30_000
    movement_timeout_ms: int = 45_000
    stuck_check_interval_ms: int = 1_500
    stuck_sample_limit: int = 6
    survival_tick_ms: int = 250


@dataclass
class LlmConfig:
    """Local chat model used for in-game tool calling."""
    model_path: Optional[str] = None
    context_length: int = 8192
    chat_format: str = "chatml-function-calling"
    max_rounds: int = 10
    temperature: float = 0.2
    max_tokens: int = 512
    gpu_layers: Optional[int] = None     # None offloads every layer llama.cpp can fit
    n_threads: Optional[int] = None


@dataclass
class BotConfig:
    """Top-level resolved configuration."""
    mode: str = "terminal"         # "terminal" or "mcp"
    minecraft: MinecraftConfig = field(default_factory=MinecraftConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    personality: PersonalityConfig = field(default_factory=PersonalityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)
    llm: LlmConfig = field(default_factory=LlmConfig)
