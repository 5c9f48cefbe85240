"""Configuration schema using Pydantic.

Single data model and defaults for the bridge, persisted to ~/.mcpbridge/config.json.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 3020
    cors_origins: list[str] = Field(
        default_factory=lambda: ["https://claude.ai", "http://localhost:3000"]
    )
    # Header carrying the session token in both directions.
    session_header: str = "X-Session-Id"


class PeerConfig(BaseModel):
    """Stdio MCP server spawned once per session."""
    command: str = "npx"
    args: list[str] = Field(
        default_factory=lambda: [
            "-y",
            "@modelcontextprotocol/server-filesystem",
            str(Path.home() / "mcp-workspace"),
        ]
    )
    cwd: str = ""  # Empty means inherit the bridge's working directory
    env: dict[str, str] = Field(default_factory=dict)  # Extra env vars on top of os.environ

    @property
    def argv(self) -> list[str]:
        return [self.command, *[str(a) for a in self.args]]


class BridgeConfig(BaseModel):
    """Session and correlation behavior."""
    # initialize: only an initialize call spawns a session; lazy: any unresolved call does.
    session_policy: Literal["initialize", "lazy"] = "initialize"
    # Route calls without a known session id to the most recently created session.
    allow_recent_fallback: bool = True
    call_timeout_seconds: float = 10.0
    enrich_tools: bool = True
    enrichment_timeout_seconds: float = 2.0
    # Send a tools/list to the peer right after notifications/initialized.
    prime_tools_after_initialized: bool = True
    shutdown_grace_seconds: float = 2.0


class Config(BaseSettings):
    """Root configuration for mcpbridge."""
    model_config = SettingsConfigDict(env_prefix="MCPBRIDGE_", env_nested_delimiter="__")

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    peer: PeerConfig = Field(default_factory=PeerConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # MCPBRIDGE_* variables win over values read from config.json
        return env_settings, init_settings, dotenv_settings, file_secret_settings
