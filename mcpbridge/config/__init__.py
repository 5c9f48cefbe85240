"""Configuration module for mcpbridge."""

from mcpbridge.config.loader import load_config, get_config_path, save_config
from mcpbridge.config.schema import BridgeConfig, Config, GatewayConfig, PeerConfig
from mcpbridge.config.access import get_config, clear_config_cache

__all__ = [
    "BridgeConfig",
    "Config",
    "GatewayConfig",
    "PeerConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "get_config",
    "clear_config_cache",
]
