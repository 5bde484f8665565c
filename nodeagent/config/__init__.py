"""
Config Module - Black Box Interface

Purpose: Agent configuration management
Interface: EnvConfigProvider.get_agent_config()
Hidden: Config sources, validation logic, environment parsing
"""

from .provider import AgentConfig, ConfigProvider, EnvConfigProvider

__all__ = ["AgentConfig", "ConfigProvider", "EnvConfigProvider"]
