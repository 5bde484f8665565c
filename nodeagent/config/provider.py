"""Configuration provider following Black Box Design principles."""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from nodeagent.exceptions import ConfigurationError

logger = logging.getLogger("nodeagent.config")

# Environment variables the agent cannot start without, mapped to a description
REQUIRED_ENV_VARS = {
    "SERVER_URL": "WebSocket base URL of the coordinating server",
    "AGENT_ID": "Identity of this agent",
    "AGENT_ACCESS_CODE": "Access code issued at registration",
    "FINGERPRINT_HASH": "Machine fingerprint hash",
}

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_RECONNECT_INTERVAL = 5.0
SCRIPT_PROFILE_FILENAME = "scripts.yaml"


@dataclass
class AgentConfig:
    """Agent configuration."""
    server_url: str
    agent_id: str
    access_code: str
    fingerprint_hash: str
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL
    scripts_dir: str = "."
    script_profile_path: Optional[str] = None
    log_level: str = "INFO"

    @property
    def is_secure(self) -> bool:
        """Check if the server URL uses TLS."""
        return self.server_url.startswith("wss://")

    @property
    def profile_path(self) -> str:
        """Script profile location, defaulting to the scripts directory."""
        return self.script_profile_path or os.path.join(self.scripts_dir, SCRIPT_PROFILE_FILENAME)


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_agent_config(self) -> AgentConfig:
        """Get agent configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def get_agent_config(self) -> AgentConfig:
        """Get agent configuration from environment variables."""
        missing = [name for name in REQUIRED_ENV_VARS if not self.environ.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Please run the agent setup again."
            )

        if not self.environ["SERVER_URL"].startswith(("ws://", "wss://")):
            raise ConfigurationError(
                f"SERVER_URL must be a ws:// or wss:// URL, got {self.environ['SERVER_URL']!r}"
            )

        config = AgentConfig(
            server_url=self.environ["SERVER_URL"],
            agent_id=self.environ["AGENT_ID"],
            access_code=self.environ["AGENT_ACCESS_CODE"],
            fingerprint_hash=self.environ["FINGERPRINT_HASH"],
            heartbeat_interval=self._interval("AGENT_HEARTBEAT_INTERVAL", DEFAULT_HEARTBEAT_INTERVAL),
            reconnect_interval=self._interval("AGENT_RECONNECT_INTERVAL", DEFAULT_RECONNECT_INTERVAL),
            scripts_dir=self.environ.get("AGENT_SCRIPTS_DIR") or os.getcwd(),
            script_profile_path=self.environ.get("AGENT_SCRIPT_PROFILE") or None,
            log_level=self.environ.get("LOG_LEVEL", "INFO").upper(),
        )

        if config.server_url.startswith("ws://"):
            logger.warning("Using ws:// without TLS - this should only be used for local development!")
        elif config.is_secure:
            logger.info("Using wss:// with TLS encryption")

        return config

    def _interval(self, name: str, default: float) -> float:
        raw = self.environ.get(name)
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from None
        if value <= 0:
            raise ConfigurationError(f"{name} must be positive, got {raw!r}")
        return value
