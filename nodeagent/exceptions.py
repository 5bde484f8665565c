"""nodeagent exception hierarchy."""


class AgentError(Exception):
    """Base exception for all agent errors."""


class ConfigurationError(AgentError, ValueError):
    """Raised when required settings are missing or invalid."""


class ScriptSpawnError(AgentError):
    """Raised when a script process could not be started at all."""

    def __init__(self, script: str, cause: BaseException):
        self.script = script
        self.cause = cause
        super().__init__(f"Failed to start {script}: {cause}")
