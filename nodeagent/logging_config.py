"""
Custom logging configuration to suppress WebSocket keepalive chatter
"""

import logging
import logging.config
from typing import Dict, Any


class KeepaliveFilter(logging.Filter):
    """Filter to suppress ping/pong frame logs from the websockets library."""

    NOISE = ("keepalive ping", "keepalive pong", "> PING", "< PONG", "< PING", "> PONG")

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter out keepalive frames from websockets debug logs."""
        if record.name.startswith("websockets"):
            message = record.getMessage()
            if any(noise in message for noise in self.NOISE):
                return False
        return True


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get logging configuration with keepalive suppression."""
    level = level.upper()
    # The library is only interesting when debugging the transport itself
    websockets_level = "DEBUG" if level == "DEBUG" else "WARNING"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "keepalive_filter": {
                "()": KeepaliveFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            },
            "transport": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
                "filters": ["keepalive_filter"]
            }
        },
        "loggers": {
            "websockets": {
                "handlers": ["transport"],
                "level": websockets_level,
                "propagate": False
            },
            "nodeagent": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            }
        },
        "root": {
            "level": level,
            "handlers": ["default"]
        }
    }


def configure_logging(level: str = "INFO") -> None:
    """Apply the agent logging configuration."""
    logging.config.dictConfig(get_logging_config(level))
