"""
Script profile for the node agent.

Names the scripts that need special treatment by the executor: scripts whose
output is forwarded as a single raw block, and the one script allowed to
receive bulk input on stdin.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml

from nodeagent.exceptions import ConfigurationError

logger = logging.getLogger("nodeagent.executor.profile")

DEFAULT_RAW_OUTPUT_SCRIPTS = frozenset({"list_proxies.sh", "export_proxies.sh"})
DEFAULT_BULK_INPUT_SCRIPT = "export_proxies.sh"


@dataclass(frozen=True)
class ScriptProfile:
    """Which scripts get raw output handling and which one takes stdin."""

    raw_output_scripts: FrozenSet[str] = field(default=DEFAULT_RAW_OUTPUT_SCRIPTS)
    bulk_input_script: Optional[str] = DEFAULT_BULK_INPUT_SCRIPT

    def is_raw_output(self, script: str) -> bool:
        return script in self.raw_output_scripts

    def accepts_bulk_input(self, script: str) -> bool:
        return self.bulk_input_script is not None and script == self.bulk_input_script

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScriptProfile":
        """Create from a parsed YAML document (camelCase keys)."""
        raw = data.get("rawOutputScripts", sorted(DEFAULT_RAW_OUTPUT_SCRIPTS))
        bulk = data.get("bulkInputScript", DEFAULT_BULK_INPUT_SCRIPT)

        if not isinstance(raw, list) or not all(isinstance(s, str) for s in raw):
            raise ConfigurationError("rawOutputScripts must be a list of script names")
        if bulk is not None and not isinstance(bulk, str):
            raise ConfigurationError("bulkInputScript must be a script name")

        return cls(raw_output_scripts=frozenset(raw), bulk_input_script=bulk)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawOutputScripts": sorted(self.raw_output_scripts),
            "bulkInputScript": self.bulk_input_script,
        }


def load_script_profile(path: str) -> ScriptProfile:
    """
    Load the script profile from a YAML file.

    A missing file yields the defaults; an unreadable or malformed one is a
    configuration error.
    """
    profile_path = Path(path)
    if not profile_path.exists():
        logger.warning(f"Script profile not found: {profile_path}, using defaults")
        return ScriptProfile()

    try:
        with open(profile_path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read script profile {profile_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Script profile {profile_path} must be a mapping")

    profile = ScriptProfile.from_dict(data)
    logger.info(
        f"Script profile loaded (raw output: {sorted(profile.raw_output_scripts)}, "
        f"bulk input: {profile.bulk_input_script})"
    )
    return profile
