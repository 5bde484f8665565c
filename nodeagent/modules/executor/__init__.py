"""
Executor Module - Black Box Interface

Purpose: Run external scripts on behalf of the server
Interface: ProcessExecutor.execute(command), load_script_profile()
Hidden: Process spawning, stdin feeding, stdout line classification

Can be replaced with different execution mechanisms (containers, remote runners).
"""

from .process_executor import EVENT_PREFIX, STATUS_PREFIX, ProcessExecutor, classify_line
from .script_profile import ScriptProfile, load_script_profile

__all__ = [
    "EVENT_PREFIX",
    "STATUS_PREFIX",
    "ProcessExecutor",
    "ScriptProfile",
    "classify_line",
    "load_script_profile",
]
