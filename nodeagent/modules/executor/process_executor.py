"""
Process executor - runs one external script per command.

Scripts are spawned through a shell from the scripts directory. Their stdout
is collected in full and then translated into reply frames according to a
line-based convention:

    STATUS_JSON:<json>     -> agent-status-update reply
    EVENT_PAYLOAD:<json>   -> event envelope forwarded to the server
    anything else          -> log reply

Raw-output scripts skip the line parsing and report their whole output as a
single log reply. There are no retries, no timeouts and no cancellation: a
command runs until its process exits.
"""

import asyncio
import json
import logging
import shlex
from typing import Optional

from nodeagent.exceptions import ScriptSpawnError
from nodeagent.modules.api import (
    AgentStatusUpdate,
    Command,
    EventReply,
    LogReply,
    ReplyPayload,
    StatusReply,
)
from nodeagent.modules.executor.script_profile import ScriptProfile
from nodeagent.modules.reporter import ResultReporter

logger = logging.getLogger("nodeagent.executor")

STATUS_PREFIX = "STATUS_JSON:"
EVENT_PREFIX = "EVENT_PAYLOAD:"


def classify_line(command_id: str, line: str) -> Optional[ReplyPayload]:
    """
    Translate one non-blank stdout line into a reply.

    Args:
        command_id: Id of the command that produced the line
        line: The line, verbatim

    Returns:
        The reply to send, or None if the line carried malformed JSON
    """
    if line.startswith(STATUS_PREFIX):
        try:
            status = json.loads(line[len(STATUS_PREFIX):])
        except (ValueError, RecursionError) as e:
            logger.error(f"Failed to parse agent status JSON for command {command_id}: {e}")
            return None
        return AgentStatusUpdate(command_id=command_id, status=status)

    if line.startswith(EVENT_PREFIX):
        try:
            event_data = json.loads(line[len(EVENT_PREFIX):])
        except (ValueError, RecursionError) as e:
            logger.error(f"Failed to parse event payload for command {command_id}: {e}")
            return None
        # Bulk creation passes the id of the command that started it through the script
        event_id = command_id
        if isinstance(event_data, dict) and event_data.get("originalCommandId"):
            event_id = event_data["originalCommandId"]
        return EventReply(id=event_id, payload=event_data)

    return LogReply(command_id=command_id, data=line)


class ProcessExecutor:
    """Runs scripts and reports their output through the result reporter."""

    def __init__(
        self,
        reporter: ResultReporter,
        scripts_dir: str = ".",
        profile: Optional[ScriptProfile] = None,
    ):
        """
        Initialize executor.

        Args:
            reporter: Reporter used for every reply
            scripts_dir: Working directory scripts are resolved against
            profile: Raw-output and bulk-input script names
        """
        self.reporter = reporter
        self.scripts_dir = scripts_dir
        self.profile = profile or ScriptProfile()

    async def execute(self, command: Command) -> Optional[int]:
        """
        Run a command to completion and report its results.

        Returns:
            The process exit code, or None if the process could not start
        """
        logger.info(f"Executing command {command.id}: {command.script} {' '.join(command.args)}")

        try:
            process = await self._spawn(command)
        except ScriptSpawnError as e:
            logger.error(f"Command {command.id} failed to start: {e}")
            await self.reporter.send(StatusReply.error(command.id, str(e)))
            return None

        stdout, stderr = await process.communicate(self._stdin_payload(command))
        if stderr:
            logger.debug(f"Command {command.id} stderr: {stderr.decode('utf-8', errors='replace').strip()}")

        await self._report_output(command, stdout.decode("utf-8", errors="replace"))

        exit_code = process.returncode
        logger.info(f"Command {command.id} completed with exit code {exit_code}")
        await self.reporter.send(StatusReply.completed(command.id, exit_code))
        return exit_code

    def build_command_line(self, command: Command) -> str:
        """Shell command line for a script, each argument quoted as one word."""
        parts = [f"./{command.script}"] + list(command.args)
        return " ".join(shlex.quote(part) for part in parts)

    async def _spawn(self, command: Command) -> asyncio.subprocess.Process:
        cmd = self.build_command_line(command)
        logger.debug(f"Running: {cmd} (cwd={self.scripts_dir})")
        try:
            return await asyncio.create_subprocess_shell(
                cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.scripts_dir,
            )
        except (OSError, ValueError) as e:
            # ValueError: arguments the OS cannot pass, such as embedded NUL bytes
            raise ScriptSpawnError(command.script, e) from e

    def _stdin_payload(self, command: Command) -> bytes:
        if command.stdin_data and command.args and self.profile.accepts_bulk_input(command.script):
            return "\n".join(command.stdin_data).encode("utf-8")
        # Empty input still makes communicate() close the pipe
        return b""

    async def _report_output(self, command: Command, output: str) -> None:
        if self.profile.is_raw_output(command.script):
            await self.reporter.send(LogReply(command_id=command.id, data=output.strip()))
            return

        for line in output.split("\n"):
            if not line.strip():
                continue
            reply = classify_line(command.id, line)
            if reply is None:
                continue
            if isinstance(reply, EventReply):
                await self.reporter.send_event(reply)
            else:
                await self.reporter.send(reply)
