"""
Command dispatcher - acknowledges each command and hands it to the executor.

The ack is written before the execution task exists, so the server never
sees output for a command it has not been told was started.
"""

import asyncio
import logging
from typing import Set

from nodeagent.modules.api import AckReply, Command
from nodeagent.modules.executor import ProcessExecutor
from nodeagent.modules.reporter import ResultReporter

logger = logging.getLogger("nodeagent.dispatcher")


class CommandDispatcher:
    def __init__(self, reporter: ResultReporter, executor: ProcessExecutor):
        """
        Initialize dispatcher.

        Args:
            reporter: Reporter used for acknowledgements
            executor: Executor that runs each command
        """
        self.reporter = reporter
        self.executor = executor
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(self, command: Command) -> asyncio.Task:
        """
        Acknowledge a command and start executing it.

        Args:
            command: Validated inbound command

        Returns:
            The task running the command

        Logic:
        1. Send the ack and wait until it is written
        2. Start the executor in its own task
        3. Return without waiting for the command to finish
        """
        logger.info(f"Received command {command.id}: {command.script}")

        await self.reporter.send(AckReply(command_id=command.id))

        task = asyncio.create_task(self.executor.execute(command), name=f"command-{command.id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def in_flight(self) -> int:
        """Number of commands still running."""
        return len(self._tasks)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Unexpected error in {task.get_name()}: {exc!r}")
