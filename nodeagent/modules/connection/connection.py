"""
Connection manager - owns the WebSocket to the coordinating server.

The connection is an explicit state machine:

    CONNECTING -> OPEN -> CLOSED_RETRYABLE -> CONNECTING -> ...
                       -> CLOSED_FATAL

Two timers hang off it, each an asyncio task owned by the manager. The
heartbeat task lives only while the connection is OPEN. The reconnect task
lives only while it is CLOSED_RETRYABLE, and at most one is ever armed.
A close with code 1008 means the server rejected our credentials. Retrying
would present the same credentials again, so it stops the reconnect loop
for good.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from nodeagent.config.provider import AgentConfig
from nodeagent.modules.api import HEARTBEAT_FRAME, Command, ConnectionState

logger = logging.getLogger("nodeagent.connection")

NORMAL_CLOSE_CODE = 1000
ABNORMAL_CLOSE_CODE = 1006
INTERNAL_ERROR_CODE = 1011
FATAL_CLOSE_CODE = 1008  # Policy violation: credentials rejected

CommandHandler = Callable[[Command], Awaitable[Any]]


def build_connect_url(config: AgentConfig) -> str:
    """Append the agent identity parameters to the server URL."""
    parts = urlsplit(config.server_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query += [
        ("type", "agent"),
        ("id", config.agent_id),
        ("accessCode", config.access_code),
        ("fingerprint", config.fingerprint_hash),
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


class ConnectionManager:
    """Keeps exactly one logical connection to the server alive."""

    def __init__(
        self,
        config: AgentConfig,
        on_command: Optional[CommandHandler] = None,
        connector: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Initialize connection manager.

        Args:
            config: Agent configuration (URL, identity, timer intervals)
            on_command: Coroutine called with every inbound command
            connector: Opens a WebSocket for a URL (defaults to websockets)
        """
        self.config = config
        self.on_command = on_command
        self._connector = connector or websocket_connect

        self.state = ConnectionState.CONNECTING
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._stopping = False
        self._stopped = asyncio.Event()

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN and self._ws is not None

    async def run(self) -> None:
        """Connect and keep the connection alive until stop() is called."""
        await self.connect()
        await self._stopped.wait()

    async def connect(self) -> bool:
        """
        Open the WebSocket.

        A failed attempt is handled like a retryable close, so the reconnect
        timer takes over from here.

        Returns:
            True if the connection opened
        """
        if self._stopping:
            return False

        logger.info(f"Attempting to connect to server at {self.config.server_url} as {self.config.agent_id}...")
        self.state = ConnectionState.CONNECTING

        try:
            ws = await self._connector(build_connect_url(self.config))
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error(f"WebSocket error: {e}")
            self._on_close(ABNORMAL_CLOSE_CODE, str(e))
            return False

        if self._stopping:
            await self._close_socket(ws, NORMAL_CLOSE_CODE, "agent shutting down")
            return False

        self._ws = ws
        self._on_open()
        self._reader_task = asyncio.create_task(self._receive_loop(ws), name="connection-reader")
        return True

    async def send_json(self, message: Dict[str, Any]) -> bool:
        """
        Send one JSON frame if the connection is open.

        Returns:
            True if the frame was written
        """
        ws = self._ws
        if ws is None or not self.is_open:
            return False

        try:
            await ws.send(json.dumps(message))
            return True
        except ConnectionClosed as e:
            # The reader sees the same close and runs the close handler
            logger.warning(f"Send failed, connection closed: {e}")
            return False
        except (OSError, WebSocketException) as e:
            logger.error(f"WebSocket error: {e}")
            self._force_close(ws)
            return False

    async def stop(self) -> None:
        """Close the connection for good and release run()."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("Stopping connection manager")

        self._cancel_reconnect()
        self._cancel_heartbeat()

        if self._ws is not None:
            await self._close_socket(self._ws, NORMAL_CLOSE_CODE, "agent shutting down")
        if self._reader_task is not None:
            await asyncio.wait({self._reader_task})

        self.state = ConnectionState.CLOSED_FATAL
        self._stopped.set()

    def request_stop(self) -> None:
        """Schedule stop() from a signal handler."""
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self.stop(), name="stop")

    # Lifecycle handlers

    def _on_open(self) -> None:
        logger.info("Connection to server established.")
        self._cancel_reconnect()
        self.state = ConnectionState.OPEN

        self._cancel_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="heartbeat")

    async def _on_message(self, message) -> None:
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")

        try:
            frame = json.loads(message)
        except (ValueError, RecursionError) as e:
            logger.error(f"Failed to parse incoming message: {e}")
            return

        if not Command.is_command_frame(frame):
            logger.debug(f"Ignoring frame without script/id: {str(frame)[:200]}")
            return

        try:
            command = Command.model_validate(frame)
        except ValidationError as e:
            logger.error(f"Ignoring invalid command {frame.get('id')}: {e}")
            return

        if self.on_command is None:
            logger.warning(f"No command handler registered, dropping command {command.id}")
            return
        await self.on_command(command)

    def _on_close(self, code: int, reason: str) -> None:
        logger.info(f"Disconnected from server. Code: {code}, Reason: {reason}")
        self._cancel_heartbeat()

        if self._stopping:
            self.state = ConnectionState.CLOSED_FATAL
            return

        if code == FATAL_CLOSE_CODE:
            logger.error(
                f"FATAL: Connection rejected by server: {reason}. "
                "Please re-run the agent setup or contact an administrator."
            )
            self.state = ConnectionState.CLOSED_FATAL
            self._cancel_reconnect()
            return

        self.state = ConnectionState.CLOSED_RETRYABLE
        if self._reconnect_task is None or self._reconnect_task.done():
            logger.info(f"Attempting to reconnect in {self.config.reconnect_interval:g} seconds...")
            self._reconnect_task = asyncio.create_task(self._reconnect_loop(), name="reconnect")

    # Tasks

    async def _receive_loop(self, ws) -> None:
        try:
            async for message in ws:
                try:
                    await self._on_message(message)
                except Exception as e:
                    # One bad frame must not end the reader
                    logger.exception(f"Error handling incoming message: {e}")
        except ConnectionClosed:
            pass
        except (OSError, WebSocketException) as e:
            logger.error(f"WebSocket error: {e}")
            await self._close_socket(ws, INTERNAL_ERROR_CODE, "transport error")

        if ws is self._ws:
            self._ws = None
        self._on_close(ws.close_code or ABNORMAL_CLOSE_CODE, ws.close_reason or "")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            if self.is_open:
                await self.send_json(HEARTBEAT_FRAME)

    async def _reconnect_loop(self) -> None:
        # Fixed interval, no attempt cap
        while self.state is ConnectionState.CLOSED_RETRYABLE and not self._stopping:
            await asyncio.sleep(self.config.reconnect_interval)
            await self.connect()

    # Helpers

    def _cancel_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _cancel_reconnect(self) -> None:
        # Called from inside the reconnect task when an attempt succeeds; the
        # loop then exits on its own because the state is no longer retryable
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _force_close(self, ws) -> None:
        if self._close_task is None or self._close_task.done():
            self._close_task = asyncio.create_task(
                self._close_socket(ws, INTERNAL_ERROR_CODE, "transport error"), name="force-close"
            )

    async def _close_socket(self, ws, code: int, reason: str) -> None:
        try:
            await ws.close(code, reason)
        except (OSError, WebSocketException) as e:
            logger.debug(f"Error while closing socket: {e}")
