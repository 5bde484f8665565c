"""
nodeagent - Remote-controlled node agent

Keeps a long-lived WebSocket connection to a coordinating server, runs the
scripts it is asked to run and streams their results back.

Architecture:
- Each module is self-contained with clear interfaces
- Modules communicate only through defined interfaces

Modules:
- api: Wire models (commands, replies, envelopes)
- connection: WebSocket lifecycle, heartbeat and reconnection
- dispatcher: Command acknowledgement and hand-off
- executor: External script execution and output classification
- reporter: Outbound envelope construction
"""

__version__ = "1.0.0"
