#!/usr/bin/env python3
"""
nodeagent - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the connection until the process is signalled

All protocol logic is in the modules, following black box principles.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Tuple

import click
from dotenv import load_dotenv

from nodeagent.config.provider import AgentConfig, EnvConfigProvider
from nodeagent.exceptions import ConfigurationError
from nodeagent.logging_config import configure_logging
from nodeagent.modules.connection import ConnectionManager
from nodeagent.modules.dispatcher import CommandDispatcher
from nodeagent.modules.executor import ProcessExecutor, ScriptProfile, load_script_profile
from nodeagent.modules.reporter import ResultReporter

logger = logging.getLogger("nodeagent")


def build_agent(
    config: AgentConfig, profile: Optional[ScriptProfile] = None
) -> Tuple[ConnectionManager, CommandDispatcher]:
    """Wire the modules together around one connection."""
    manager = ConnectionManager(config)
    reporter = ResultReporter(manager, config.agent_id)
    executor = ProcessExecutor(reporter, scripts_dir=config.scripts_dir, profile=profile)
    dispatcher = CommandDispatcher(reporter, executor)
    manager.on_command = dispatcher.dispatch
    return manager, dispatcher


async def run_agent(config: AgentConfig, profile: Optional[ScriptProfile] = None) -> None:
    """Run the agent until SIGINT or SIGTERM."""
    manager, dispatcher = build_agent(config, profile)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, manager.request_stop)

    logger.info(f"Agent {config.agent_id} starting (scripts: {config.scripts_dir})")
    await manager.run()

    if dispatcher.in_flight:
        logger.warning(f"Exiting with {dispatcher.in_flight} command(s) still running")
    logger.info("Agent stopped")


@click.command()
@click.option(
    "--env-file",
    "env_file",
    default=".env",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="File with SERVER_URL, AGENT_ID, AGENT_ACCESS_CODE and FINGERPRINT_HASH.",
)
@click.option("--log-level", "log_level", default=None, help="Overrides LOG_LEVEL.")
def main(env_file: str, log_level: Optional[str]):
    """Connect to the coordinating server and run the scripts it sends."""
    # Variables already set in the environment win over the file
    load_dotenv(env_file)
    configure_logging(log_level or os.environ.get("LOG_LEVEL", "INFO"))

    try:
        config = EnvConfigProvider().get_agent_config()
        profile = load_script_profile(config.profile_path)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    try:
        asyncio.run(run_agent(config, profile))
    except KeyboardInterrupt:
        logger.info("Agent stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
