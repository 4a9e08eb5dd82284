#!/usr/bin/env python3
"""
CLI for running the incremental agent and talking to a running one.

Usage:
    python -m src.cli run /path/to/root --limit 10000 --port 8080
    python -m src.cli stats --port 8080
    python -m src.cli drain --page-size 500
    python -m src.cli register-self-change /path/to/root/out/ --ttl 10
    python -m src.cli reset
"""

import argparse
import json
import logging
import signal
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from src.incremental_agent import AgentClient, AgentConfig, AgentError, AgentProcess
from src.incremental_agent.api_server import AgentAPIService
from src.incremental_agent.config import default_env_file

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def setup_logging(level: str = "info", verbose: bool = False) -> None:
    """Configure root logging for the CLI."""
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), None)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=resolved, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def build_config(args) -> AgentConfig:
    """Merge environment settings with explicit CLI flags."""
    return AgentConfig.from_env(
        max_tracked_files=args.limit,
        page_size=args.page_size,
        self_change_default_ttl=args.self_change_ttl,
        snapshot_timeout=args.snapshot_timeout,
        bind_host=args.bind,
        port=args.port,
    )


def cmd_run(args):
    """Run the agent: watcher, tracker and HTTP API."""
    root = Path(args.root).resolve()
    if not root.exists():
        logger.error(f"Root path does not exist: {root}")
        sys.exit(1)

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    shutdown = GracefulShutdown()

    with AgentProcess(root, config) as agent:
        api = AgentAPIService(config.bind_host, config.port, agent.tracker, agent)
        agent.start_async()
        api.start()

        logger.info(f"Agent running for {root}")
        logger.info(f"Capacity: {config.max_tracked_files} path(s), page size {config.page_size}")
        logger.info(f"API: http://{config.bind_host}:{config.port}")
        logger.info("Press Ctrl+C to stop")

        try:
            while not shutdown.should_exit:
                time.sleep(0.5)
        finally:
            api.stop()

    logger.info("Agent stopped")


def _agent_base(args) -> str:
    return f"http://{args.host}:{args.port}"


def _client_call(args, fn):
    """Run fn(client) against a running agent, exiting on failure."""
    base = _agent_base(args)
    try:
        with AgentClient(base) as client:
            return fn(client)
    except AgentError as e:
        logger.error(f"Request to agent at {base} failed: {e}")
        sys.exit(1)


def cmd_stats(args):
    """Show agent statistics."""
    stats = _client_call(args, lambda c: c.stats())

    if args.json:
        print(json.dumps(stats, indent=2))
        return

    print("\n=== Agent Statistics ===")
    print(f"State: {stats['state']}")
    if stats.get("overflow_reason"):
        print(f"Overflow reason: {stats['overflow_reason']}")
    print(f"Tracked: {stats['tracked']} / {stats['capacity']}")
    for kind, count in stats["by_kind"].items():
        print(f"  {kind}: {count}")
    print(f"Active generation: {stats['active_generation']}")
    print(f"Self-change entries: {stats['self_change_entries']}")
    print(f"Events recorded: {stats['events_recorded']}")
    print(f"Events suppressed: {stats['events_suppressed']}")
    print(f"Overflows: {stats['overflow_count']}")
    print()


def cmd_reset(args):
    """Reset the agent's tracked state."""
    _client_call(args, lambda c: c.reset())
    print("Agent state reset.")


def cmd_drain(args):
    """Drain the current delta and print it as JSON lines."""
    records, overflow, reason = _client_call(args, lambda c: c.drain(args.page_size))

    if overflow:
        print(json.dumps({"overflow": True, "reason": reason.value if reason else None}))
        return
    for record in records:
        print(json.dumps(record.to_dict()))


def cmd_register_self_change(args):
    """Register a path prefix whose changes should be suppressed."""
    expiry = _client_call(args, lambda c: c.register_self_change(args.prefix, args.ttl))
    print(f"Suppressing {args.prefix} until {expiry:.3f}")


def _add_client_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", default="localhost", help="Agent API host (default: localhost)")
    parser.add_argument("--port", type=int, default=8080, help="Agent API port (default: 8080)")


def main(argv=None):
    env_file = default_env_file()
    if env_file is not None:
        load_dotenv(env_file)

    parser = argparse.ArgumentParser(
        description="Keeps track of filesystem changes since the previous scan",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch a tree and serve the change API on port 8080
  python -m src.cli run ./data --limit 10000

  # Pull and acknowledge the current delta
  python -m src.cli drain --page-size 500

  # Show statistics
  python -m src.cli stats
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "-l", "--log-level",
        default="info",
        help="Logging level (error, warning, info, debug)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Watch a root and serve the change API")
    run_parser.add_argument("root", help="File or folder to watch (recursively if a folder)")
    run_parser.add_argument("--limit", type=int, default=None, help="Maximum number of tracked changes (default: 10000)")
    run_parser.add_argument("--page-size", type=int, default=None, help="Default page size (default: 500)")
    run_parser.add_argument("--self-change-ttl", type=float, default=None, help="Default self-change TTL in seconds")
    run_parser.add_argument("--snapshot-timeout", type=float, default=None, help="Seconds before an idle snapshot is abandoned")
    run_parser.add_argument("--bind", default=None, help="Bind address for the HTTP server (default: 0.0.0.0)")
    run_parser.add_argument("--port", type=int, default=None, help="Port for the HTTP server (default: 8080)")
    run_parser.set_defaults(func=cmd_run)

    stats_parser = subparsers.add_parser("stats", help="Show agent statistics")
    _add_client_arguments(stats_parser)
    stats_parser.add_argument("--json", action="store_true", help="Print raw JSON")
    stats_parser.set_defaults(func=cmd_stats)

    reset_parser = subparsers.add_parser("reset", help="Reset tracked state")
    _add_client_arguments(reset_parser)
    reset_parser.set_defaults(func=cmd_reset)

    drain_parser = subparsers.add_parser("drain", help="Read and commit the current delta")
    _add_client_arguments(drain_parser)
    drain_parser.add_argument("--page-size", type=int, default=None, help="Records per page")
    drain_parser.set_defaults(func=cmd_drain)

    self_change_parser = subparsers.add_parser(
        "register-self-change", help="Suppress changes under a path prefix"
    )
    _add_client_arguments(self_change_parser)
    self_change_parser.add_argument("prefix", help="Path or directory prefix to suppress")
    self_change_parser.add_argument("--ttl", type=float, default=None, help="Seconds to suppress (agent default if omitted)")
    self_change_parser.set_defaults(func=cmd_register_self_change)

    args = parser.parse_args(argv)

    try:
        setup_logging(args.log_level, args.verbose)
    except ValueError as e:
        parser.error(str(e))

    args.func(args)


if __name__ == "__main__":
    main()
