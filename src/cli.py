#!/usr/bin/env python3
"""
CLI for rerunning a command when files change.

Usage:
    python -m src.cli -f main.c -f main.h "make && ./main"
    python -m src.cli --no-header -f app.py "python app.py"
    python -m src.cli --watch-once -f config.toml "./reload.sh"
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from src.relaunch import (
    ArgumentError,
    RelaunchConfig,
    RelaunchError,
    Supervisor,
    WatchLoop,
    create_event_source,
)
from src.relaunch.config import BACKENDS


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")


class GracefulShutdown:
    """Stop the watch loop on SIGINT/SIGTERM."""
    
    def __init__(self, loop: WatchLoop):
        self.loop = loop
        self.should_exit = False
        # Handlers can only be installed from the main thread.
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._handler)
            signal.signal(signal.SIGTERM, self._handler)
    
    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True
        self.loop.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relaunch",
        description="Rerun a shell command whenever one of the given files is written",
    )
    parser.add_argument(
        "--file", "-f",
        dest="files",
        action="append",
        default=[],
        metavar="filename",
        help="file to watch (can be used multiple times)",
    )
    parser.add_argument(
        "command",
        help="shell command to run; an empty string stops on the first change",
    )
    parser.add_argument(
        "--no-header", "-nh",
        action="store_true",
        help="do not print the watched files and command on startup",
    )
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default=None,
        help="file event backend (default: auto)",
    )
    parser.add_argument(
        "--watch-once",
        action="store_true",
        help="on one-shot backends, trigger at most once per file",
    )
    parser.add_argument(
        "--no-kill-group",
        action="store_true",
        help="only kill the shell, not the processes it started",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="enable debug logging",
    )
    return parser


def build_config(args) -> RelaunchConfig:
    """Merge environment settings with command-line flags."""
    config = RelaunchConfig.from_env(
        backend=args.backend,
        rearm_one_shot=False if args.watch_once else None,
        kill_process_group=False if args.no_kill_group else None,
        show_header=not args.no_header,
    )
    config.validate()
    
    if not args.files:
        raise ArgumentError("must watch at least one file")
    if len(args.files) > config.max_files:
        raise ArgumentError(f"cannot watch more than {config.max_files} files")
    return config


def run(args) -> int:
    """Watch the files from ``args`` and run the command on every change."""
    config = build_config(args)
    paths = [Path(f) for f in args.files]
    
    event_source = create_event_source(config)
    supervisor = Supervisor(config)
    loop = WatchLoop(event_source, supervisor, args.command, paths, config)
    shutdown = GracefulShutdown(loop)
    
    try:
        return loop.run()
    finally:
        loop.stop()
        event_source.close()
        if not supervisor.stop(timeout=5.0):
            logger.warning("Timed out waiting for the command to exit")
        if shutdown.should_exit:
            logger.info("Stopped")


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 0 for --help and 2 for usage errors
        return 0 if e.code == 0 else 1
    
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    
    try:
        return run(args)
    except ArgumentError as e:
        parser.print_usage(sys.stderr)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except RelaunchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
