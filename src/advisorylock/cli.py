"""
``withlock``: run a command while holding an advisory lock.

Usage:
    withlock [--db URL] [--log-level LEVEL] LOCK_NAME -- COMMAND [ARGS...]

The connection string comes from ``--db`` or, failing that, from the
``PG_CONNECTION_STRING`` environment variable. The command inherits this
process's stdio and its exit code becomes ours. Any failure to connect,
lock or spawn prints a diagnostic and exits with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import sys
from collections.abc import Sequence

from advisorylock.config import CONNECTION_STRING_ENV, MutexConfig
from advisorylock.factory import create_mutex_factory

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="withlock",
        usage="%(prog)s [--db URL] [--log-level LEVEL] LOCK_NAME -- COMMAND [ARGS...]",
        description="Run a command while holding a PostgreSQL advisory lock",
    )
    parser.add_argument(
        "--db",
        help=f"PostgreSQL connection string (default: ${CONNECTION_STRING_ENV})",
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Log level for diagnostics on stderr",
    )
    parser.add_argument("lock_name", metavar="LOCK_NAME", help="Name of the lock to hold")
    return parser


def split_command(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split argv at the first ``--`` into (options, command)."""
    argv = list(argv)
    if "--" not in argv:
        return argv, []
    index = argv.index("--")
    return argv[:index], argv[index + 1 :]


def exit_code_of(returncode: int) -> int:
    """Map a child return code to our exit status (signals as 128 + N)."""
    if returncode < 0:
        return 128 - returncode
    return returncode


async def run_locked(lock_name: str, command: list[str], config: MutexConfig) -> int:
    """Spawn ``command`` inside the lock and return its exit status."""
    async with create_mutex_factory(config) as create_mutex:
        mutex = create_mutex(lock_name)

        async def run_child() -> int:
            print("Lock acquired", flush=True)
            print(shlex.join(command), flush=True)
            process = await asyncio.create_subprocess_exec(*command)
            return await process.wait()

        returncode = await mutex.with_lock(run_child)
    logger.debug("Command exited with %d", returncode)
    return exit_code_of(returncode)


def _fail(message: str) -> int:
    print(message, file=sys.stderr)
    return EXIT_FAILURE


def main(argv: Sequence[str] | None = None) -> int:
    options, command = split_command(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(options)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not command:
        return _fail("No <command> specified")

    try:
        config = MutexConfig.from_env(args.db)
    except Exception as e:
        return _fail(str(e))

    try:
        return asyncio.run(run_locked(args.lock_name, command, config))
    except Exception as e:
        logger.debug("withlock failed", exc_info=True)
        return _fail(f"withlock: {e}")


if __name__ == "__main__":
    sys.exit(main())
