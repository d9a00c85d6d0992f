"""Pid file handling for statmon."""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

import psutil

from statmon.errors import PidFileError

logger = logging.getLogger(__name__)


def read_pid_file(path: str) -> int | None:
    """Return the pid stored in ``path``, or None if absent or unreadable."""
    try:
        with open(path, encoding="ascii") as pid_file:
            return int(pid_file.read().strip())
    except (OSError, ValueError):
        return None


def write_pid_file(path: str) -> None:
    """
    Create ``path`` holding our pid.

    Raises PidFileError if the file names another process that is still
    alive. A stale file is overwritten.
    """
    pid = os.getpid()
    existing = read_pid_file(path)
    if existing is not None and existing != pid:
        if psutil.pid_exists(existing):
            raise PidFileError(f"{path} belongs to running process {existing}")
        logger.warning("Replacing stale pid file %s (process %d is gone)", path, existing)

    try:
        with open(path, "w", encoding="ascii") as pid_file:
            pid_file.write(str(pid))
    except OSError as e:
        logger.warning("Could not write pid file: %s", e)


def remove_pid_file(path: str) -> None:
    """Remove the pid file, warning if that fails."""
    try:
        os.unlink(path)
    except OSError as e:
        logger.warning("Could not delete pid file: %s", e)


@contextmanager
def pid_file(path: str | None) -> Iterator[None]:
    """Hold a pid file at ``path`` for the duration of the block. None skips it."""
    if path is None:
        yield
        return

    write_pid_file(path)
    try:
        yield
    finally:
        remove_pid_file(path)
