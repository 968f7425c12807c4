"""
Utility Functions for the IBM POWER metric module.

Classes:
    ComputeOnce: Lazily computed, process-lifetime cached value.
    TimelyFile: File reader that re-reads only when the cached copy is stale.

Functions:
    run_command: Run an external CLI with a timeout.
    read_first_line: Read the first line of a small (device-tree) file.
    get_boot_time: Boot time in epoch seconds, computed once.
    uptime_clock: Seconds since boot, the clock fed to every rate sampler.
"""

import logging
import os
import shlex
import subprocess
import threading
import time
from typing import Any, Callable, List, Optional, Union

import psutil

from ibmpower.config import DEFAULT_COMMAND_TIMEOUT, TIMELY_FILE_THRESHOLD
from ibmpower.errors import CommandError, ErrorCode, ProbeError

_UNSET = object()


class ComputeOnce:
    """A value computed on first use and cached for the process lifetime.

    Concurrent first calls are serialized so the factory runs exactly once.
    If the factory raises, nothing is cached and the next ``get()`` retries.

    Example:
        >>> boot = ComputeOnce(psutil.boot_time)
        >>> boot.get() == boot.get()
        True
    """

    def __init__(self, factory: Callable[[], Any]):
        self._factory = factory
        self._value = _UNSET
        self._lock = threading.Lock()

    def get(self) -> Any:
        if self._value is _UNSET:
            with self._lock:
                if self._value is _UNSET:
                    self._value = self._factory()
        return self._value

    @property
    def is_set(self) -> bool:
        return self._value is not _UNSET

    def reset(self) -> None:
        with self._lock:
            self._value = _UNSET


class TimelyFile:
    """Cached reader for a /proc file.

    Several metrics parse the same file within one collection cycle; the
    content is only re-read when older than ``threshold`` seconds.

    Attributes:
        path: File to read.
        threshold: Seconds the cached content stays fresh.
    """

    def __init__(self, path: str, threshold: float = TIMELY_FILE_THRESHOLD,
                 clock: Callable[[], float] = time.monotonic):
        self.path = path
        self.threshold = threshold
        self._clock = clock
        self._content: Optional[str] = None
        self._last_read: Optional[float] = None
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def read(self) -> str:
        """Return the file content, re-reading it when stale.

        Raises:
            ProbeError: If the file cannot be read.
        """
        with self._lock:
            now = self._clock()
            if self._last_read is None or now - self._last_read > self.threshold:
                try:
                    with open(self.path, 'r', errors='replace') as f:
                        self._content = f.read()
                except OSError as e:
                    raise ProbeError(f"Cannot read {self.path}: {e.strerror or e}",
                                     path=self.path, operation='read')
                self._last_read = now
            return self._content

    def invalidate(self) -> None:
        with self._lock:
            self._last_read = None


class TimelyCommand:
    """Cached output of an external command, re-run when stale.

    ``lparstat -i`` and interval samples feed several metrics per
    collection cycle; the command runs at most once per ``threshold``.
    Failures are not cached.
    """

    def __init__(self, cmd: List[str], threshold: float = TIMELY_FILE_THRESHOLD,
                 timeout: float = DEFAULT_COMMAND_TIMEOUT, logger=None,
                 clock: Callable[[], float] = time.monotonic, runner: Optional[Callable[..., str]] = None):
        self.cmd = list(cmd)
        self.runner = runner or run_command
        self.threshold = threshold
        self.timeout = timeout
        self.logger = logger
        self._clock = clock
        self._output: Optional[str] = None
        self._last_run: Optional[float] = None
        self._lock = threading.Lock()

    def read(self) -> str:
        """Return the command output, running it again when stale.

        Raises:
            CommandError: If the command fails.
        """
        with self._lock:
            now = self._clock()
            if self._last_run is None or now - self._last_run > self.threshold:
                self._output = self.runner(self.cmd, timeout=self.timeout, logger=self.logger)
                self._last_run = now
            return self._output


def read_first_line(path: str) -> str:
    """Read the first line of a small file such as a device-tree property.

    Device-tree strings are NUL terminated; NUL bytes and surrounding
    whitespace are stripped.

    Raises:
        ProbeError: If the file cannot be read.
    """
    try:
        with open(path, 'rb') as f:
            data = f.read(4096)
    except OSError as e:
        raise ProbeError(f"Cannot read {path}: {e.strerror or e}", path=path, operation='read')

    text = data.replace(b'\x00', b'\n').decode('utf-8', errors='replace')
    lines = text.strip().splitlines()
    return lines[0].strip() if lines else ''


def run_command(
    cmd: Union[str, List[str]],
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Run an external command and return its stripped stdout.

    Args:
        cmd: Command as a list or a shell-like string (split with shlex,
            never run through a shell).
        timeout: Seconds before the command is killed.
        logger: Optional logger for debug output.

    Returns:
        Standard output with surrounding whitespace removed.

    Raises:
        CommandError: If the binary is missing, times out or exits non-zero.

    Example:
        >>> run_command(['uname', '-s'])
        'Linux'
    """
    argv = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
    cmd_display = ' '.join(argv)
    if logger:
        logger.debug(f'Running command: {cmd_display}')

    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise CommandError(f"Command not found: {argv[0]}", command=cmd_display,
                           exit_code=127, code=ErrorCode.COMMAND_NOT_FOUND)
    except PermissionError:
        raise CommandError(f"Command not executable: {argv[0]}", command=cmd_display,
                           exit_code=126)
    except subprocess.TimeoutExpired:
        raise CommandError(f"Command timed out after {timeout}s", command=cmd_display,
                           code=ErrorCode.COMMAND_TIMEOUT)

    if result.returncode != 0:
        raise CommandError(f"Command failed: {cmd_display}", command=cmd_display,
                           exit_code=result.returncode, stderr=result.stderr.strip())

    return result.stdout.strip()


_boot_time = ComputeOnce(psutil.boot_time)


def get_boot_time() -> float:
    """Boot time in seconds since the epoch, read once per process."""
    return _boot_time.get()


def uptime_clock() -> float:
    """Seconds since boot with sub-second resolution."""
    return time.time() - get_boot_time()
