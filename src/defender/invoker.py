"""
Agent Executable Invoker

Runs the agent executable with a fixed argument vector and classifies the
outcome. The client never talks to the agent any other way, and never trusts
an exit code as proof of effect: callers confirm effects by re-reading state.

Discovery order for the executable:

  1. next to the client (the installed layout)
  2. <client dir>/target/release (a development checkout after a build)

A missing executable is reported as UNAVAILABLE, distinct from a command that
ran and failed. Each run is a single bounded attempt; there are no retries.
"""

import logging
import os
import platform
import signal
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import psutil

from .exceptions import (
    AgentCommandError,
    ExecutableNotFoundError,
    ProcessExitError,
    ProcessLaunchError,
    ProcessTimeoutError,
)
from .paths import get_client_dir

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
VERSION_TIMEOUT_SECONDS = 5.0
REAP_TIMEOUT_SECONDS = 5.0

KILLSWITCH_ON_ARGS: Tuple[str, ...] = ("--console", "--killswitch", "on")
KILLSWITCH_OFF_ARGS: Tuple[str, ...] = ("--console", "--killswitch", "off")
VERSION_ARGS: Tuple[str, ...] = ("--version",)

NOT_FOUND_MESSAGE = (
    "Agent executable not found.\n\n"
    "Expected `{name}` next to the tray client executable."
)
TIMEOUT_MESSAGE = "Agent command timed out."
NON_ZERO_EXIT_MESSAGE = "Agent returned a non-zero exit code."


class InvokeStatus(str, Enum):
    """Classification of one agent invocation."""

    SUCCESS = "success"
    UNAVAILABLE = "unavailable"  # No executable found
    LAUNCH_FAILED = "launch_failed"  # OS refused to start it
    TIMEOUT = "timeout"  # Killed after the timeout
    NON_ZERO_EXIT = "non_zero_exit"


@dataclass(frozen=True)
class InvokeResult:
    """Outcome of running the agent executable once."""

    status: InvokeStatus
    args: Tuple[str, ...] = ()
    user_message: str = ""
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    executable: Optional[Path] = None

    @property
    def success(self) -> bool:
        return self.status == InvokeStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise the matching AgentCommandError unless the run succeeded."""
        args = list(self.args)
        if self.status == InvokeStatus.SUCCESS:
            return
        if self.status == InvokeStatus.UNAVAILABLE:
            raise ExecutableNotFoundError(self.user_message)
        if self.status == InvokeStatus.LAUNCH_FAILED:
            raise ProcessLaunchError(self.user_message, args)
        if self.status == InvokeStatus.TIMEOUT:
            raise ProcessTimeoutError(self.user_message, args, self.duration_seconds)
        if self.status == InvokeStatus.NON_ZERO_EXIT:
            raise ProcessExitError(self.user_message, args, self.exit_code)
        raise AgentCommandError(self.user_message, args)


def agent_executable_name() -> str:
    """Platform-specific file name of the agent executable."""
    return "agent-core.exe" if platform.system() == "Windows" else "agent-core"


def default_candidates(client_dir: Optional[Path] = None) -> List[Path]:
    """Candidate executable locations, in search order."""
    client_dir = client_dir or get_client_dir()
    name = agent_executable_name()
    return [
        client_dir / name,
        client_dir / "target" / "release" / name,
    ]


def failure_message(stdout: str, stderr: str) -> str:
    """User-facing message for a failed run: stderr, else stdout, else generic."""
    for text in (stderr, stdout):
        if text and text.strip():
            return text.strip()
    return NON_ZERO_EXIT_MESSAGE


def terminate_process_tree(process: "subprocess.Popen[str]") -> None:
    """Kill a process and every descendant it spawned."""
    try:
        children = psutil.Process(process.pid).children(recursive=True)
    except psutil.Error:
        children = []

    if platform.system() != "Windows":
        try:
            # The child leads its own session, so this reaches re-parented descendants too
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass

    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass

    try:
        process.kill()
    except ProcessLookupError:
        pass

    psutil.wait_procs(children, timeout=REAP_TIMEOUT_SECONDS)


@dataclass
class AgentInvoker:
    """
    Launches the agent executable.

    Attributes:
        candidates: Executable locations searched in order
        executable: Explicit executable path; bypasses the candidate search
        timeout_seconds: Limit for general commands
        version_timeout_seconds: Limit for the version query
    """

    candidates: List[Path] = field(default_factory=default_candidates)
    executable: Optional[Path] = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    version_timeout_seconds: float = VERSION_TIMEOUT_SECONDS

    def find_executable(self) -> Optional[Path]:
        """Return the first existing candidate, or None."""
        if self.executable is not None:
            return self.executable if self.executable.is_file() else None

        for candidate in self.candidates:
            if candidate.is_file():
                logger.debug(f"Agent executable found at {candidate}")
                return candidate
            logger.debug(f"Agent executable not at {candidate}")
        return None

    def is_available(self) -> bool:
        return self.find_executable() is not None

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> InvokeResult:
        """
        Run the agent with ``args`` and wait for it, up to ``timeout``.

        Args:
            args: Argument vector, without the executable itself
            timeout: Seconds to wait; defaults to ``timeout_seconds``

        Returns:
            InvokeResult; never raises for process-level failures
        """
        args = tuple(args)
        timeout = self.timeout_seconds if timeout is None else timeout

        exe = self.find_executable()
        if exe is None:
            logger.warning(f"Agent executable unavailable for {' '.join(args)}")
            return InvokeResult(
                InvokeStatus.UNAVAILABLE,
                args=args,
                user_message=NOT_FOUND_MESSAGE.format(name=agent_executable_name()),
            )

        started = time.monotonic()
        try:
            process = subprocess.Popen(
                [str(exe), *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **_platform_popen_kwargs(),
            )
        except OSError as e:
            logger.error(f"Failed to start agent process {exe}: {e}")
            return InvokeResult(
                InvokeStatus.LAUNCH_FAILED,
                args=args,
                user_message=f"Agent command failed: {e}",
                duration_seconds=time.monotonic() - started,
                executable=exe,
            )

        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Agent command {' '.join(args)} timed out after {timeout}s")
            terminate_process_tree(process)
            try:
                stdout, stderr = process.communicate(timeout=REAP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                logger.error(f"Agent process {process.pid} did not exit after kill")
                stdout, stderr = "", ""
            return InvokeResult(
                InvokeStatus.TIMEOUT,
                args=args,
                user_message=TIMEOUT_MESSAGE,
                stdout=stdout or "",
                stderr=stderr or "",
                duration_seconds=time.monotonic() - started,
                executable=exe,
            )

        duration = time.monotonic() - started
        stdout = stdout or ""
        stderr = stderr or ""

        if process.returncode != 0:
            message = failure_message(stdout, stderr)
            logger.warning(f"Agent command {' '.join(args)} exited {process.returncode}: {message}")
            return InvokeResult(
                InvokeStatus.NON_ZERO_EXIT,
                args=args,
                user_message=message,
                exit_code=process.returncode,
                stdout=stdout,
                stderr=stderr,
                duration_seconds=duration,
                executable=exe,
            )

        logger.debug(f"Agent command {' '.join(args)} succeeded in {duration:.2f}s")
        return InvokeResult(
            InvokeStatus.SUCCESS,
            args=args,
            exit_code=0,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
            executable=exe,
        )

    def get_version(self) -> Optional[str]:
        """Query the agent version; None if unavailable or the query fails."""
        result = self.run(VERSION_ARGS, timeout=self.version_timeout_seconds)
        try:
            result.raise_for_status()
        except AgentCommandError as e:
            logger.debug(f"Agent version query failed: {e}")
            return None
        version = result.stdout.strip()
        return version or None


def _platform_popen_kwargs() -> dict:
    if platform.system() == "Windows":
        return {"creationflags": getattr(subprocess, "CREATE_NO_WINDOW", 0)}
    return {"start_new_session": True}
