"""
AI Defender Client Exceptions

Custom exceptions for the tray control client. Boundary components (state
readers, the process invoker) report failures as tagged results; these
exceptions cover the places where raising is the contract.
"""

from pathlib import Path
from typing import List, Optional


class DefenderError(Exception):
    """Base exception for control client operations."""

    pass


class InstanceAlreadyRunningError(DefenderError):
    """Another client instance holds the single-instance lock."""

    def __init__(self, lock_path: Optional[Path] = None):
        self.lock_path = lock_path
        super().__init__(
            f"Another client instance is already running (lock: {lock_path})"
        )


class MalformedStateError(DefenderError):
    """A state file was present but could not be trusted."""

    def __init__(
        self,
        message: str,
        path: Optional[Path] = None,
        missing_fields: Optional[List[str]] = None,
    ):
        self.path = path
        self.missing_fields = missing_fields or []
        super().__init__(message)


# =============================================================================
# External Process Exceptions
# =============================================================================


class AgentCommandError(DefenderError):
    """Base exception for agent executable invocations."""

    def __init__(self, message: str, args: Optional[List[str]] = None):
        self.command_args = list(args or [])
        super().__init__(message)


class ExecutableNotFoundError(AgentCommandError):
    """No agent executable was found at any candidate location."""

    def __init__(self, message: str, candidates: Optional[List[Path]] = None):
        self.candidates = list(candidates or [])
        super().__init__(message)


class ProcessLaunchError(AgentCommandError):
    """The operating system refused to start the agent executable."""

    def __init__(
        self,
        message: str,
        args: Optional[List[str]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.original_error = original_error
        super().__init__(message, args)


class ProcessTimeoutError(AgentCommandError):
    """The agent command exceeded its timeout and was terminated."""

    def __init__(self, message: str, args: Optional[List[str]] = None, timeout_seconds: float = 0.0):
        self.timeout_seconds = timeout_seconds
        super().__init__(message, args)


class ProcessExitError(AgentCommandError):
    """The agent command exited with a non-zero status."""

    def __init__(self, message: str, args: Optional[List[str]] = None, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(message, args)


# =============================================================================
# Action Exceptions
# =============================================================================


class ActionInProgressError(DefenderError):
    """A privileged action was dispatched while another one is running."""

    def __init__(self, running_action: str, requested_action: str):
        self.running_action = running_action
        self.requested_action = requested_action
        super().__init__(
            f"Cannot start {requested_action}: {running_action} is still running"
        )
