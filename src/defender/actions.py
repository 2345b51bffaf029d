"""
Action Controller

Runs the three privileged actions the tray client offers:

- EnableContainment   agent --console --killswitch on
- DisableContainment  agent --console --killswitch off
- ToggleMode          rewrite ``mode`` in config.toml, optionally restart the service

Each action walks one state machine:

    IDLE -> CONFIRMING -> INVOKING -> CONFIRMING_EFFECT -> SETTLED -> IDLE

A declined confirmation returns to IDLE with no side effect. A failed
invocation settles UNCONFIRMED immediately with the invoker's message. For
containment actions the controller then polls killswitch-state.toml until
``enabled`` matches the expected value or the confirmation window closes;
an exit code of zero alone is never reported as success.

The controller knows nothing about rendering. Callers supply a ``confirm``
callable that answers ConfirmationPrompts, and may subscribe to phase
changes.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .exceptions import ActionInProgressError
from .invoker import KILLSWITCH_OFF_ARGS, KILLSWITCH_ON_ARGS, AgentInvoker, InvokeResult
from .models import OperatingMode, Snapshot
from .monitor import StatusMonitor
from .product import get_product_identity
from .service import RestartResult, ServiceProbe
from .state_reader import StateReader

logger = logging.getLogger(__name__)

DEFAULT_CONFIRM_INTERVAL = 0.1
DEFAULT_CONFIRM_WINDOW = 2.0


class ActionKind(str, Enum):
    """Privileged actions a user can request."""

    ENABLE_CONTAINMENT = "enable_containment"
    DISABLE_CONTAINMENT = "disable_containment"
    TOGGLE_MODE = "toggle_mode"


class ActionPhase(str, Enum):
    """Controller state machine phases."""

    IDLE = "idle"
    CONFIRMING = "confirming"
    INVOKING = "invoking"
    CONFIRMING_EFFECT = "confirming_effect"
    SETTLED = "settled"


class ActionOutcome(str, Enum):
    """Terminal result of one dispatched action."""

    CONFIRMED = "confirmed"  # Settled; effect observed
    UNCONFIRMED = "unconfirmed"  # Settled; failed, or effect not observed in time
    CANCELLED = "cancelled"  # User declined; nothing was done
    REJECTED = "rejected"  # Precondition not met; nothing was done


class MessageLevel(str, Enum):
    """How prominently a UI should present a message."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class PromptKind(str, Enum):
    ACTION = "action"
    RESTART_SERVICE = "restart_service"


@dataclass(frozen=True)
class ConfirmationPrompt:
    """A question the user must answer affirmatively to proceed."""

    action: ActionKind
    title: str
    body: str
    level: MessageLevel = MessageLevel.WARNING
    kind: PromptKind = PromptKind.ACTION


@dataclass(frozen=True)
class ActionResult:
    """What happened when an action was dispatched."""

    action: ActionKind
    outcome: ActionOutcome
    level: MessageLevel
    title: str
    message: str
    invoke_result: Optional[InvokeResult] = None
    new_mode: Optional[OperatingMode] = None
    restart: Optional[RestartResult] = None
    notes: Tuple[str, ...] = ()
    poll_attempts: int = 0
    elapsed_seconds: float = 0.0

    @property
    def confirmed(self) -> bool:
        return self.outcome == ActionOutcome.CONFIRMED

    @property
    def settled(self) -> bool:
        return self.outcome in (ActionOutcome.CONFIRMED, ActionOutcome.UNCONFIRMED)

    @property
    def command_failed(self) -> bool:
        """The command itself failed, as opposed to an unobserved effect."""
        return self.invoke_result is not None and not self.invoke_result.success


@dataclass
class EffectCheck:
    """Result of polling for a containment post-condition."""

    converged: bool
    attempts: int
    elapsed_seconds: float


PhaseListener = Callable[[ActionKind, ActionPhase], None]


def decline_all(prompt: ConfirmationPrompt) -> bool:
    """Default confirmation handler: nothing is ever affirmed."""
    return False


@dataclass
class ActionController:
    """
    Orchestrates confirm -> invoke -> confirm-effect for privileged actions.

    Attributes:
        reader: State file access (containment polling, mode read/write)
        invoker: Agent executable runner
        confirm: Answers confirmation prompts; only True proceeds
        probe: Service access for the optional post-toggle restart
        monitor: Status monitor refreshed after every settled action
        cycle_lock: Shared with the monitor so refreshes never overlap actions
        confirm_interval: Seconds between containment polls
        confirm_window: Total seconds to wait for the post-condition
    """

    reader: StateReader
    invoker: AgentInvoker
    confirm: Callable[[ConfirmationPrompt], bool] = decline_all
    probe: Optional[ServiceProbe] = None
    monitor: Optional[StatusMonitor] = None
    cycle_lock: Optional[threading.Lock] = None
    confirm_interval: float = DEFAULT_CONFIRM_INTERVAL
    confirm_window: float = DEFAULT_CONFIRM_WINDOW
    product_name: Optional[str] = None
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    _phase: ActionPhase = field(default=ActionPhase.IDLE, init=False)
    _active: Optional[ActionKind] = field(default=None, init=False)
    _listeners: List[PhaseListener] = field(default_factory=list, init=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False)
    last_result: Optional[ActionResult] = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.cycle_lock is None:
            self.cycle_lock = self.monitor.cycle_lock if self.monitor else threading.Lock()
        if self.product_name is None:
            self.product_name = get_product_identity().name

    @property
    def phase(self) -> ActionPhase:
        return self._phase

    @property
    def active_action(self) -> Optional[ActionKind]:
        return self._active

    def register_listener(self, listener: PhaseListener) -> None:
        """Subscribe to phase transitions."""
        self._listeners.append(listener)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def enable_containment(self, snapshot: Optional[Snapshot] = None) -> ActionResult:
        return self.dispatch(ActionKind.ENABLE_CONTAINMENT, snapshot)

    def disable_containment(self, snapshot: Optional[Snapshot] = None) -> ActionResult:
        return self.dispatch(ActionKind.DISABLE_CONTAINMENT, snapshot)

    def toggle_mode(self, snapshot: Optional[Snapshot] = None) -> ActionResult:
        return self.dispatch(ActionKind.TOGGLE_MODE, snapshot)

    def dispatch(self, action: ActionKind, snapshot: Optional[Snapshot] = None) -> ActionResult:
        """
        Run one action to completion.

        Args:
            action: Which action to run
            snapshot: Facts used for preconditions; defaults to the monitor's
                latest snapshot, or an empty snapshot without a monitor

        Returns:
            ActionResult describing the outcome

        Raises:
            ActionInProgressError: If another action is still running
        """
        with self._guard:
            if self._active is not None:
                raise ActionInProgressError(self._active.value, action.value)
            self._active = action

        if snapshot is None:
            snapshot = self.monitor.snapshot if self.monitor else Snapshot.empty()

        started = self.clock()
        try:
            with self.cycle_lock:
                if action == ActionKind.TOGGLE_MODE:
                    result = self._toggle_mode(snapshot)
                else:
                    result = self._set_containment(action, snapshot)

                if result.settled and self.monitor is not None:
                    self.monitor.refresh_locked()
        finally:
            self._set_phase(action, ActionPhase.IDLE)
            with self._guard:
                self._active = None

        result = _with_elapsed(result, self.clock() - started)
        self.last_result = result
        logger.info(f"Action {action.value} finished: {result.outcome.value}")
        return result

    # =========================================================================
    # Containment
    # =========================================================================

    def _set_containment(self, action: ActionKind, snapshot: Snapshot) -> ActionResult:
        enable = action == ActionKind.ENABLE_CONTAINMENT
        name = self.product_name

        if not self.invoker.is_available():
            return ActionResult(
                action,
                ActionOutcome.REJECTED,
                MessageLevel.ERROR,
                name,
                "Agent executable not found. Kill switch commands are unavailable.",
            )

        if not enable and snapshot.agent_running and not snapshot.containment_enabled:
            return ActionResult(
                action,
                ActionOutcome.REJECTED,
                MessageLevel.INFO,
                name,
                "Kill switch is already disabled.",
            )

        if enable:
            prompt = ConfirmationPrompt(
                action,
                f"{name} - Enable Kill Switch",
                "Enable kill switch now?\n\n"
                "This immediately blocks all inbound and outbound network traffic "
                "using the host firewall.\n\nProceed?",
                MessageLevel.WARNING,
            )
        else:
            prompt = ConfirmationPrompt(
                action,
                f"{name} - Restore Network",
                f"Restore network access by removing {name} kill switch firewall rules?",
                MessageLevel.INFO,
            )

        if not self._ask(prompt):
            return self._cancelled(action)

        self._set_phase(action, ActionPhase.INVOKING)
        args = KILLSWITCH_ON_ARGS if enable else KILLSWITCH_OFF_ARGS
        logger.info(f"Dispatching kill switch {'on' if enable else 'off'}")
        invoke_result = self.invoker.run(args)

        if not invoke_result.success:
            self._set_phase(action, ActionPhase.SETTLED)
            return ActionResult(
                action,
                ActionOutcome.UNCONFIRMED,
                MessageLevel.ERROR,
                f"{name} - Action Failed",
                invoke_result.user_message,
                invoke_result=invoke_result,
            )

        self._set_phase(action, ActionPhase.CONFIRMING_EFFECT)
        check = self.wait_for_containment(expected_enabled=enable)
        self._set_phase(action, ActionPhase.SETTLED)

        if not check.converged:
            logger.warning(
                f"Kill switch {'on' if enable else 'off'} not observed after "
                f"{check.elapsed_seconds:.2f}s ({check.attempts} polls)"
            )
            message = (
                "Kill switch command completed, but the client could not confirm lock state."
                if enable
                else "Restore command completed, but the client could not confirm "
                "that networking is restored."
            )
            return ActionResult(
                action,
                ActionOutcome.UNCONFIRMED,
                MessageLevel.WARNING,
                name,
                message + "\n\nOpen Status to verify or use recovery steps.",
                invoke_result=invoke_result,
                poll_attempts=check.attempts,
            )

        if enable:
            title = f"{name} - Network Locked"
            message = "Network locked. You can restore networking via the tray menu."
        else:
            title = f"{name} - Network Restored"
            message = "Networking should be restored."
        return ActionResult(
            action,
            ActionOutcome.CONFIRMED,
            MessageLevel.INFO,
            title,
            message,
            invoke_result=invoke_result,
            poll_attempts=check.attempts,
        )

    def wait_for_containment(self, expected_enabled: bool) -> EffectCheck:
        """
        Poll killswitch-state.toml until ``enabled`` equals the expectation.

        An unreadable or missing file counts as not enabled. Returns once
        the value matches or the confirmation window has elapsed.
        """
        started = self.clock()
        deadline = started + self.confirm_window
        attempts = 0

        while True:
            attempts += 1
            state = self.reader.read_containment()
            enabled = state.ok and state.value is not None and state.value.enabled
            if enabled == expected_enabled:
                return EffectCheck(True, attempts, self.clock() - started)

            remaining = deadline - self.clock()
            if remaining <= 0:
                return EffectCheck(False, attempts, self.clock() - started)
            self.sleep(min(self.confirm_interval, remaining))

    # =========================================================================
    # Mode Toggle
    # =========================================================================

    def _toggle_mode(self, snapshot: Snapshot) -> ActionResult:
        action = ActionKind.TOGGLE_MODE
        name = self.product_name

        if not snapshot.agent_running:
            return ActionResult(
                action,
                ActionOutcome.REJECTED,
                MessageLevel.INFO,
                name,
                f"The {name} agent is not running.",
            )

        # Unknown mode blocks the toggle even though it displays as Learning
        config = self.reader.read_config()
        current = config.value.mode if config.ok and config.value else OperatingMode.UNKNOWN
        if current == OperatingMode.UNKNOWN:
            return ActionResult(
                action,
                ActionOutcome.REJECTED,
                MessageLevel.ERROR,
                name,
                "Unable to read current mode from config.",
            )

        target = OperatingMode.STRICT if current == OperatingMode.LEARNING else OperatingMode.LEARNING
        if target == OperatingMode.STRICT:
            prompt = ConfirmationPrompt(
                action,
                f"{name} - Change Mode",
                "Switch to Strict mode?\n\n"
                "Strict mode may trigger automatic response for high-confidence RED "
                "incidents. This can include network lock (kill switch).\n\nProceed?",
                MessageLevel.WARNING,
            )
        else:
            prompt = ConfirmationPrompt(
                action,
                f"{name} - Change Mode",
                "Switch back to Learning mode?\n\n"
                "Learning mode monitors and records incidents, and does not "
                "auto-trigger the kill switch.\n\nProceed?",
                MessageLevel.INFO,
            )

        if not self._ask(prompt):
            return self._cancelled(action)

        self._set_phase(action, ActionPhase.INVOKING)
        written = self.reader.write_mode(target)
        if not written.success:
            self._set_phase(action, ActionPhase.SETTLED)
            return ActionResult(
                action,
                ActionOutcome.UNCONFIRMED,
                MessageLevel.ERROR,
                f"{name} - Action Failed",
                written.error or "Failed to update config.",
            )

        restart = self._offer_restart()
        self._set_phase(action, ActionPhase.SETTLED)

        notes: Tuple[str, ...] = ()
        if restart is not None and not restart.success:
            notes = (
                "Unable to restart the service automatically (may require "
                "administrator privileges).\n\nYou can restart it from the "
                "service manager or reboot.",
            )
        elif restart is None:
            notes = ("The new mode will apply on the next service restart or reboot.",)

        return ActionResult(
            action,
            ActionOutcome.CONFIRMED,
            MessageLevel.INFO,
            f"{name} - Mode Changed",
            f"Mode set to {target.display_name}.",
            new_mode=target,
            restart=restart,
            notes=notes,
        )

    def _offer_restart(self) -> Optional[RestartResult]:
        """Offer the service restart; None when not offered or declined."""
        if self.probe is None:
            return None

        prompt = ConfirmationPrompt(
            ActionKind.TOGGLE_MODE,
            f"{self.product_name} - Restart Service",
            f"Mode updated in config. Restart the {self.product_name} service to apply now?\n\n"
            "If you choose No, it will apply on next service restart/reboot.",
            MessageLevel.INFO,
            PromptKind.RESTART_SERVICE,
        )
        if not self._ask(prompt):
            return None
        return self.probe.restart()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ask(self, prompt: ConfirmationPrompt) -> bool:
        self._set_phase(prompt.action, ActionPhase.CONFIRMING)
        try:
            answer = self.confirm(prompt)
        except Exception as e:
            logger.error(f"Confirmation handler failed: {e}")
            return False
        # Only a literal True counts as affirmative
        return answer is True

    def _cancelled(self, action: ActionKind) -> ActionResult:
        logger.info(f"Action {action.value} declined by user")
        return ActionResult(
            action,
            ActionOutcome.CANCELLED,
            MessageLevel.INFO,
            self.product_name,
            "Cancelled. No changes were made.",
        )

    def _set_phase(self, action: ActionKind, phase: ActionPhase) -> None:
        if phase == self._phase:
            return
        self._phase = phase
        for listener in self._listeners:
            try:
                listener(action, phase)
            except Exception as e:
                logger.error(f"Phase listener error: {e}")


def _with_elapsed(result: ActionResult, elapsed: float) -> ActionResult:
    return replace(result, elapsed_seconds=elapsed)
