"""Command-line front end for the AI Defender tray client.

Provides console equivalents of the tray menu:
- Status and last-incident views
- Kill switch enable / network restore with confirmation
- Learning / Strict mode toggle
- A watch loop that prints the status line whenever it changes
"""

import argparse
import logging
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional

from .actions import ActionKind, ActionOutcome, ActionResult, ConfirmationPrompt, MessageLevel
from .client import TrayClient, create_tray_client
from .config import ClientConfig
from .exceptions import InstanceAlreadyRunningError
from .instance import SingleInstanceLock
from .models import Snapshot
from .product import get_product_identity
from .status import PresentedStatus

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNCONFIRMED = 2

ACTION_COMMANDS = {
    "lock": ActionKind.ENABLE_CONTAINMENT,
    "restore": ActionKind.DISABLE_CONTAINMENT,
    "mode": ActionKind.TOGGLE_MODE,
}


def make_console_confirm(
    assume_yes: bool,
    reader: Optional[Callable[[str], str]] = None,
) -> Callable[[ConfirmationPrompt], bool]:
    """Build a confirmation handler that asks on the console (via input() by default)."""

    def confirm(prompt: ConfirmationPrompt) -> bool:
        print(f"\n[{prompt.title}]")
        print(prompt.body)
        if assume_yes:
            print("(confirmed by --yes)")
            return True
        try:
            answer = (reader or input)("Type 'yes' to proceed [y/N]: ").strip().lower()
        except EOFError:
            return False
        return answer in ("y", "yes")

    return confirm


def positive_seconds(value: str) -> float:
    """argparse type for a strictly positive number of seconds."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
    if not seconds > 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero: {value!r}")
    return seconds


def exit_code_for(result: ActionResult) -> int:
    """Map an action result to a process exit code."""
    if result.level == MessageLevel.ERROR:
        return EXIT_FAILED
    if result.outcome == ActionOutcome.UNCONFIRMED:
        return EXIT_UNCONFIRMED
    return EXIT_OK


class TrayCLI:
    """Command-line interface for the tray client."""

    def __init__(self, client_factory: Callable[..., TrayClient] = create_tray_client):
        """Initialize CLI.

        Args:
            client_factory: Builds the TrayClient; replaced in tests
        """
        self.parser = self._create_parser()
        self._client_factory = client_factory
        self._stop_event = threading.Event()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        identity = get_product_identity()
        parser = argparse.ArgumentParser(
            prog="ai-defender-tray",
            description=f"{identity.name} tray client",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Show full status
  ai-defender-tray status

  # Lock the network now, without prompting
  ai-defender-tray --yes lock

  # Follow the status line
  ai-defender-tray watch --interval 4
""",
        )

        parser.add_argument(
            "--data-dir",
            type=Path,
            default=None,
            help="Agent data directory (default: platform location)",
        )
        parser.add_argument(
            "--yes",
            "-y",
            action="store_true",
            help="Answer yes to every confirmation",
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Minimal output",
        )
        parser.add_argument(
            "--verbose",
            "-v",
            action="store_true",
            help="Verbose output",
        )
        parser.add_argument(
            "--version",
            action="version",
            version=f"{identity.name} tray client {identity.version}",
        )

        commands = parser.add_subparsers(dest="command", required=True)
        commands.add_parser("status", help="Show agent status")
        commands.add_parser("incident", help="Show the most recent incident")
        commands.add_parser("lock", help="Enable the kill switch (block all network traffic)")
        commands.add_parser("restore", help="Disable the kill switch and restore networking")
        commands.add_parser("mode", help="Toggle between Learning and Strict mode")
        commands.add_parser("logs", help="Print the agent logs folder")

        watch = commands.add_parser("watch", help="Print the status line whenever it changes")
        watch.add_argument(
            "--interval",
            type=positive_seconds,
            default=None,
            help="Seconds between refreshes (default: 4)",
        )

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI.

        Args:
            args: Command-line arguments

        Returns:
            Exit code (0 for success)
        """
        parsed = self.parser.parse_args(args)

        log_level = logging.WARNING if parsed.quiet else (
            logging.DEBUG if parsed.verbose else logging.INFO
        )
        logging.basicConfig(
            level=log_level,
            format="%(levelname)s: %(message)s",
        )

        config = ClientConfig.from_env()
        if parsed.data_dir is not None:
            config = replace(config, data_dir=parsed.data_dir)
        if parsed.command == "watch" and parsed.interval:
            config = replace(config, refresh_interval_seconds=parsed.interval)

        client = self._client_factory(config=config, confirm=make_console_confirm(parsed.yes))

        if parsed.command == "status":
            print(client.status_report())
            return EXIT_OK
        if parsed.command == "incident":
            print(client.incident_report())
            return EXIT_OK
        if parsed.command == "logs":
            return self._show_logs(client)

        # Everything below changes state or runs continuously: one instance only
        try:
            with SingleInstanceLock():
                if parsed.command == "watch":
                    return self._watch(client)
                return self._run_action(client, ACTION_COMMANDS[parsed.command])
        except InstanceAlreadyRunningError as e:
            logger.info(f"Exiting: {e}")
            return EXIT_OK

    def stop(self) -> None:
        """Stop a running watch loop."""
        self._stop_event.set()

    def _run_action(self, client: TrayClient, action: ActionKind) -> int:
        client.refresh()
        result = client.run_action(action)

        print(f"\n[{result.title}]")
        print(result.message)
        for note in result.notes:
            print()
            print(note)
        if result.outcome == ActionOutcome.UNCONFIRMED and not result.command_failed:
            print("\nWARNING: the command ran, but its effect was not confirmed.")

        print(f"\nStatus: {client.monitor.status_text}")
        return exit_code_for(result)

    def _watch(self, client: TrayClient) -> int:
        last: List[str] = []

        def show(snapshot: Snapshot, status: PresentedStatus) -> None:
            text = status.display_text(client.config.status_text_limit)
            if not last or last[-1] != text:
                last.append(text)
                print(f"[{status.badge.value}] {text}", flush=True)

        client.monitor.register_callback(show)
        try:
            client.monitor.run(self._stop_event)
        except KeyboardInterrupt:
            print()
        return EXIT_OK

    def _show_logs(self, client: TrayClient) -> int:
        logs_dir = client.paths.logs_dir
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Unable to open logs folder:\n{logs_dir}\n{e}")
            return EXIT_FAILED
        print(logs_dir)
        return EXIT_OK


def run_cli(args: Optional[List[str]] = None) -> int:
    """Run the tray client CLI.

    Args:
        args: Command-line arguments

    Returns:
        Exit code
    """
    cli = TrayCLI()
    return cli.run(args)


def main():
    """Main entry point."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
