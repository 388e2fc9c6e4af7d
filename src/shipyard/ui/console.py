"""Console output formatting utilities for shipyard."""

from __future__ import annotations

import sys
from typing import Dict, Iterable, Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
                   and every external command before it runs
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, build: str, target: str, target_count: int) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Build file: {build}")
        print(f"Target: {target}")
        print(f"Plan size: {target_count}")

    def print_plan(self, names: Iterable[str]) -> None:
        """Print the resolved execution order."""
        self.print_header("PLAN")
        for idx, name in enumerate(names, start=1):
            print(f"  {idx}. {name}")

    def print_target_start(self, name: str, description: str = "") -> None:
        print(f"\nTARGET: {name}")
        if description:
            print(f"  {description}")

    def print_target_success(self, name: str, duration: Optional[float] = None) -> None:
        if duration is None:
            print("STATUS: succeeded")
        else:
            print(f"STATUS: succeeded ({duration:.1f}s)")

    def print_target_failure(
        self,
        name: str,
        reason: str,
        *,
        command: Optional[str] = None,
        output: str = "",
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message for a target.

        Args:
            name: Failing target name
            reason: Failure reason/error message
            command: Failing external command, if the failure came from one
            output: Captured output of the failing command
            hint: Optional hint for user
        """
        print(f"TARGET FAILED: {name}", file=sys.stderr)
        print(f"Reason: {reason}", file=sys.stderr)
        if command:
            print(f"Command: {command}", file=sys.stderr)
        if output:
            print("Output:", file=sys.stderr)
            for line in output.splitlines():
                print(f"  {line}", file=sys.stderr)
        if hint:
            print(f"Hint: {hint}", file=sys.stderr)

    def print_results(self, results: Dict[str, str]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for name, status in results.items():
            print(f"  {name}: {status.upper()}")

    def print_targets(self, rows: Iterable[tuple[str, str, list[str]]]) -> None:
        for name, description, deps in rows:
            line = f"  {name}"
            if deps:
                line += f" (needs: {', '.join(deps)})"
            if description:
                line += f" - {description}"
            print(line)

    def print_service_state(self, name: str, state: str) -> None:
        print(f"SERVICE: {name} -> {state}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_command(self, command: str) -> None:
        """Echo an external command (debug mode only)."""
        if self.debug:
            print(f"$ {command}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
