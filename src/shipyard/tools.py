# tools.py
from __future__ import annotations

import os
import shlex
import shutil
import signal
import subprocess
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from .errors import ExternalToolFailure, ToolUnavailableError
from .model import ExternalProcessResult
from .ui.console import get_console


class ToolInvoker:
    """
    Uniform wrapper around external CLIs (docker, helm, terraform, sam, ...).

    Non-zero exits are returned, not raised, unless strict mode is on
    (per invoker or per call). A missing executable is always an error.
    """

    def __init__(
        self,
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: str | Path | None = None,
        strict: bool = False,
        dry_run: bool = False,
        interrupt_grace: float = 10.0,
    ):
        self.env: Dict[str, str] = {k: str(v) for k, v in (env or {}).items()}
        self.cwd = Path(cwd) if cwd is not None else None
        self.strict = strict
        self.dry_run = dry_run
        self.interrupt_grace = interrupt_grace

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def available(self, tool: str) -> bool:
        return shutil.which(tool) is not None

    def require(self, tool: str) -> None:
        if not self.available(tool):
            raise ToolUnavailableError(tool)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _build_env(self, env: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged = os.environ.copy()
        merged.update(self.env)
        if env:
            merged.update({k: str(v) for k, v in env.items()})
        return merged

    def _resolve_cwd(self, cwd: str | Path | None) -> Optional[Path]:
        if cwd is None:
            return self.cwd
        path = Path(cwd)
        if not path.is_absolute() and self.cwd is not None:
            path = self.cwd / path
        return path

    def run(
        self,
        args: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: str | Path | None = None,
        strict: Optional[bool] = None,
        input: Optional[str] = None,
    ) -> ExternalProcessResult:
        """
        Run a command (no shell) and capture its output.

        Returns:
            ExternalProcessResult (immutable)

        Raises:
            ToolUnavailableError: if the executable cannot be found
            ExternalToolFailure: on non-zero exit when strict
            FileNotFoundError: if the working directory does not exist
        """
        if not args:
            raise ValueError("Cannot run an empty command")
        argv = tuple(str(a) for a in args)
        console = get_console()
        console.print_command(shlex.join(argv))

        if self.dry_run:
            return ExternalProcessResult(args=argv, exit_code=0)

        workdir = self._resolve_cwd(cwd)
        if workdir is not None and not workdir.is_dir():
            raise FileNotFoundError(f"Working directory not found: {workdir}")

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(workdir) if workdir is not None else None,
                env=self._build_env(env),
                stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            raise ToolUnavailableError(argv[0]) from e

        stdout, stderr = self._communicate(proc, input)
        result = ExternalProcessResult(
            args=argv,
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.monotonic() - start,
        )
        console.print_debug(f"exit={result.exit_code} ({result.duration:.2f}s)")

        use_strict = self.strict if strict is None else strict
        if use_strict and not result.ok:
            raise ExternalToolFailure(result)
        return result

    def _communicate(self, proc: subprocess.Popen, input: Optional[str]) -> tuple[str, str]:
        try:
            return proc.communicate(input=input)
        except KeyboardInterrupt:
            # forward Ctrl-C, give the tool a chance to clean up, then propagate
            proc.send_signal(signal.SIGINT)
            try:
                proc.communicate(timeout=self.interrupt_grace)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.communicate()
            raise

    def check(self, args: Sequence[str], **kwargs) -> ExternalProcessResult:
        """Strict shorthand: raise ExternalToolFailure on non-zero exit."""
        kwargs["strict"] = True
        return self.run(args, **kwargs)
