# actions.py
from __future__ import annotations

import os
import re
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from .errors import InfrastructureError

# Environment emission contract: an action publishes a variable for later
# steps of the same job by printing a line
#   ##vso[task.setvariable variable=NAME;]VALUE
# Anything else in the output is opaque to the orchestrator.
_EMISSION = re.compile(r"##vso\[task\.setvariable variable=([^;\]]+)(?:;[^\]]*)?\](.*)$")


def parse_emissions(output: str) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for line in output.splitlines():
        m = _EMISSION.search(line)
        if m:
            env[m.group(1).strip()] = m.group(2).rstrip("\r")
    return env


@dataclass(frozen=True)
class ActionResult:
    exit_code: int
    env: Dict[str, str] = field(default_factory=dict)
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Execution(Protocol):
    """An in-flight action."""

    def wait(self, timeout: float) -> Optional[ActionResult]:
        """Return the result, or None if still running after `timeout` seconds."""
        ...

    def kill(self) -> str:
        """Stop the action and return whatever output it produced."""
        ...


class Action(Protocol):
    def launch(self, env: Mapping[str, str], workdir: Path) -> Execution:
        ...

    def describe(self) -> str:
        ...


# ---------------------------------------------------------------------
# Shell commands
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ShellAction:
    """Run a command string through the platform shell."""
    command: str
    cwd: Optional[str] = None

    def describe(self) -> str:
        return self.command

    def launch(self, env: Mapping[str, str], workdir: Path) -> "ShellExecution":
        cwd = (workdir / (self.cwd or ".")).resolve()
        if not cwd.exists():
            raise InfrastructureError(f"cwd not found: {cwd}")

        full_env = os.environ.copy()
        full_env.update(env)

        kwargs: Dict[str, Any] = {}
        if os.name == "posix":
            # own process group so a kill reaches the whole command tree
            kwargs["start_new_session"] = True

        try:
            proc = subprocess.Popen(
                self.command,
                shell=True,
                cwd=str(cwd),
                env=full_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                **kwargs,
            )
        except OSError as e:
            raise InfrastructureError(f"could not start shell: {e}") from e
        return ShellExecution(proc)


class ShellExecution:
    def __init__(self, proc: subprocess.Popen) -> None:
        self.proc = proc

    def wait(self, timeout: float) -> Optional[ActionResult]:
        try:
            out, _ = self.proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        out = out or ""
        return ActionResult(exit_code=self.proc.returncode, env=parse_emissions(out), output=out)

    def kill(self) -> str:
        try:
            if os.name == "posix":
                os.killpg(self.proc.pid, signal.SIGKILL)
            else:
                self.proc.kill()
        except ProcessLookupError:
            pass
        out, _ = self.proc.communicate()
        return out or ""


# ---------------------------------------------------------------------
# In-process callables
# ---------------------------------------------------------------------

class ActionContext:
    """What a callable action gets to see: the job env and a cancel flag."""

    def __init__(self, env: Mapping[str, str]) -> None:
        self.env = MappingProxyType(dict(env))
        self.cancelled = threading.Event()
        self.published: Dict[str, str] = {}
        self._lines: list[str] = []

    def publish(self, key: str, value: Any) -> None:
        self.published[key] = str(value)

    def log(self, line: str) -> None:
        self._lines.append(line)

    @property
    def output(self) -> str:
        return "\n".join(self._lines)


@dataclass(frozen=True)
class CallableAction:
    """
    Run `fn(ctx)` in a worker thread.

    fn may return an ActionResult, an int exit code, a bool, or None (success).
    A thread cannot be killed: on timeout/cancel the context's `cancelled`
    event is set and the runner stops waiting.
    """
    fn: Callable[[ActionContext], Any]
    label: str = ""

    def describe(self) -> str:
        return self.label or getattr(self.fn, "__name__", repr(self.fn))

    def launch(self, env: Mapping[str, str], workdir: Path) -> "CallableExecution":
        return CallableExecution(self.fn, ActionContext(env))


class CallableExecution:
    def __init__(self, fn: Callable[[ActionContext], Any], ctx: ActionContext) -> None:
        self.ctx = ctx
        self._result: Any = None
        self._exc: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._target, args=(fn,), daemon=True)
        self._thread.start()

    def _target(self, fn: Callable[[ActionContext], Any]) -> None:
        try:
            self._result = fn(self.ctx)
        except SystemExit as e:
            # sys.exit() inside an action is its exit status, not a crash
            if e.code is None:
                self._result = 0
            elif isinstance(e.code, int):
                self._result = e.code
            else:
                self._result = 1
        except BaseException as e:
            self._exc = e

    def wait(self, timeout: float) -> Optional[ActionResult]:
        self._thread.join(timeout)
        if self._thread.is_alive():
            return None
        if self._exc is not None:
            raise InfrastructureError(f"action raised {type(self._exc).__name__}: {self._exc}") from self._exc
        return self._normalize(self._result)

    def _normalize(self, value: Any) -> ActionResult:
        if isinstance(value, ActionResult):
            env = dict(self.ctx.published)
            env.update(value.env)
            return ActionResult(value.exit_code, env, value.output or self.ctx.output)
        if value is None or value is True:
            code = 0
        elif value is False:
            code = 1
        else:
            code = int(value)
        return ActionResult(code, dict(self.ctx.published), self.ctx.output)

    def kill(self) -> str:
        self.ctx.cancelled.set()
        return self.ctx.output
