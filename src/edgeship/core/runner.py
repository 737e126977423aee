"""External command execution.

Commands are always spawned from an explicit argument vector. No shell is
involved, so argument content can never be interpreted as shell syntax.
"""

import asyncio
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from edgeship.core.logging import StructuredLogger

logger = StructuredLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 15.0


@dataclass(frozen=True)
class CommandResult:
    """Uniform result of an external command."""

    success: bool
    output: str = ""
    error: str = ""
    exit_code: int = -1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "exit_code": self.exit_code,
        }


class Runner(Protocol):
    """Interface the pipeline uses to run external tools."""

    async def run(
        self,
        executable: str,
        args: Sequence[str] = (),
        cwd: str | Path | None = None,
        input_text: str | None = None,
        timeout: float | None = None,
        inherit_io: bool = False,
    ) -> CommandResult: ...

    async def which(self, executable: str, timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool: ...


class CommandRunner:
    """Spawn external processes and capture their output.

    Spawn failures (missing executable, permission denied) are returned as
    ``CommandResult(success=False, exit_code=-1)`` and never raised.
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        echo: bool = False,
        output: Any = None,
    ):
        """Initialize the runner.

        Args:
            env: Environment for child processes (inherits the parent's if None)
            echo: Replay captured output after each command
            output: OutputFormatter used when echoing
        """
        self._env = dict(env) if env is not None else None
        self._echo = echo
        self._output = output

    async def run(
        self,
        executable: str,
        args: Sequence[str] = (),
        cwd: str | Path | None = None,
        input_text: str | None = None,
        timeout: float | None = None,
        inherit_io: bool = False,
    ) -> CommandResult:
        """Run one command.

        Args:
            executable: Program name or path
            args: Arguments, each passed to the program as one literal token
            cwd: Working directory
            input_text: Written to the child's stdin, which is then closed
            timeout: Kill the child after this many seconds
            inherit_io: Share the parent's stdio instead of capturing (ignored
                when ``input_text`` is given)

        Returns:
            CommandResult
        """
        argv = [executable, *[str(a) for a in args]]
        capture = input_text is not None or not inherit_io
        logger.debug("Running command", argv=" ".join(argv), cwd=cwd or os.getcwd())

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                env=self._env,
                stdin=asyncio.subprocess.PIPE if input_text is not None else None,
                stdout=asyncio.subprocess.PIPE if capture else None,
                stderr=asyncio.subprocess.PIPE if capture else None,
            )
        except OSError as e:
            logger.debug("Command could not be started", executable=executable, error=str(e))
            return CommandResult(success=False, error=str(e), exit_code=-1)

        stdin_bytes = input_text.encode() if input_text is not None else None
        try:
            if timeout is not None:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(stdin_bytes), timeout=timeout
                )
            else:
                stdout, stderr = await process.communicate(stdin_bytes)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            message = f"Command timed out after {timeout}s: {executable}"
            logger.warning(message)
            return CommandResult(success=False, error=message, exit_code=-1)

        result = CommandResult(
            success=process.returncode == 0,
            output=stdout.decode(errors="replace") if stdout else "",
            error=stderr.decode(errors="replace") if stderr else "",
            exit_code=process.returncode if process.returncode is not None else -1,
        )

        if self._echo and self._output is not None:
            if result.output:
                self._output.print(result.output.rstrip())
            if result.error:
                self._output.print(f"[dim]{result.error.rstrip()}[/dim]")

        logger.debug("Command finished", executable=executable, exit_code=result.exit_code)
        return result

    async def which(self, executable: str, timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool:
        """Check that ``executable`` is installed by running ``--version``."""
        result = await self.run(executable, ["--version"], timeout=timeout)
        return result.success
