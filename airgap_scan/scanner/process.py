"""Async subprocess execution with wall-clock timeouts."""

import asyncio
import logging
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of an external command."""

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def run_command(
    cmd: Sequence[str],
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command, killing it if it outlives its budget.

    A timeout only terminates this child process; the caller decides what
    the failure means. Cancellation also kills the child before re-raising.

    Args:
        cmd: Command and arguments
        timeout: Wall-clock limit in seconds (None for no limit)
        env: Full environment for the child (None inherits ours)

    Returns:
        CommandResult; a missing executable yields returncode 127
    """
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        return CommandResult(returncode=127, stdout="", stderr=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        await _terminate(process)
        logger.debug(f"Timed out after {timeout}s: {cmd[0]}")
        return CommandResult(
            returncode=-1,
            stdout="",
            stderr=f"Command timed out after {timeout:g}s",
            timed_out=True,
        )
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    return CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def find_missing_tools(tools: Sequence[str]) -> list[str]:
    """Return the tools from the list that are not on PATH."""
    return [tool for tool in tools if shutil.which(tool) is None]
