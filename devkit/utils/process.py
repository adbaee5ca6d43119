"""Async child-process execution."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from devkit.errors import SubprocessError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured outcome of a finished child process."""

    command: list
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


async def run_command(command: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
    """Run a command to completion and capture its output.

    A command that cannot be started (missing executable, bad cwd) is reported
    as exit code 127 with the OS error as stderr instead of raising.

    Args:
        command: Program and arguments
        cwd: Working directory

    Returns:
        CommandResult with decoded stdout/stderr
    """
    cmd = [str(part) for part in command]
    logger.debug(f"Running command: {' '.join(cmd)} (cwd={cwd})")
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Failed to start command {cmd[0]}: {e}")
        return CommandResult(command=cmd, exit_code=127, stderr=str(e))

    stdout, stderr = await process.communicate()
    result = CommandResult(
        command=cmd,
        exit_code=process.returncode if process.returncode is not None else 1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    logger.debug(f"Command exited with {result.exit_code}: {cmd[0]}")
    return result


async def check_command(command: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
    """Run a command and raise SubprocessError unless it exits with 0."""
    result = await run_command(command, cwd)
    if not result.ok:
        raise SubprocessError(result.command, result.exit_code, result.stderr, result.stdout)
    return result
