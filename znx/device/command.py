"""External command execution.

All interaction with system tools (lsblk, mount, sgdisk, mkfs, zsync, ...)
goes through run_command so failures surface as CommandError with the
tool's stderr attached.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

from znx.errors import ZnxError

logger = logging.getLogger(__name__)

# Default timeout for short-lived system tools (seconds)
DEFAULT_TIMEOUT = 120


class CommandError(ZnxError):
    """Raised when an external command fails or cannot be started."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str],
        exit_code: int | None = None,
        stderr: str = "",
        error_code: str = "COMMAND_FAILED",
    ) -> None:
        super().__init__(message, error_code=error_code)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


def run_command(
    cmd: list[str],
    *,
    timeout: float | None = DEFAULT_TIMEOUT,
    cwd: Path | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run an external command and capture its output.

    Args:
        cmd: Command as list of strings.
        timeout: Timeout in seconds (None = no timeout).
        cwd: Optional working directory.
        check: Raise CommandError on a non-zero exit code.

    Returns:
        The completed process.

    Raises:
        CommandError: If the command fails to start, times out, or exits
            non-zero while check is True.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Running: %s", cmd_str)

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            f"{cmd[0]} timed out after {timeout}s",
            command=cmd,
            exit_code=-1,
            error_code="COMMAND_TIMEOUT",
        ) from e
    except OSError as e:
        raise CommandError(
            f"Failed to run {cmd[0]}: {e}",
            command=cmd,
            error_code="COMMAND_NOT_RUNNABLE",
        ) from e

    if check and result.returncode != 0:
        stderr = result.stderr.strip()
        logger.debug("%s exited with %d: %s", cmd[0], result.returncode, stderr)
        raise CommandError(
            f"{cmd[0]} failed with exit code {result.returncode}"
            + (f": {stderr}" if stderr else ""),
            command=cmd,
            exit_code=result.returncode,
            stderr=stderr,
        )

    return result


__all__ = ["DEFAULT_TIMEOUT", "CommandError", "run_command"]
