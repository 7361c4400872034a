"""Subprocess wrapper with logging and timeouts."""

from __future__ import annotations

import os
import shutil
import subprocess

from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)

MAX_LOGGED_ARG = 400


class CommandResult:
    """Result of a subprocess execution."""

    def __init__(self, returncode: int, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def success(self) -> bool:
        return self.returncode == 0


def run_command(
    cmd: list[str],
    check: bool = True,
    timeout: int | None = None,
    env: dict[str, str] | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """Run a system command, capturing its output.

    Args:
        cmd: Command and arguments as list
        check: Raise on non-zero exit code
        timeout: Command timeout in seconds
        env: Additional environment variables (merged with current env)
        cwd: Working directory

    Returns:
        CommandResult with returncode, stdout, stderr

    Raises:
        RuntimeError: If check=True and command fails
        TimeoutError: If command exceeds timeout
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    shown_cmd = _loggable(cmd)
    logger.debug(f"Running: {' '.join(shown_cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=full_env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        raise TimeoutError(f"Command timed out after {timeout}s: {' '.join(shown_cmd)}")
    except FileNotFoundError:
        raise RuntimeError(f"Command not found: {cmd[0]}")

    cmd_result = CommandResult(result.returncode, result.stdout, result.stderr)

    if check and not cmd_result.success:
        error_msg = cmd_result.stderr.strip() if cmd_result.stderr else f"exit code {cmd_result.returncode}"
        raise RuntimeError(f"Command failed ({shown_cmd[0]}): {error_msg}")

    return cmd_result


def check_tool_available(tool: str) -> bool:
    """Check if a system tool is available in PATH."""
    return shutil.which(tool) is not None


def _loggable(cmd: list[str]) -> list[str]:
    """Shorten long arguments, such as a whole -Command script, for logging."""
    return [arg if len(arg) <= MAX_LOGGED_ARG else arg[:MAX_LOGGED_ARG] + "..." for arg in cmd]
