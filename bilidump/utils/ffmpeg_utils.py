"""
This module provides utility functions related to FFmpeg and other external tools.
It includes a robust function for running command-line processes with logging,
optional command recording, and a hard timeout.
"""

import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..domain.exceptions import ToolNotFoundException


class CommandTimeoutError(Exception):
    """Raised by `run_cmd` when the child process exceeds its timeout."""

    def __init__(self, display_cmd: str, timeout: float):
        super().__init__(f"Command timed out after {timeout}s: {display_cmd}")
        self.display_cmd = display_cmd
        self.timeout = timeout


def format_cmd(cmd_list: List[str]) -> str:
    """Returns a copy-pasteable rendering of an argument list for the current platform."""
    if os.name == "nt":
        return subprocess.list2cmdline(cmd_list)
    return shlex.join(cmd_list)


def run_cmd(
    cmd_list: List[str],
    show_cmd: bool = False,
    cmd_log_file_path: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """
    Executes an external command safely and captures its output.

    This is a wrapper around Python's `subprocess.run` that adds logging,
    optional recording of the executed command line, and a translation of the
    two launch-level failures into exceptions the pipeline understands. The
    exit status is *not* checked here; callers decide what a non-zero status
    means for them.

    Args:
        cmd_list: The command to execute as a list of arguments. No shell is involved.
        show_cmd: If True, the command will be logged at the DEBUG level before execution.
        cmd_log_file_path: If provided, the executed command string will be appended
                           to this file.
        timeout: Seconds to wait before the child is killed. None waits forever.

    Returns:
        The `subprocess.CompletedProcess` of the finished command.

    Raises:
        ValueError: If `cmd_list` is empty.
        ToolNotFoundException: If the executable cannot be found or started.
        CommandTimeoutError: If the command does not finish within `timeout`.
    """
    if not cmd_list:
        raise ValueError("run_cmd received an empty command list.")

    display_cmd_str = format_cmd(cmd_list)
    if show_cmd:
        logger.debug(f"Executing: {display_cmd_str}")

    if cmd_log_file_path:
        try:
            cmd_log_file_path.parent.mkdir(parents=True, exist_ok=True)
            with cmd_log_file_path.open("a", encoding="utf-8") as cmd_f:
                cmd_f.write(display_cmd_str + "\n")
        except OSError as e:
            logger.error(
                f"Failed to write command to log file {cmd_log_file_path}: {e}"
            )

    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            stdin=subprocess.DEVNULL,  # never let ffmpeg wait for an answer on stdin
            shell=False,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        logger.error(
            f"Command not found: '{cmd_list[0]}'. Ensure it's in your system's PATH or configured in config.user.yaml."
        )
        raise ToolNotFoundException(f"Executable not found: {cmd_list[0]}") from e
    except PermissionError as e:
        logger.error(f"Command '{cmd_list[0]}' is not executable: {e}")
        raise ToolNotFoundException(f"Executable cannot be started: {cmd_list[0]}") from e
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out after {timeout}s: {display_cmd_str}")
        raise CommandTimeoutError(display_cmd_str, timeout) from e

    if result.stdout and len(result.stdout) > 500:
        logger.trace(f"Command stdout (truncated): {result.stdout[:500]}...")
    elif result.stdout:
        logger.trace(f"Command stdout: {result.stdout}")

    if result.stderr and result.returncode != 0:
        logger.debug(
            f"Command stderr (error, rc={result.returncode}): {result.stderr}"
        )
    elif result.stderr:
        logger.trace(
            f"Command stderr (non-error, rc={result.returncode}): {result.stderr}"
        )

    return result
