"""
Platform utilities for operators.
Handles platform detection, command-line tool invocation and keep-awake.
"""

import platform
import shutil
import subprocess
from typing import List, Optional

from config import config
from logger import logger

# Windows SetThreadExecutionState flags
ES_CONTINUOUS = 0x80000000
ES_SYSTEM_REQUIRED = 0x00000001
ES_DISPLAY_REQUIRED = 0x00000002


class CommandFailed(Exception):
    """A platform command exited non-zero, timed out or was not found."""


def current_platform() -> str:
    """Return 'windows', 'macos' or 'linux'."""
    system = platform.system()
    if system == "Windows":
        return "windows"
    if system == "Darwin":
        return "macos"
    return "linux"


def has_command(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(name) is not None


def run_command(
    args: List[str],
    timeout: Optional[float] = None,
    input_text: Optional[str] = None,
) -> str:
    """
    Run a command-line tool and return its stdout.

    Args:
        args: Program and arguments
        timeout: Seconds before the command is killed (defaults to timeouts.command)
        input_text: Optional text piped to stdin

    Returns:
        Captured stdout

    Raises:
        CommandFailed: if the tool is missing, times out or exits non-zero
    """
    if timeout is None:
        timeout = config.get_timeout("command", 15)

    logger.debug(f"[CMD] {' '.join(args)}")
    try:
        completed = subprocess.run(
            args,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except FileNotFoundError as e:
        raise CommandFailed(f"{args[0]} not found") from e
    except subprocess.TimeoutExpired as e:
        raise CommandFailed(f"{args[0]} timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()[:200]
        raise CommandFailed(f"{args[0]} exited with {e.returncode}: {stderr}") from e

    return completed.stdout


def run_powershell(script: str, timeout: Optional[float] = None) -> str:
    """Run a PowerShell snippet without a profile."""
    return run_command(
        ["powershell", "-NoProfile", "-NonInteractive", "-Command", script],
        timeout=timeout,
    )


def keep_system_awake() -> bool:
    """
    Prevents Windows from going to sleep or turning off the display
    while an agent drives the desktop.
    """
    if current_platform() != "windows":
        logger.debug("[AWAKE] Keep awake only supported on Windows")
        return False

    import ctypes

    try:
        ctypes.windll.kernel32.SetThreadExecutionState(
            ES_CONTINUOUS | ES_SYSTEM_REQUIRED | ES_DISPLAY_REQUIRED
        )
        logger.info("[AWAKE] System kept awake - sleep and screen timeout disabled")
        return True
    except OSError as e:
        logger.warning(f"[AWAKE] Could not set awake state: {e}")
        return False


def allow_system_sleep() -> bool:
    """Allows Windows to sleep normally again."""
    if current_platform() != "windows":
        return False

    import ctypes

    try:
        ctypes.windll.kernel32.SetThreadExecutionState(ES_CONTINUOUS)
        logger.info("[AWAKE] System can sleep normally now")
        return True
    except OSError as e:
        logger.warning(f"[AWAKE] Could not reset awake state: {e}")
        return False
