"""
Core module - run control and platform utilities shared by agents and operators.
"""

from .control import RunControl, StopRequested, stoppable_sleep
from .system_utils import (
    CommandFailed,
    allow_system_sleep,
    current_platform,
    has_command,
    keep_system_awake,
    run_command,
    run_powershell,
)

__all__ = [
    "RunControl",
    "StopRequested",
    "stoppable_sleep",
    "CommandFailed",
    "current_platform",
    "has_command",
    "run_command",
    "run_powershell",
    "keep_system_awake",
    "allow_system_sleep",
]
