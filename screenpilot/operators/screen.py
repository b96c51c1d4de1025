"""
Screen Operator - captures the local screen.
Tries an ordered chain of capture strategies until one succeeds.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.system_utils import current_platform, has_command, run_command, run_powershell
from logger import logger

from ..errors import OperatorError
from ..models import Action, ActionType, Screenshot
from .base import BaseOperator, Capability


class CaptureStrategy(ABC):
    """One way of producing a screenshot."""

    name: str = ""

    def available(self) -> bool:
        return True

    @abstractmethod
    def capture(self) -> Screenshot:
        pass


class PyAutoGuiCapture(CaptureStrategy):
    """Native capture through pyautogui (Pillow ImageGrab underneath)."""

    name = "pyautogui"

    def __init__(self):
        self._gui = None

    def available(self) -> bool:
        try:
            import pyautogui
        except Exception as e:
            logger.debug(f"[SCREEN] pyautogui unavailable: {e}")
            return False
        self._gui = pyautogui
        return True

    def capture(self) -> Screenshot:
        image = self._gui.screenshot()
        return Screenshot.from_image(image)

    def size(self) -> Tuple[int, int]:
        width, height = self._gui.size()
        return width, height


class CommandCapture(CaptureStrategy):
    """
    Capture with a command-line tool that writes a PNG file.

    Args:
        name: Tool name (must be on PATH)
        build_args: Builds the argument list from the output path
    """

    def __init__(self, name: str, build_args: Callable[[str], List[str]]):
        self.name = name
        self.build_args = build_args

    def available(self) -> bool:
        return has_command(self.name)

    def capture(self) -> Screenshot:
        fd, path = tempfile.mkstemp(prefix="screenpilot_", suffix=".png")
        os.close(fd)
        try:
            run_command(self.build_args(path))
            data = Path(path).read_bytes()
            if not data:
                raise OperatorError(f"{self.name} produced an empty file", code="CAPTURE_FAILED")
            return Screenshot.from_bytes(data)
        finally:
            Path(path).unlink(missing_ok=True)


POWERSHELL_CAPTURE = """
Add-Type -AssemblyName System.Windows.Forms, System.Drawing
$b = [System.Windows.Forms.SystemInformation]::VirtualScreen
$bmp = New-Object System.Drawing.Bitmap $b.Width, $b.Height
$g = [System.Drawing.Graphics]::FromImage($bmp)
$g.CopyFromScreen($b.Left, $b.Top, 0, 0, $bmp.Size)
$bmp.Save('{path}', [System.Drawing.Imaging.ImageFormat]::Png)
$g.Dispose(); $bmp.Dispose()
"""


class PowerShellCapture(CaptureStrategy):
    name = "powershell"

    def available(self) -> bool:
        return current_platform() == "windows" and has_command("powershell")

    def capture(self) -> Screenshot:
        fd, path = tempfile.mkstemp(prefix="screenpilot_", suffix=".png")
        os.close(fd)
        try:
            run_powershell(POWERSHELL_CAPTURE.format(path=path.replace("'", "''")))
            return Screenshot.from_bytes(Path(path).read_bytes())
        finally:
            Path(path).unlink(missing_ok=True)


class HookCapture(CaptureStrategy):
    """Capture through a host-provided callable returning PNG/JPEG bytes (embedded mode)."""

    name = "embedded"

    def __init__(self, hook: Callable[[], bytes]):
        self.hook = hook

    def capture(self) -> Screenshot:
        return Screenshot.from_bytes(self.hook())


def command_strategies(platform_name: str) -> List[CaptureStrategy]:
    """Command-line capture tools for a platform, in preference order."""
    if platform_name == "macos":
        return [CommandCapture("screencapture", lambda p: ["screencapture", "-x", "-t", "png", p])]
    if platform_name == "windows":
        return [PowerShellCapture()]
    return [
        CommandCapture("gnome-screenshot", lambda p: ["gnome-screenshot", "-f", p]),
        CommandCapture("scrot", lambda p: ["scrot", "--overwrite", p]),
        CommandCapture("import", lambda p: ["import", "-window", "root", p]),
    ]


class ScreenOperator(BaseOperator):
    """
    Screenshot-only operator.

    Settings:
        capture_hook: Optional callable returning image bytes, tried last
        native: Set False to skip the pyautogui strategy
    """

    operator_name = "screen"

    def __init__(self, strategies: Optional[List[CaptureStrategy]] = None):
        self._explicit_strategies = strategies
        self._strategies: List[CaptureStrategy] = []
        self._last_size: Optional[Tuple[int, int]] = None
        super().__init__()

    def declare_capabilities(self) -> List[Capability]:
        return [Capability(action=ActionType.SCREENSHOT, description="Capture the full screen")]

    def on_initialize(self) -> None:
        if self._explicit_strategies is not None:
            chain = list(self._explicit_strategies)
        else:
            chain = []
            if self.settings.get("native", True):
                chain.append(PyAutoGuiCapture())
            chain.extend(command_strategies(current_platform()))
            hook = self.settings.get("capture_hook")
            if hook is not None:
                chain.append(HookCapture(hook))

        self._strategies = [s for s in chain if s.available()]
        if not self._strategies:
            raise OperatorError(
                "No screenshot method available on this machine",
                code="BACKEND_UNAVAILABLE",
                details={"tried": [s.name for s in chain]},
            )
        logger.info(f"[SCREEN] Capture chain: {[s.name for s in self._strategies]}")

    def on_cleanup(self) -> None:
        self._strategies = []

    def on_capture(self) -> Screenshot:
        failures = []
        for strategy in self._strategies:
            try:
                screenshot = strategy.capture()
            except Exception as e:
                logger.warning(f"[SCREEN] {strategy.name} capture failed: {e}")
                failures.append(f"{strategy.name}: {e}")
                continue
            self._last_size = (screenshot.width, screenshot.height)
            logger.info(f"[SCREEN] Captured {screenshot.width}x{screenshot.height} via {strategy.name}")
            return screenshot

        raise OperatorError(
            "All screenshot methods failed",
            code="CAPTURE_FAILED",
            details={"attempts": failures},
        )

    def perform(self, action: Action, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        screenshot = self.on_capture()
        return {"width": screenshot.width, "height": screenshot.height, "screenshot": screenshot}

    def screen_size(self) -> Optional[Tuple[int, int]]:
        return self._last_size
