"""
Input Operator - mouse and keyboard control of the local machine.

Every capability is served by the first available backend of an ordered
chain (pyautogui native binding, then platform command-line tools). The
choice is made once at initialize and cached per capability.
"""

from abc import ABC
from typing import Any, Dict, List, Optional, Tuple

from core.system_utils import current_platform, has_command, run_command, run_powershell
from logger import logger

from ..errors import OperatorError
from ..models import Action, ActionType
from .base import BaseOperator, Capability, ParameterSpec, number, string

CLICK_TYPES = (ActionType.CLICK, ActionType.DOUBLE_CLICK, ActionType.RIGHT_CLICK)
BUTTONS = ["left", "right", "middle"]
DIRECTIONS = ["up", "down", "left", "right"]

# Map common key names
KEY_ALIASES = {
    "return": "enter",
    "esc": "escape",
    "del": "delete",
    "control": "ctrl",
    "cmd": "command",
    "meta": "command",
    "option": "alt",
    "windows": "win",
    "page_up": "pageup",
    "page_down": "pagedown",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
}

MODIFIERS = {"ctrl", "shift", "alt", "command", "win"}


def normalize_key(key: str) -> str:
    key = key.strip().lower()
    return KEY_ALIASES.get(key, key)


def split_key_combo(key: str, modifiers: Optional[List[str]] = None) -> Tuple[List[str], str]:
    """
    Split 'ctrl+shift+t' into (['ctrl', 'shift'], 't'), merging explicit modifiers.
    """
    parts = [normalize_key(p) for p in key.split("+") if p.strip()] if key.strip() != "+" else ["+"]
    if not parts:
        raise ValueError("Key must not be empty")
    if isinstance(modifiers, str):
        modifiers = [modifiers]
    mods = [normalize_key(m) for m in (modifiers or [])]
    for part in parts[:-1]:
        if part not in mods:
            mods.append(part)
    return mods, parts[-1]


class InputBackend(ABC):
    """
    One way of injecting input. Backends declare which action types they
    serve; unsupported methods raise NotImplementedError.
    """

    name: str = ""
    supported: frozenset = frozenset()

    def available(self) -> bool:
        return False

    def click(self, x: int, y: int, button: str = "left", clicks: int = 1) -> None:
        raise NotImplementedError

    def drag(self, from_x: int, from_y: int, to_x: int, to_y: int) -> None:
        raise NotImplementedError

    def type_text(self, text: str) -> None:
        raise NotImplementedError

    def press_key(self, key: str, modifiers: List[str]) -> None:
        raise NotImplementedError

    def scroll(self, x: Optional[int], y: Optional[int], direction: str, clicks: int) -> None:
        raise NotImplementedError


class PyAutoGuiBackend(InputBackend):
    """Native binding through pyautogui."""

    name = "pyautogui"
    supported = frozenset(CLICK_TYPES + (ActionType.DRAG, ActionType.TYPE, ActionType.KEY, ActionType.SCROLL))

    def __init__(self, move_duration: float = 0.2, type_interval: float = 0.02):
        self.move_duration = move_duration
        self.type_interval = type_interval
        self._gui = None

    def available(self) -> bool:
        try:
            import pyautogui
        except Exception as e:  # no display, missing Xlib, ...
            logger.debug(f"[INPUT] pyautogui unavailable: {e}")
            return False
        pyautogui.FAILSAFE = False
        self._gui = pyautogui
        return True

    def click(self, x, y, button="left", clicks=1):
        self._gui.moveTo(x, y, duration=self.move_duration)
        self._gui.click(x, y, clicks=clicks, interval=0.1, button=button)

    def drag(self, from_x, from_y, to_x, to_y):
        # Move to start, press, drag to end, release
        self._gui.moveTo(from_x, from_y, duration=self.move_duration)
        self._gui.mouseDown()
        self._gui.moveTo(to_x, to_y, duration=self.move_duration * 2)
        self._gui.mouseUp()

    def type_text(self, text):
        self._gui.write(text, interval=self.type_interval)

    def press_key(self, key, modifiers):
        if modifiers:
            self._gui.hotkey(*modifiers, key)
        else:
            self._gui.press(key)

    def scroll(self, x, y, direction, clicks):
        if x is not None and y is not None:
            self._gui.moveTo(x, y, duration=self.move_duration)
        amount = clicks if direction in ("up", "left") else -clicks
        if direction in ("left", "right"):
            self._gui.hscroll(amount)
        else:
            self._gui.scroll(amount)


class DirectInputBackend(InputBackend):
    """
    Windows DirectInput (pydirectinput) with clipboard typing (pyperclip).
    Works in VDI/Citrix sessions where synthetic virtual-key events are ignored.
    """

    name = "pydirectinput"
    supported = frozenset(CLICK_TYPES + (ActionType.TYPE, ActionType.KEY))

    def __init__(self):
        self._di = None
        self._clipboard = None

    def available(self) -> bool:
        if current_platform() != "windows":
            return False
        try:
            import pydirectinput
            import pyperclip
        except Exception as e:
            logger.debug(f"[INPUT] pydirectinput unavailable: {e}")
            return False
        self._di = pydirectinput
        self._clipboard = pyperclip
        return True

    def click(self, x, y, button="left", clicks=1):
        self._di.click(x, y, clicks=clicks, interval=0.1, button=button)

    def type_text(self, text):
        self._clipboard.copy(text)
        self._di.keyDown("ctrl")
        self._di.press("v")
        self._di.keyUp("ctrl")

    def press_key(self, key, modifiers):
        for modifier in modifiers:
            self._di.keyDown(modifier)
        try:
            self._di.press(key)
        finally:
            for modifier in reversed(modifiers):
                self._di.keyUp(modifier)


XDOTOOL_KEYS = {
    "enter": "Return",
    "escape": "Escape",
    "tab": "Tab",
    "backspace": "BackSpace",
    "delete": "Delete",
    "space": "space",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "home": "Home",
    "end": "End",
    "pageup": "Prior",
    "pagedown": "Next",
    "command": "super",
    "win": "super",
}

XDOTOOL_BUTTONS = {"left": "1", "middle": "2", "right": "3"}
XDOTOOL_WHEEL = {"up": "4", "down": "5", "left": "6", "right": "7"}


class XdotoolBackend(InputBackend):
    """Linux X11 command-line fallback."""

    name = "xdotool"
    supported = frozenset(CLICK_TYPES + (ActionType.DRAG, ActionType.TYPE, ActionType.KEY, ActionType.SCROLL))

    def available(self) -> bool:
        return current_platform() == "linux" and has_command("xdotool")

    def click(self, x, y, button="left", clicks=1):
        run_command(
            ["xdotool", "mousemove", str(x), str(y), "click", "--repeat", str(clicks),
             XDOTOOL_BUTTONS.get(button, "1")]
        )

    def drag(self, from_x, from_y, to_x, to_y):
        run_command(
            ["xdotool", "mousemove", str(from_x), str(from_y), "mousedown", "1",
             "mousemove", str(to_x), str(to_y), "mouseup", "1"]
        )

    def type_text(self, text):
        run_command(["xdotool", "type", "--delay", "20", "--", text])

    def press_key(self, key, modifiers):
        combo = "+".join(XDOTOOL_KEYS.get(k, k) for k in modifiers + [key])
        run_command(["xdotool", "key", combo])

    def scroll(self, x, y, direction, clicks):
        args = ["xdotool"]
        if x is not None and y is not None:
            args += ["mousemove", str(x), str(y)]
        args += ["click", "--repeat", str(clicks), XDOTOOL_WHEEL[direction]]
        run_command(args)


APPLESCRIPT_KEY_CODES = {
    "enter": 36,
    "tab": 48,
    "space": 49,
    "backspace": 51,
    "escape": 53,
    "delete": 117,
    "left": 123,
    "right": 124,
    "down": 125,
    "up": 126,
}

APPLESCRIPT_MODIFIERS = {
    "ctrl": "control down",
    "shift": "shift down",
    "alt": "option down",
    "command": "command down",
}


def _applescript_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class AppleScriptBackend(InputBackend):
    """macOS keyboard fallback through osascript / System Events."""

    name = "osascript"
    supported = frozenset((ActionType.TYPE, ActionType.KEY))

    def available(self) -> bool:
        return current_platform() == "macos" and has_command("osascript")

    def type_text(self, text):
        script = f'tell application "System Events" to keystroke {_applescript_string(text)}'
        run_command(["osascript", "-e", script])

    def press_key(self, key, modifiers):
        mods = [APPLESCRIPT_MODIFIERS[m] for m in modifiers if m in APPLESCRIPT_MODIFIERS]
        using = f" using {{{', '.join(mods)}}}" if mods else ""
        if key in APPLESCRIPT_KEY_CODES:
            stroke = f"key code {APPLESCRIPT_KEY_CODES[key]}"
        else:
            stroke = f"keystroke {_applescript_string(key)}"
        run_command(["osascript", "-e", f'tell application "System Events" to {stroke}{using}'])


class CliclickBackend(InputBackend):
    """macOS mouse fallback through the cliclick tool."""

    name = "cliclick"
    supported = frozenset(CLICK_TYPES + (ActionType.DRAG,))

    def available(self) -> bool:
        return current_platform() == "macos" and has_command("cliclick")

    def click(self, x, y, button="left", clicks=1):
        command = {"left": "c", "right": "rc"}.get(button, "c")
        if button == "left" and clicks == 2:
            command = "dc"
        run_command(["cliclick", f"{command}:{x},{y}"])

    def drag(self, from_x, from_y, to_x, to_y):
        run_command(["cliclick", f"dd:{from_x},{from_y}", f"du:{to_x},{to_y}"])


POWERSHELL_MOUSE = """
Add-Type @'
using System;
using System.Runtime.InteropServices;
public class SPMouse {{
  [DllImport("user32.dll")] public static extern bool SetCursorPos(int x, int y);
  [DllImport("user32.dll")] public static extern void mouse_event(int f, int x, int y, int d, int e);
}}
'@
[SPMouse]::SetCursorPos({x}, {y}) | Out-Null
for ($i = 0; $i -lt {clicks}; $i++) {{
  [SPMouse]::mouse_event({down}, 0, 0, 0, 0); [SPMouse]::mouse_event({up}, 0, 0, 0, 0)
}}
"""

# mouse_event flags (down, up)
POWERSHELL_BUTTON_FLAGS = {"left": (0x02, 0x04), "right": (0x08, 0x10), "middle": (0x20, 0x40)}

SENDKEYS_KEYS = {
    "enter": "{ENTER}",
    "escape": "{ESC}",
    "tab": "{TAB}",
    "backspace": "{BACKSPACE}",
    "delete": "{DELETE}",
    "up": "{UP}",
    "down": "{DOWN}",
    "left": "{LEFT}",
    "right": "{RIGHT}",
    "home": "{HOME}",
    "end": "{END}",
    "pageup": "{PGUP}",
    "pagedown": "{PGDN}",
    "space": " ",
}
SENDKEYS_MODIFIERS = {"ctrl": "^", "shift": "+", "alt": "%"}


def _sendkeys_escape(text: str) -> str:
    return "".join(f"{{{c}}}" if c in "+^%~(){}[]" else c for c in text)


class PowerShellBackend(InputBackend):
    """Windows fallback using user32 mouse_event and SendKeys."""

    name = "powershell"
    supported = frozenset(CLICK_TYPES + (ActionType.TYPE, ActionType.KEY))

    def available(self) -> bool:
        return current_platform() == "windows" and has_command("powershell")

    def click(self, x, y, button="left", clicks=1):
        down, up = POWERSHELL_BUTTON_FLAGS.get(button, POWERSHELL_BUTTON_FLAGS["left"])
        run_powershell(POWERSHELL_MOUSE.format(x=int(x), y=int(y), clicks=int(clicks), down=down, up=up))

    def _send_keys(self, keys: str) -> None:
        escaped = keys.replace("'", "''")
        run_powershell(
            "Add-Type -AssemblyName System.Windows.Forms; "
            f"[System.Windows.Forms.SendKeys]::SendWait('{escaped}')"
        )

    def type_text(self, text):
        self._send_keys(_sendkeys_escape(text))

    def press_key(self, key, modifiers):
        prefix = "".join(SENDKEYS_MODIFIERS.get(m, "") for m in modifiers)
        if key in SENDKEYS_KEYS:
            stroke = SENDKEYS_KEYS[key]
        elif key.startswith("f") and key[1:].isdigit():
            stroke = f"{{{key.upper()}}}"
        else:
            stroke = _sendkeys_escape(key)
        self._send_keys(prefix + stroke)


BACKENDS = {
    backend.name: backend
    for backend in (
        PyAutoGuiBackend,
        DirectInputBackend,
        XdotoolBackend,
        AppleScriptBackend,
        CliclickBackend,
        PowerShellBackend,
    )
}

DEFAULT_CHAINS = {
    "windows": ["pyautogui", "pydirectinput", "powershell"],
    "macos": ["pyautogui", "cliclick", "osascript"],
    "linux": ["pyautogui", "xdotool"],
}


class InputOperator(BaseOperator):
    """
    Mouse and keyboard operator.

    Settings:
        backends: Ordered backend names overriding the platform default chain
    """

    operator_name = "input"

    def __init__(self, backends: Optional[List[InputBackend]] = None):
        self._backend_chain = backends
        self._strategies: Dict[ActionType, InputBackend] = {}
        super().__init__()

    def declare_capabilities(self) -> List[Capability]:
        button = string(default="left", choices=BUTTONS)
        point = {"x": number(required=True), "y": number(required=True)}
        return [
            Capability(action=ActionType.CLICK, description="Click at screen coordinates",
                       parameters={**point, "button": button}),
            Capability(action=ActionType.DOUBLE_CLICK, description="Double-click at screen coordinates",
                       parameters=dict(point)),
            Capability(action=ActionType.RIGHT_CLICK, description="Right-click at screen coordinates",
                       parameters=dict(point)),
            Capability(action=ActionType.DRAG, description="Drag between two points",
                       parameters={"from_x": number(required=True), "from_y": number(required=True),
                                   "to_x": number(required=True), "to_y": number(required=True)}),
            Capability(action=ActionType.TYPE, description="Type text",
                       parameters={"text": string(required=True)}),
            Capability(action=ActionType.KEY, description="Press a key or key combination",
                       parameters={"key": string(required=True),
                                   "modifiers": ParameterSpec(type="array", default=[])}),
            Capability(action=ActionType.SCROLL, description="Scroll the wheel",
                       parameters={"direction": string(default="down", choices=DIRECTIONS),
                                   "clicks": number(default=3), "x": number(), "y": number()}),
            Capability(action=ActionType.WAIT, description="Wait for a duration in milliseconds",
                       parameters={"duration": number(default=1000)}),
        ]

    def on_initialize(self) -> None:
        chain = self._backend_chain
        if chain is None:
            names = self.settings.get("backends") or DEFAULT_CHAINS[current_platform()]
            unknown = [n for n in names if n not in BACKENDS]
            if unknown:
                raise OperatorError(f"Unknown input backends: {unknown}", code="INVALID_SETTINGS")
            chain = [BACKENDS[n]() for n in names]

        available = [backend for backend in chain if backend.available()]
        self._strategies = {}
        for capability in self.capabilities:
            if capability.action == ActionType.WAIT:
                continue
            for backend in available:
                if capability.action in backend.supported:
                    self._strategies[capability.action] = backend
                    break

        if not self._strategies:
            raise OperatorError(
                "No input backend available on this machine",
                code="BACKEND_UNAVAILABLE",
                details={"tried": [b.name for b in chain]},
            )

        for action_type, backend in self._strategies.items():
            logger.debug(f"[INPUT] {action_type.value} -> {backend.name}")

    def on_cleanup(self) -> None:
        self._strategies = {}

    def backend_for(self, action_type: ActionType) -> Optional[InputBackend]:
        return self._strategies.get(action_type)

    def perform(self, action: Action, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if action.type == ActionType.WAIT:
            duration = params["duration"]
            if duration < 0:
                raise ValueError("Wait duration must be non-negative")
            self.sleep(duration / 1000)
            return {"duration_ms": duration}

        backend = self._strategies.get(action.type)
        if backend is None:
            raise OperatorError(
                f"No input backend available for {action.type.value}",
                code="BACKEND_UNAVAILABLE",
            )

        if action.type in CLICK_TYPES:
            x, y = int(params["x"]), int(params["y"])
            if not self.validate_point(x, y):
                raise ValueError(f"Invalid coordinates ({x}, {y})")
            button = "right" if action.type == ActionType.RIGHT_CLICK else params.get("button", "left")
            clicks = 2 if action.type == ActionType.DOUBLE_CLICK else 1
            logger.info(f"[ACTION] {action.type.value} at ({x}, {y}) via {backend.name}")
            backend.click(x, y, button=button, clicks=clicks)
            return {"x": x, "y": y, "button": button, "backend": backend.name}

        if action.type == ActionType.DRAG:
            coords = [int(params[k]) for k in ("from_x", "from_y", "to_x", "to_y")]
            logger.info(f"[ACTION] Drag from ({coords[0]}, {coords[1]}) to ({coords[2]}, {coords[3]})")
            backend.drag(*coords)
            return {"from": coords[:2], "to": coords[2:], "backend": backend.name}

        if action.type == ActionType.TYPE:
            text = params["text"]
            logger.info(f"[ACTION] Type '{text[:30]}' via {backend.name}")
            backend.type_text(text)
            return {"length": len(text), "backend": backend.name}

        if action.type == ActionType.KEY:
            modifiers, key = split_key_combo(str(params["key"]), params.get("modifiers"))
            logger.info(f"[ACTION] Key {'+'.join(modifiers + [key])} via {backend.name}")
            backend.press_key(key, modifiers)
            return {"key": key, "modifiers": modifiers, "backend": backend.name}

        if action.type == ActionType.SCROLL:
            x, y = params.get("x"), params.get("y")
            direction, clicks = params["direction"], int(params["clicks"])
            logger.info(f"[ACTION] Scroll {direction} x{clicks} via {backend.name}")
            backend.scroll(
                int(x) if x is not None else None,
                int(y) if y is not None else None,
                direction,
                clicks,
            )
            return {"direction": direction, "clicks": clicks, "backend": backend.name}

        raise OperatorError(f"Unhandled input action {action.type.value}", code="UNSUPPORTED_ACTION")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status["backends"] = {t.value: b.name for t, b in self._strategies.items()}
        return status
