"""
Browser Operator - page navigation and DOM interaction through Playwright.
"""

from typing import Any, Dict, List, Optional, Tuple

from playwright.sync_api import sync_playwright

from logger import logger

from ..models import Action, ActionType, Screenshot
from .base import BaseOperator, Capability, ParameterSpec, number, string
from .input import split_key_combo

DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

# Playwright key names
PLAYWRIGHT_KEYS = {
    "enter": "Enter",
    "escape": "Escape",
    "tab": "Tab",
    "backspace": "Backspace",
    "delete": "Delete",
    "space": "Space",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "home": "Home",
    "end": "End",
    "pageup": "PageUp",
    "pagedown": "PageDown",
    "ctrl": "Control",
    "shift": "Shift",
    "alt": "Alt",
    "command": "Meta",
    "win": "Meta",
}


def playwright_key(key: str) -> str:
    if key in PLAYWRIGHT_KEYS:
        return PLAYWRIGHT_KEYS[key]
    if key.startswith("f") and key[1:].isdigit():
        return key.upper()
    return key


def normalize_url(url: str) -> str:
    url = url.strip()
    if "://" not in url and not url.startswith(("about:", "data:", "file:")):
        url = f"https://{url}"
    return url


class BrowserOperator(BaseOperator):
    """
    Chromium session driven through the Playwright sync API.

    Settings:
        headless: Run without a window (default True)
        viewport: {"width", "height"} (default 1920x1080)
        user_agent: Optional user agent override
        executable_path: Optional browser binary
        args: Browser launch arguments
        timeout: Default wait timeout in milliseconds (default 30000)

    Playwright objects are bound to the thread that created them, so an
    operator must be initialized, used and cleaned up on one thread.
    """

    operator_name = "browser"

    def __init__(self, page=None):
        self._attached_page = page
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None
        super().__init__()

    def declare_capabilities(self) -> List[Capability]:
        return [
            Capability(action=ActionType.NAVIGATE, description="Open a URL",
                       parameters={"url": string(required=True),
                                   "wait_until": string(default="load",
                                                        choices=["load", "domcontentloaded", "networkidle", "commit"])}),
            Capability(action=ActionType.CLICK, description="Click an element by selector or coordinates",
                       parameters={"selector": string(), "x": number(), "y": number(),
                                   "button": string(default="left", choices=["left", "right", "middle"]),
                                   "clicks": number(default=1)}),
            Capability(action=ActionType.TYPE, description="Type text, optionally into a selector",
                       parameters={"text": string(required=True), "selector": string(),
                                   "clear": ParameterSpec(type="boolean", default=True)}),
            Capability(action=ActionType.KEY, description="Press a key or key combination",
                       parameters={"key": string(required=True),
                                   "modifiers": ParameterSpec(type="array", default=[])}),
            Capability(action=ActionType.SCROLL, description="Scroll the page",
                       parameters={"direction": string(default="down", choices=["up", "down", "left", "right"]),
                                   "amount": number(default=500)}),
            Capability(action=ActionType.SCREENSHOT, description="Capture the page",
                       parameters={"full_page": ParameterSpec(type="boolean", default=False)}),
            Capability(action=ActionType.WAIT, description="Wait for a selector or a duration",
                       parameters={"selector": string(), "duration": number(),
                                   "timeout": number(default=DEFAULT_TIMEOUT_MS)}),
        ]

    @property
    def timeout_ms(self) -> float:
        return self.settings.get("timeout", DEFAULT_TIMEOUT_MS)

    def on_initialize(self) -> None:
        if self._attached_page is not None:
            self.page = self._attached_page
            logger.info("[BROWSER] Using attached page")
        else:
            self._playwright = sync_playwright().start()
            launch_kwargs: Dict[str, Any] = {
                "headless": self.settings.get("headless", True),
                "args": self.settings.get("args", DEFAULT_ARGS),
            }
            if self.settings.get("executable_path"):
                launch_kwargs["executable_path"] = self.settings["executable_path"]
            try:
                self._browser = self._playwright.chromium.launch(**launch_kwargs)
                context_kwargs: Dict[str, Any] = {
                    "viewport": self.settings.get("viewport", DEFAULT_VIEWPORT)
                }
                if self.settings.get("user_agent"):
                    context_kwargs["user_agent"] = self.settings["user_agent"]
                self._context = self._browser.new_context(**context_kwargs)
                self.page = self._context.new_page()
            except Exception:
                self._shutdown()
                raise
            logger.info(f"[BROWSER] Chromium launched (headless={launch_kwargs['headless']})")

        self.page.set_default_timeout(self.timeout_ms)

    def on_cleanup(self) -> None:
        self._shutdown()

    def _shutdown(self) -> None:
        if self._attached_page is None:
            for resource in (self._context, self._browser):
                if resource is not None:
                    try:
                        resource.close()
                    except Exception as e:
                        logger.warning(f"[BROWSER] Error closing {type(resource).__name__}: {e}")
            if self._playwright is not None:
                self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None
        self.page = None

    # --- Actions ---

    def perform(self, action: Action, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        handlers = {
            ActionType.NAVIGATE: self._navigate,
            ActionType.CLICK: self._click,
            ActionType.TYPE: self._type,
            ActionType.KEY: self._key,
            ActionType.SCROLL: self._scroll,
            ActionType.SCREENSHOT: self._screenshot,
            ActionType.WAIT: self._wait,
        }
        return handlers[action.type](params)

    def _navigate(self, params: Dict[str, Any]) -> Dict[str, Any]:
        url = normalize_url(str(params["url"]))
        logger.info(f"[BROWSER] Navigate to {url}")
        response = self.page.goto(url, wait_until=params["wait_until"], timeout=self.timeout_ms)
        return {
            "url": self.page.url,
            "title": self.page.title(),
            "status": response.status if response is not None else None,
        }

    def _click(self, params: Dict[str, Any]) -> Dict[str, Any]:
        button, clicks = params["button"], int(params["clicks"])
        selector = params.get("selector")
        if selector:
            logger.info(f"[BROWSER] Click selector {selector}")
            self.page.click(selector, button=button, click_count=clicks)
            return {"selector": selector}
        x, y = params.get("x"), params.get("y")
        if x is None or y is None:
            raise ValueError("Click requires a selector or x/y coordinates")
        logger.info(f"[BROWSER] Click at ({x}, {y})")
        self.page.mouse.click(x, y, button=button, click_count=clicks)
        return {"x": x, "y": y}

    def _type(self, params: Dict[str, Any]) -> Dict[str, Any]:
        text, selector = str(params["text"]), params.get("selector")
        logger.info(f"[BROWSER] Type '{text[:30]}'" + (f" into {selector}" if selector else ""))
        if selector:
            if params["clear"]:
                self.page.fill(selector, text)
            else:
                self.page.type(selector, text)
        else:
            self.page.keyboard.type(text)
        return {"length": len(text), "selector": selector}

    def _key(self, params: Dict[str, Any]) -> Dict[str, Any]:
        modifiers, key = split_key_combo(str(params["key"]), params.get("modifiers"))
        combo = "+".join(playwright_key(k) for k in modifiers + [key])
        logger.info(f"[BROWSER] Key {combo}")
        self.page.keyboard.press(combo)
        return {"key": combo}

    def _scroll(self, params: Dict[str, Any]) -> Dict[str, Any]:
        direction, amount = params["direction"], params["amount"]
        delta_x = {"left": -amount, "right": amount}.get(direction, 0)
        delta_y = {"up": -amount, "down": amount}.get(direction, 0)
        self.page.mouse.wheel(delta_x, delta_y)
        return {"direction": direction, "amount": amount}

    def _screenshot(self, params: Dict[str, Any]) -> Dict[str, Any]:
        screenshot = self._capture_page(full_page=bool(params["full_page"]))
        return {"width": screenshot.width, "height": screenshot.height, "screenshot": screenshot}

    def _wait(self, params: Dict[str, Any]) -> Dict[str, Any]:
        selector = params.get("selector")
        if selector:
            self.page.wait_for_selector(selector, state="visible", timeout=params["timeout"])
            return {"selector": selector}
        duration = params.get("duration")
        if duration is None:
            duration = 1000
        if duration < 0:
            raise ValueError("Wait duration must be non-negative")
        self.sleep(duration / 1000)
        return {"duration_ms": duration}

    # --- Capture ---

    def on_capture(self) -> Screenshot:
        return self._capture_page(full_page=False)

    def _capture_page(self, full_page: bool) -> Screenshot:
        data = self.page.screenshot(type="png", full_page=full_page)
        return Screenshot.from_bytes(data)

    def screen_size(self) -> Optional[Tuple[int, int]]:
        if self.page is None:
            return None
        viewport = self.page.viewport_size
        if not viewport:
            return None
        return viewport["width"], viewport["height"]

    # --- Read-only queries ---

    def get_current_url(self) -> str:
        self._ensure_initialized()
        return self.page.url

    def get_page_title(self) -> str:
        self._ensure_initialized()
        return self.page.title()

    def evaluate_script(self, script: str, arg: Any = None) -> Any:
        self._ensure_initialized()
        return self.page.evaluate(script, arg)

    def get_element_text(self, selector: str) -> Optional[str]:
        self._ensure_initialized()
        return self.page.text_content(selector)

    def get_element_attribute(self, selector: str, name: str) -> Optional[str]:
        self._ensure_initialized()
        return self.page.get_attribute(selector, name)

    def is_element_visible(self, selector: str) -> bool:
        self._ensure_initialized()
        return self.page.is_visible(selector)
