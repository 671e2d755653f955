"""
Browser tool executor.

Implements the workflow's browser tools (navigate, click, type, scroll,
getPageContext, pressKey, keyCombo, screenshot, wait) on a patchright page.
Failures come back as ``{"success": False, "error": ...}`` with the original
message kept, so transient browser errors can be retried by the caller.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from patchright.async_api import Page


logger = logging.getLogger(__name__)

MAX_CONTEXT_TEXT = 4000
MAX_CONTEXT_LINKS = 50
MAX_CONTEXT_INPUTS = 30
DEFAULT_SCROLL_AMOUNT = 600
TYPE_DELAY_MS = 30

PAGE_CONTEXT_SCRIPT = """
([maxText, maxLinks, maxInputs]) => {
    const selectorFor = (el) => {
        if (el.id) return '#' + CSS.escape(el.id);
        const name = el.getAttribute('name');
        if (name) return el.tagName.toLowerCase() + '[name="' + name + '"]';
        const aria = el.getAttribute('aria-label');
        if (aria) return el.tagName.toLowerCase() + '[aria-label="' + aria + '"]';
        return el.tagName.toLowerCase();
    };
    const links = Array.from(document.querySelectorAll('a[href]'))
        .filter((a) => a.offsetParent !== null)
        .slice(0, maxLinks)
        .map((a) => ({ text: (a.innerText || '').trim().slice(0, 100), href: a.href }));
    const inputs = Array.from(document.querySelectorAll('input, textarea, select, button'))
        .filter((el) => el.offsetParent !== null && el.type !== 'hidden')
        .slice(0, maxInputs)
        .map((el) => ({
            selector: selectorFor(el),
            tag: el.tagName.toLowerCase(),
            type: el.type || null,
            placeholder: el.getAttribute('placeholder'),
            label: (el.getAttribute('aria-label') || el.innerText || el.value || '').trim().slice(0, 80),
        }));
    return {
        url: location.href,
        title: document.title,
        text: (document.body ? document.body.innerText : '').slice(0, maxText),
        links: links,
        inputs: inputs,
        viewport: { width: window.innerWidth, height: window.innerHeight, scrollY: window.scrollY },
    };
}
"""


def classify_browser_error(error: Exception) -> str:
    """
    Classify a browser error into a category.

    Args:
        error: Exception raised by patchright

    Returns:
        Error type string
    """
    error_str = str(error).lower()

    if "timeout" in error_str:
        return "timeout"
    elif "not found" in error_str or "no element" in error_str or "waiting for locator" in error_str:
        return "element_not_found"
    elif "net::" in error_str or "navigation" in error_str:
        return "navigation_error"
    elif "target closed" in error_str or "has been closed" in error_str:
        return "connection_lost"
    else:
        return "unknown_error"


class BrowserToolExecutor:
    """
    ToolInvoker backed by a live browser.

    Attributes:
        browser: Object exposing the active page as ``.page`` (e.g. AgentBrowser)
        navigation_wait_until: Load state awaited after navigation
    """

    def __init__(self, browser: Any, navigation_wait_until: str = "domcontentloaded"):
        self.browser = browser
        self.navigation_wait_until = navigation_wait_until

    @property
    def page(self) -> Page:
        return self.browser.page

    async def invoke(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute one browser tool.

        Args:
            tool_name: Tool to run
            params: Tool arguments

        Returns:
            Result dict with ``success`` and tool-specific fields
        """
        params = params or {}
        try:
            if tool_name == "navigate":
                return await self._navigate(params)
            elif tool_name == "click":
                return await self._click(params)
            elif tool_name == "type":
                return await self._type(params)
            elif tool_name == "scroll":
                return await self._scroll(params)
            elif tool_name == "getPageContext":
                return await self._get_page_context()
            elif tool_name == "pressKey":
                return await self._press_key(params)
            elif tool_name == "keyCombo":
                return await self._key_combo(params)
            elif tool_name == "screenshot":
                return await self._screenshot()
            elif tool_name == "wait":
                seconds = float(params.get("seconds", 1))
                await asyncio.sleep(max(0.0, seconds))
                return {"success": True, "waited": seconds}
            else:
                return {"success": False, "error": f"Unknown tool: {tool_name}"}
        except Exception as e:
            error_type = classify_browser_error(e)
            logger.warning("Tool %s failed (%s): %s", tool_name, error_type, e)
            return {"success": False, "error": str(e) or error_type, "errorType": error_type}

    async def _navigate(self, params: Dict[str, Any]) -> Dict[str, Any]:
        url = str(params.get("url") or "").strip()
        if not url:
            raise ValueError("navigate requires 'url'")
        if "://" not in url:
            url = f"https://{url}"
        response = await self.page.goto(url, wait_until=self.navigation_wait_until)
        status = response.status if response is not None else None
        logger.info("Navigated to %s (status=%s)", url, status)
        return {"success": True, "url": self.page.url, "status": status, "title": await self.page.title()}

    async def _click(self, params: Dict[str, Any]) -> Dict[str, Any]:
        selector = params.get("selector")
        if selector:
            await self.page.locator(selector).first.click()
            return {"success": True, "selector": selector, "url": self.page.url}
        if params.get("x") is not None and params.get("y") is not None:
            x, y = float(params["x"]), float(params["y"])
            await self.page.mouse.click(x, y)
            return {"success": True, "x": x, "y": y, "url": self.page.url}
        raise ValueError("click requires 'selector' or 'x'/'y'")

    async def _type(self, params: Dict[str, Any]) -> Dict[str, Any]:
        text = params.get("text")
        if text is None or text == "":
            raise ValueError("type requires 'text'")
        selector = params.get("selector")
        if selector:
            locator = self.page.locator(selector).first
            await locator.click()
            await locator.fill("")
        await self.page.keyboard.type(str(text), delay=TYPE_DELAY_MS)
        if params.get("pressEnter"):
            await self.page.keyboard.press("Enter")
        return {"success": True, "typed": len(str(text)), "selector": selector}

    async def _scroll(self, params: Dict[str, Any]) -> Dict[str, Any]:
        selector = params.get("selector")
        if selector:
            await self.page.locator(selector).first.scroll_into_view_if_needed()
            return {"success": True, "selector": selector}

        direction = params.get("direction", "down")
        amount = int(params.get("amount") or DEFAULT_SCROLL_AMOUNT)
        if direction == "down":
            await self.page.mouse.wheel(0, amount)
        elif direction == "up":
            await self.page.mouse.wheel(0, -amount)
        elif direction == "top":
            await self.page.evaluate("window.scrollTo(0, 0)")
        elif direction == "bottom":
            await self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        else:
            raise ValueError(f"Unknown scroll direction: {direction}")
        return {"success": True, "direction": direction}

    async def _get_page_context(self) -> Dict[str, Any]:
        context = await self.page.evaluate(
            PAGE_CONTEXT_SCRIPT, [MAX_CONTEXT_TEXT, MAX_CONTEXT_LINKS, MAX_CONTEXT_INPUTS]
        )
        context["success"] = True
        return context

    async def _press_key(self, params: Dict[str, Any]) -> Dict[str, Any]:
        key = params.get("key")
        if not key:
            raise ValueError("pressKey requires 'key'")
        await self.page.keyboard.press(key)
        return {"success": True, "key": key}

    async def _key_combo(self, params: Dict[str, Any]) -> Dict[str, Any]:
        keys: Optional[List[str]] = params.get("keys")
        if not keys:
            raise ValueError("keyCombo requires 'keys'")
        await self.page.keyboard.press("+".join(keys))
        return {"success": True, "keys": list(keys)}

    async def _screenshot(self) -> Dict[str, Any]:
        image = await self.browser.screenshot()
        return {"success": True, "image": f"data:image/jpeg;base64,{image}"}
