"""
Host implementation backed by a Playwright page.

Mutation notifications and keydown events are relayed from the page through
functions exposed with ``page.expose_function``. Elements are Playwright
locators, so nothing holds on to remote handles between reconciliation passes.
"""

import json
import logging
from itertools import count
from typing import Dict, Iterable, List, Optional, Tuple

from playwright.async_api import Locator, Page

from .base import Element, Host, KeyEvent, KeyHandler, MutationCallback, MutationFilter, Subscription

logger = logging.getLogger(__name__)

MUTATION_BINDING = "__livetweakMutation"
KEY_BINDING = "__livetweakKey"

PLATFORM_SCRIPT = """
() => (navigator.userAgentData && navigator.userAgentData.platform)
    || navigator.platform
    || navigator.userAgent
    || ''
"""

OBSERVE_SCRIPT = """
({ id, root, options }) => {
    window.__livetweakObservers = window.__livetweakObservers || {};
    const existing = window.__livetweakObservers[id];
    if (existing) {
        existing.disconnect();
    }
    const node = document.querySelector(root);
    const target = node || document.body || document.documentElement;
    const observer = new MutationObserver((records) => {
        window.__livetweakMutation(id, records.length);
    });
    observer.observe(target, options);
    window.__livetweakObservers[id] = observer;
    return node !== null;
}
"""

DISCONNECT_SCRIPT = """
(id) => {
    const observers = window.__livetweakObservers || {};
    if (observers[id]) {
        observers[id].disconnect();
        delete observers[id];
    }
}
"""

# Installed as an init script, so it is re-run on every document load. The
# intercept list and the Escape rule are evaluated synchronously because
# default handling can only be suppressed while the event is being dispatched.
KEY_LISTENER_TEMPLATE = """
(() => {
    if (window.__livetweakKeysInstalled) {
        return;
    }
    window.__livetweakKeysInstalled = true;
    const intercepts = new Set(%(intercepts)s);
    const isMac = %(is_mac)s;
    const escape = %(escape)s;
    const aliases = {' ': 'space', 'spacebar': 'space', 'esc': 'escape', 'up': 'arrowup',
                     'down': 'arrowdown', 'left': 'arrowleft', 'right': 'arrowright'};
    const canonicalKey = (event) => {
        const key = (event.key || '').toLowerCase();
        return aliases[key] || key;
    };
    const canonical = (event) => {
        const parts = [];
        if (event.altKey) parts.push('alt');
        if (isMac ? event.metaKey : event.ctrlKey) parts.push('cmd');
        if (isMac && event.ctrlKey) parts.push('ctrl');
        if (!isMac && event.metaKey) parts.push('meta');
        if (event.shiftKey) parts.push('shift');
        parts.push(canonicalKey(event));
        return parts.join('+');
    };
    const isShown = (el) => !!el && el.offsetParent !== null;
    const findButton = (label, excludedClass) => Array.from(document.querySelectorAll(escape.buttons))
        .find((button) => isShown(button)
            && (button.textContent || '').trim().toLowerCase() === label
            && !(excludedClass && button.classList.contains(excludedClass)));
    const applyEscape = () => {
        if (isShown(document.querySelector(escape.modal)) || isShown(document.querySelector(escape.panel))) {
            return 'none';
        }
        const stop = findButton(escape.stop, null);
        if (stop) {
            stop.click();
            return 'stop';
        }
        const cancel = findButton(escape.cancel, escape.danger);
        if (cancel) {
            cancel.click();
            return 'cancel';
        }
        return 'none';
    };
    document.addEventListener('keydown', (event) => {
        let escapeResult = null;
        if (escape && canonicalKey(event) === 'escape') {
            escapeResult = applyEscape();
            if (escapeResult !== 'none') {
                event.preventDefault();
            }
        } else if (intercepts.has(canonical(event))) {
            event.preventDefault();
        }
        window.__livetweakKey({
            key: event.key,
            altKey: event.altKey,
            ctrlKey: event.ctrlKey,
            metaKey: event.metaKey,
            shiftKey: event.shiftKey,
            escape: escapeResult,
        });
    }, true);
})();
"""


class PageElement(Element):
    """An element addressed by a Playwright locator."""

    def __init__(self, locator: Locator, timeout_ms: int = 1000):
        self.locator = locator
        self.timeout_ms = timeout_ms

    async def _eval(self, expression: str, arg=None):
        return await self.locator.evaluate(expression, arg, timeout=self.timeout_ms)

    async def get_attribute(self, name: str) -> Optional[str]:
        return await self.locator.get_attribute(name, timeout=self.timeout_ms)

    async def set_attribute(self, name: str, value: str) -> None:
        await self._eval("(el, [name, value]) => el.setAttribute(name, value)", [name, value])

    async def classes(self) -> List[str]:
        return await self._eval("el => Array.from(el.classList)")

    async def add_classes(self, names: Iterable[str]) -> None:
        await self._eval("(el, names) => el.classList.add(...names)", list(names))

    async def remove_classes(self, names: Iterable[str]) -> None:
        await self._eval("(el, names) => el.classList.remove(...names)", list(names))

    async def get_style(self, prop: str) -> str:
        return await self._eval("(el, prop) => el.style.getPropertyValue(prop)", prop)

    async def set_style(self, prop: str, value: str) -> None:
        await self._eval("(el, [prop, value]) => el.style.setProperty(prop, value)", [prop, value])

    async def text(self) -> str:
        return await self.locator.text_content(timeout=self.timeout_ms) or ""

    async def is_visible(self) -> bool:
        return await self.locator.is_visible()

    async def next_sibling(self) -> Optional[Element]:
        sibling = self.locator.locator("xpath=following-sibling::*[1]")
        if await sibling.count() == 0:
            return None
        return PageElement(sibling, self.timeout_ms)

    async def query_all(self, selector: str) -> List[Element]:
        return [PageElement(loc, self.timeout_ms) for loc in await self.locator.locator(selector).all()]

    async def click(self) -> None:
        # DOM click: works on elements the page only reveals on hover.
        await self._eval("el => el.click()")

    async def dispatch(self, event_name: str) -> None:
        await self.locator.dispatch_event(event_name, timeout=self.timeout_ms)


class PageSubscription(Subscription):

    def __init__(self, host: "PageHost", sub_id: int):
        self.host = host
        self.sub_id = sub_id
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def disconnect(self) -> None:
        if not self._active:
            return
        self._active = False
        await self.host._release(self.sub_id)


class PageHost(Host):
    """
    Host for a Playwright ``Page``.

    Call ``await attach()`` before handing the host to a Runtime. Observers are
    re-installed after a full document load; the SPA's own re-renders never
    need that.
    """

    def __init__(self, page: Page, timeout_ms: int = 1000):
        self.page = page
        self.timeout_ms = timeout_ms
        self._platform = ""
        self._ids = count(1)
        self._callbacks: Dict[int, MutationCallback] = {}
        self._observers: Dict[int, Tuple[str, dict]] = {}
        self._key_handler: Optional[KeyHandler] = None
        self._attached = False

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def active_subscriptions(self) -> int:
        return len(self._observers)

    async def attach(self) -> None:
        if self._attached:
            return
        await self.page.expose_function(MUTATION_BINDING, self._on_mutation)
        await self.page.expose_function(KEY_BINDING, self._on_key)
        self.page.on("load", self._on_load)
        self._platform = await self.page.evaluate(PLATFORM_SCRIPT)
        self._attached = True
        logger.info(f"Attached to {self.page.url} (platform '{self._platform}')")

    async def query_all(self, selector: str) -> List[Element]:
        return [PageElement(loc, self.timeout_ms) for loc in await self.page.locator(selector).all()]

    async def observe(self, root: str, mutation_filter: MutationFilter,
                      callback: MutationCallback) -> Subscription:
        sub_id = next(self._ids)
        options = mutation_filter.to_options()
        self._callbacks[sub_id] = callback
        self._observers[sub_id] = (root, options)
        found = await self.page.evaluate(OBSERVE_SCRIPT, {"id": sub_id, "root": root, "options": options})
        if not found:
            logger.debug(f"Observer root '{root}' not present, observing document body")
        return PageSubscription(self, sub_id)

    async def _release(self, sub_id: int) -> None:
        self._callbacks.pop(sub_id, None)
        self._observers.pop(sub_id, None)
        if self.page.is_closed():
            return
        try:
            await self.page.evaluate(DISCONNECT_SCRIPT, sub_id)
        except Exception as e:
            # The page navigated away; its observers went with it.
            logger.debug(f"Could not disconnect observer {sub_id}: {e}")

    async def listen_keys(self, handler: KeyHandler, intercepts: Iterable[str] = (),
                          platform: str = "other", escape: Optional[dict] = None) -> None:
        self._key_handler = handler
        script = KEY_LISTENER_TEMPLATE % {
            "intercepts": json.dumps(sorted(intercepts)),
            "is_mac": "true" if platform == "mac" else "false",
            "escape": json.dumps(escape),
        }
        await self.page.add_init_script(script)
        await self.page.evaluate(script)

    def _on_mutation(self, sub_id: int, records: int) -> None:
        callback = self._callbacks.get(sub_id)
        if callback is not None:
            callback(records)

    async def _on_key(self, data: dict) -> bool:
        if self._key_handler is None:
            return False
        return await self._key_handler(KeyEvent.from_dict(data))

    async def _on_load(self, page: Page) -> None:
        for sub_id, (root, options) in list(self._observers.items()):
            try:
                await page.evaluate(OBSERVE_SCRIPT, {"id": sub_id, "root": root, "options": options})
            except Exception as e:
                logger.warning(f"Could not re-install observer on '{root}': {e}")
        if self._observers:
            logger.info(f"Document reloaded, re-installed {len(self._observers)} observer(s)")
