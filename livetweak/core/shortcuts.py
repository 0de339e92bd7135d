"""
Keyboard shortcut normalization and dispatch.

Key combinations are reduced to a canonical string: the modifiers that are
held, in the fixed order ``alt``, ``cmd``, ``ctrl``, ``meta``, ``shift``,
followed by the lowercase key name, joined with ``+``. ``cmd`` stands for the
platform primary modifier (the meta key on macOS, ctrl elsewhere), so a
binding such as ``cmd+1`` matches Command-1 on a Mac and Ctrl-1 on Windows or
Linux. The remaining physical modifier keeps its own name (``ctrl`` on a Mac,
``meta`` elsewhere).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional

from ..errors import ConfigError
from ..host.base import Host, KeyEvent
from .lookup import Lookup, find
from .workflow import WorkflowEngine

logger = logging.getLogger(__name__)

MODIFIER_ORDER = ("alt", "cmd", "ctrl", "meta", "shift")

MODIFIER_ALIASES = {
    "alt": "alt",
    "option": "alt",
    "opt": "alt",
    "cmd": "cmd",
    "command": "cmd",
    "mod": "cmd",
    "primary": "cmd",
    "ctrl": "ctrl",
    "control": "ctrl",
    "meta": "meta",
    "win": "meta",
    "super": "meta",
    "shift": "shift",
}

KEY_ALIASES = {
    " ": "space",
    "spacebar": "space",
    "esc": "escape",
    "up": "arrowup",
    "down": "arrowdown",
    "left": "arrowleft",
    "right": "arrowright",
    "plus": "+",
    "comma": ",",
}

ESCAPE = "escape"


class Platform(Enum):
    MAC = "mac"
    OTHER = "other"


def detect_platform(platform: Optional[str], default: Platform = Platform.OTHER) -> Platform:
    """
    Classify a host platform string.

    Anything mentioning ``mac`` (``MacIntel``, ``macOS``) is a Mac. Strings
    naming Windows, Linux, X11, ChromeOS or Android are not. An empty or
    unrecognised string yields ``default``.
    """
    value = (platform or "").lower()
    if "mac" in value:
        return Platform.MAC
    if any(marker in value for marker in ("win", "linux", "x11", "cros", "android")):
        return Platform.OTHER
    if value:
        logger.debug(f"Unrecognised platform '{platform}', assuming {default.value}")
    return default


def canonical_key(key: str) -> str:
    key = key.lower()
    return KEY_ALIASES.get(key, key)


def normalize_event(event: KeyEvent, platform: Platform) -> str:
    """Canonical combination for a keydown event."""
    if platform is Platform.MAC:
        primary, secondary = event.meta, ("ctrl", event.ctrl)
    else:
        primary, secondary = event.ctrl, ("meta", event.meta)

    held = {
        "alt": event.alt,
        "cmd": primary,
        secondary[0]: secondary[1],
        "shift": event.shift,
    }
    parts = [name for name in MODIFIER_ORDER if held.get(name)]
    parts.append(canonical_key(event.key))
    return "+".join(parts)


def parse_combo(text: str) -> str:
    """Canonical combination for a binding written in a profile, e.g. ``Shift+Cmd+K``."""
    value = text.strip()
    if not value:
        raise ConfigError("empty key combination", text)

    if value.endswith("++") or value == "+":
        head, key = value[:-1].rstrip("+"), "+"
        names = head.split("+") if head else []
    else:
        *names, key = value.split("+")

    modifiers = set()
    for name in names:
        modifier = MODIFIER_ALIASES.get(name.strip().lower())
        if modifier is None:
            raise ConfigError(f"unknown modifier '{name}'", text)
        modifiers.add(modifier)

    key = key.strip()
    if not key:
        raise ConfigError("missing key", text)

    parts = [name for name in MODIFIER_ORDER if name in modifiers]
    parts.append(canonical_key(key))
    return "+".join(parts)


class ShortcutTable(Mapping):
    """Read-only mapping of canonical combination to action name."""

    def __init__(self, bindings: Optional[Mapping[str, str]] = None):
        self._bindings: Dict[str, str] = {}
        for combo, action in (bindings or {}).items():
            canonical = parse_combo(combo)
            if canonical in self._bindings:
                raise ConfigError(
                    f"collides with another binding for '{self._bindings[canonical]}'", combo
                )
            self._bindings[canonical] = action

    def __getitem__(self, combo: str) -> str:
        return self._bindings[combo]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def combos(self) -> List[str]:
        return list(self._bindings)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._bindings)


@dataclass
class EscapeConfig:
    """Where to look when Escape is pressed."""
    modal: Lookup
    panel: Lookup
    buttons: str = "button"
    stop_label: str = "stop"
    cancel_label: str = "cancel"
    danger_class: str = "bg-red-500"

    def to_options(self) -> dict:
        """Plain selectors and labels for hosts that evaluate Escape in the page.

        Only the selectors of ``modal`` and ``panel`` are carried over; their
        other refinements apply to the in-process handler alone.
        """
        return {
            "modal": self.modal.selector,
            "panel": self.panel.selector,
            "buttons": self.buttons,
            "stop": self.stop_label.strip().lower(),
            "cancel": self.cancel_label.strip().lower(),
            "danger": self.danger_class,
        }


class EscapeHandler:
    """
    Escape stops generation or cancels an edit, unless a modal or the
    navigation/settings panel is open (those own Escape themselves).
    """

    def __init__(self, host: Host, config: EscapeConfig):
        self.host = host
        self.config = config

    async def _is_open(self, lookup: Lookup) -> bool:
        element = await find(self.host, lookup)
        return element is not None and await element.is_visible()

    async def handle(self) -> bool:
        """Returns True when a button was clicked and the event should be consumed."""
        if await self._is_open(self.config.modal) or await self._is_open(self.config.panel):
            logger.debug("Escape left to the page: modal or panel is open")
            return False

        stop = await find(self.host, Lookup(
            selector=self.config.buttons, text=self.config.stop_label, ignore_case=True, visible=True,
        ))
        if stop is not None:
            await stop.click()
            logger.info("Escape: clicked stop")
            return True

        cancel = await find(self.host, Lookup(
            selector=self.config.buttons, text=self.config.cancel_label, ignore_case=True,
            exclude_class=self.config.danger_class, visible=True,
        ))
        if cancel is not None:
            await cancel.click()
            logger.info("Escape: clicked cancel")
            return True

        return False


class ShortcutDispatcher:
    """
    Matches keydown events against the binding table.

    A match suppresses the default handling and launches the bound action in
    the background; anything else passes through untouched. Escape goes to the
    EscapeHandler instead of the table when one is configured, unless the host
    already applied the Escape rule in the page and reported its decision.
    """

    def __init__(self, bindings: ShortcutTable, engine: WorkflowEngine,
                 platform: Platform = Platform.OTHER, escape: Optional[EscapeHandler] = None):
        self.bindings = bindings
        self.engine = engine
        self.platform = platform
        self.escape = escape

    def normalize(self, event: KeyEvent) -> str:
        return normalize_event(event, self.platform)

    async def handle(self, event: KeyEvent) -> bool:
        """Handle one keydown; True if the event was consumed. Never raises."""
        try:
            if canonical_key(event.key) == ESCAPE and self.escape is not None:
                if event.escape_result is not None:
                    consumed = event.escape_result != "none"
                    if consumed:
                        logger.info(f"Escape: clicked {event.escape_result}")
                else:
                    consumed = await self.escape.handle()
                if consumed:
                    event.prevent_default()
                return consumed

            combo = self.normalize(event)
            action = self.bindings.get(combo)
            if action is None:
                return False

            event.prevent_default()
            logger.info(f"Shortcut {combo} -> {action}")
            self.engine.launch(action)
            return True
        except Exception:
            logger.exception(f"Shortcut handler failed for key '{event.key}'")
            return False
