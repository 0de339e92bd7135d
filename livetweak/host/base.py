"""
Host interfaces consumed by the reconciliation core.

A host wraps a live document tree that someone else owns. The core only ever
talks to these abstract classes; ``livetweak.host.page`` implements them on
top of a Playwright page.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional


@dataclass(frozen=True)
class MutationFilter:
    """Which structural changes count as qualifying mutations."""
    child_list: bool = True
    subtree: bool = True
    attributes: bool = False

    def to_options(self) -> dict:
        """Options in the shape a DOM ``MutationObserver.observe`` call expects."""
        return {
            "childList": self.child_list,
            "subtree": self.subtree,
            "attributes": self.attributes,
        }


# Called with the number of mutation records in the batch.
MutationCallback = Callable[[int], None]


@dataclass
class KeyEvent:
    """A raw keydown event as delivered by the host."""
    key: str
    alt: bool = False
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    default_prevented: bool = field(default=False, compare=False)
    # Set by hosts that run the Escape rule in the page: "stop", "cancel" or "none".
    escape_result: Optional[str] = field(default=None, compare=False)

    def prevent_default(self) -> None:
        self.default_prevented = True

    @classmethod
    def from_dict(cls, data: dict) -> "KeyEvent":
        return cls(
            key=data.get("key", ""),
            alt=bool(data.get("altKey")),
            ctrl=bool(data.get("ctrlKey")),
            meta=bool(data.get("metaKey")),
            shift=bool(data.get("shiftKey")),
            escape_result=data.get("escape"),
        )


KeyHandler = Callable[[KeyEvent], Awaitable[bool]]


class Subscription(ABC):
    """Handle for a registered mutation subscription."""

    @property
    @abstractmethod
    def active(self) -> bool:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the subscription. Calling it twice is harmless."""


class Element(ABC):
    """A single element of the live tree."""

    @abstractmethod
    async def get_attribute(self, name: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_attribute(self, name: str, value: str) -> None:
        ...

    @abstractmethod
    async def classes(self) -> List[str]:
        ...

    @abstractmethod
    async def add_classes(self, names: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def remove_classes(self, names: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def get_style(self, prop: str) -> str:
        """Inline style value for ``prop`` (CSS property name), ``""`` if unset."""

    @abstractmethod
    async def set_style(self, prop: str, value: str) -> None:
        ...

    @abstractmethod
    async def text(self) -> str:
        ...

    @abstractmethod
    async def is_visible(self) -> bool:
        ...

    @abstractmethod
    async def next_sibling(self) -> Optional["Element"]:
        ...

    @abstractmethod
    async def query_all(self, selector: str) -> List["Element"]:
        ...

    @abstractmethod
    async def click(self) -> None:
        ...

    @abstractmethod
    async def dispatch(self, event_name: str) -> None:
        """Dispatch a synthetic, bubbling mouse event such as ``mouseover``."""


class Host(ABC):
    """The live document plus the keyboard input and platform it runs on."""

    @property
    @abstractmethod
    def platform(self) -> str:
        """Raw platform identification string (may be empty)."""

    @abstractmethod
    async def query_all(self, selector: str) -> List[Element]:
        ...

    async def query(self, selector: str) -> Optional[Element]:
        elements = await self.query_all(selector)
        return elements[0] if elements else None

    @abstractmethod
    async def observe(self, root: str, mutation_filter: MutationFilter,
                      callback: MutationCallback) -> Subscription:
        """Subscribe ``callback`` to qualifying mutations under ``root``."""

    @abstractmethod
    async def listen_keys(self, handler: KeyHandler, intercepts: Iterable[str] = (),
                          platform: str = "other", escape: Optional[dict] = None) -> None:
        """Route keydown events to ``handler``.

        Args:
            handler: Coroutine returning True when it consumed the event.
            intercepts: Canonical combinations whose default handling the host
                must suppress before the handler runs (hosts that cannot
                suppress defaults asynchronously use this list).
            platform: Resolved platform, ``"mac"`` or ``"other"``, so the host
                computes canonical combinations the same way the dispatcher does.
            escape: ``EscapeConfig.to_options()`` for hosts that must decide the
                Escape rule while the event is dispatched. Such hosts report
                the decision in ``KeyEvent.escape_result``.
        """
