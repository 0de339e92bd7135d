"""
In-memory host used by the tests.

Supports the selector subset the tests need: tag, ``#id``, ``.class``,
``[attr]``, ``[attr=value]`` (also ``*=`` and ``^=``), compounds of those, the
descendant combinator and comma-separated selector lists.
"""

import re
from typing import Callable, Dict, Iterable, List, Optional

from livetweak.host.base import Element, Host, KeyEvent, MutationFilter, Subscription

_TOKEN = re.compile(
    r"(?P<tag>^[a-zA-Z][\w-]*)"
    r"|#(?P<id>[\w-]+)"
    r"|\.(?P<cls>[\w-]+)"
    r"|\[(?P<attr>[\w-]+)(?:(?P<op>[*^]?=)\"?(?P<value>[^\"\]]*)\"?)?\]"
)


def _parse_compound(text: str) -> List[Callable[["FakeElement"], bool]]:
    checks = []
    pos = 0
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            raise ValueError(f"unsupported selector: {text!r}")
        if match.group("tag"):
            tag = match.group("tag").lower()
            checks.append(lambda el, tag=tag: el.tag == tag)
        elif match.group("id"):
            ident = match.group("id")
            checks.append(lambda el, ident=ident: el.attrs.get("id") == ident)
        elif match.group("cls"):
            name = match.group("cls")
            checks.append(lambda el, name=name: name in el.class_list)
        else:
            attr, op, value = match.group("attr"), match.group("op"), match.group("value")
            checks.append(lambda el, attr=attr, op=op, value=value: _attr_matches(el, attr, op, value))
        pos = match.end()
    return checks


def _attr_matches(el: "FakeElement", attr: str, op: Optional[str], value: Optional[str]) -> bool:
    actual = el.attrs.get(attr)
    if actual is None:
        return False
    if op is None:
        return True
    if op == "*=":
        return value in actual
    if op == "^=":
        return actual.startswith(value)
    return actual == value


def matches(el: "FakeElement", selector: str) -> bool:
    for alternative in selector.split(","):
        compounds = [_parse_compound(part) for part in alternative.split()]
        if not compounds:
            continue
        if not all(check(el) for check in compounds[-1]):
            continue
        ancestor = el.parent
        remaining = compounds[:-1]
        while remaining and ancestor is not None:
            if all(check(ancestor) for check in remaining[-1]):
                remaining = remaining[:-1]
            ancestor = ancestor.parent
        if not remaining:
            return True
    return False


class FakeElement(Element):

    def __init__(self, tag: str, text: str = "", classes: Iterable[str] = (),
                 visible: bool = True, children: Iterable["FakeElement"] = (), **attrs: str):
        self.tag = tag.lower()
        self.own_text = text
        self.class_list: List[str] = list(classes)
        self.attrs: Dict[str, str] = {key.replace("_", "-"): value for key, value in attrs.items()}
        self.style: Dict[str, str] = {}
        self.visible = visible
        self.parent: Optional["FakeElement"] = None
        self.children: List["FakeElement"] = []
        self.clicks = 0
        self.events: List[str] = []
        self.writes = 0
        self.on_click: Optional[Callable[[], None]] = None
        for child in children:
            self.append(child)

    def __repr__(self):
        return f"<{self.tag} {self.attrs} {self.class_list}>"

    def append(self, child: "FakeElement") -> "FakeElement":
        child.parent = self
        self.children.append(child)
        return child

    def descendants(self) -> List["FakeElement"]:
        result = []
        for child in self.children:
            result.append(child)
            result.extend(child.descendants())
        return result

    def full_text(self) -> str:
        return self.own_text + "".join(child.full_text() for child in self.children)

    async def get_attribute(self, name: str) -> Optional[str]:
        if name == "class":
            return " ".join(self.class_list)
        return self.attrs.get(name)

    async def set_attribute(self, name: str, value: str) -> None:
        self.writes += 1
        self.attrs[name] = value

    async def classes(self) -> List[str]:
        return list(self.class_list)

    async def add_classes(self, names: Iterable[str]) -> None:
        self.writes += 1
        for name in names:
            if name not in self.class_list:
                self.class_list.append(name)

    async def remove_classes(self, names: Iterable[str]) -> None:
        self.writes += 1
        removed = set(names)
        self.class_list = [name for name in self.class_list if name not in removed]

    async def get_style(self, prop: str) -> str:
        return self.style.get(prop, "")

    async def set_style(self, prop: str, value: str) -> None:
        self.writes += 1
        self.style[prop] = value

    async def text(self) -> str:
        return self.full_text()

    async def is_visible(self) -> bool:
        return self.visible

    async def next_sibling(self) -> Optional[Element]:
        if self.parent is None:
            return None
        siblings = self.parent.children
        index = siblings.index(self)
        return siblings[index + 1] if index + 1 < len(siblings) else None

    async def query_all(self, selector: str) -> List[Element]:
        return [el for el in self.descendants() if matches(el, selector)]

    async def click(self) -> None:
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()

    async def dispatch(self, event_name: str) -> None:
        self.events.append(event_name)
        if event_name == "click" and self.on_click is not None:
            self.on_click()


class FakeSubscription(Subscription):

    def __init__(self, host: "FakeHost", root: str, callback):
        self.host = host
        self.root = root
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def disconnect(self) -> None:
        if self._active:
            self._active = False
            self.host.subscriptions.remove(self)


class FakeHost(Host):
    """A document with ``html > body``; mutations go through ``append``/``remove``."""

    def __init__(self, platform: str = ""):
        self._platform = platform
        self.body = FakeElement("body")
        self.document = FakeElement("html", children=[self.body])
        self.subscriptions: List[FakeSubscription] = []
        self.queries = 0
        self.key_handler = None
        self.intercepts: List[str] = []
        self.key_platform = None
        self.escape_options = None
        self.fail_queries = False

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def active_subscriptions(self) -> int:
        return len(self.subscriptions)

    async def query_all(self, selector: str) -> List[Element]:
        self.queries += 1
        if self.fail_queries:
            raise RuntimeError("document unavailable")
        return [el for el in [self.document] + self.document.descendants() if matches(el, selector)]

    async def observe(self, root: str, mutation_filter: MutationFilter, callback) -> Subscription:
        subscription = FakeSubscription(self, root, callback)
        self.subscriptions.append(subscription)
        return subscription

    async def listen_keys(self, handler, intercepts: Iterable[str] = (), platform: str = "other",
                          escape: Optional[dict] = None) -> None:
        self.key_handler = handler
        self.escape_options = escape
        self.intercepts = list(intercepts)
        self.key_platform = platform

    def notify(self, records: int = 1) -> None:
        for subscription in list(self.subscriptions):
            subscription.callback(records)

    def append(self, child: FakeElement, parent: Optional[FakeElement] = None) -> FakeElement:
        (parent or self.body).append(child)
        self.notify()
        return child

    def remove(self, element: FakeElement) -> None:
        element.parent.children.remove(element)
        element.parent = None
        self.notify()

    async def press(self, key: str, alt: bool = False, ctrl: bool = False,
                    meta: bool = False, shift: bool = False) -> KeyEvent:
        event = KeyEvent(key, alt=alt, ctrl=ctrl, meta=meta, shift=shift)
        event.consumed = await self.key_handler(event)
        return event
