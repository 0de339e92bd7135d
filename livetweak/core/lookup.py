"""
Lookup expressions: a CSS selector plus the refinements the profiles need
(text matching, sibling text, scoping, index).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from ..errors import ConfigError
from ..host.base import Element, Host

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class Lookup:
    """Declarative query identifying zero or more elements of the tree."""
    selector: str
    text: Optional[str] = None
    text_contains: Optional[str] = None
    text_from: Optional[str] = None
    ignore_case: bool = False
    sibling_text: Optional[str] = None
    exclude_class: Optional[str] = None
    child: Optional["Lookup"] = None
    within: Optional["Lookup"] = None
    index: int = 0
    visible: bool = False

    @classmethod
    def parse(cls, value: Union[str, dict, "Lookup"], key: str = "lookup") -> "Lookup":
        """Build a Lookup from a selector string or a profile dictionary."""
        if isinstance(value, Lookup):
            return value
        if isinstance(value, str):
            if not value.strip():
                raise ConfigError("selector must not be empty", key)
            return cls(selector=value)
        if not isinstance(value, dict):
            raise ConfigError(f"expected selector string or object, got {type(value).__name__}", key)

        data = dict(value)
        selector = data.pop("selector", None)
        if not selector:
            raise ConfigError("missing 'selector'", key)
        for nested in ("child", "within"):
            if data.get(nested) is not None:
                data[nested] = cls.parse(data[nested], f"{key}.{nested}")
        try:
            return cls(selector=selector, **data)
        except TypeError as e:
            raise ConfigError(str(e), key)

    def describe(self) -> str:
        parts = [self.selector]
        if self.text is not None:
            parts.append(f"text={self.text!r}")
        if self.text_contains is not None:
            parts.append(f"text~={self.text_contains!r}")
        if self.text_from is not None:
            parts.append(f"text_from={self.text_from!r}")
        if self.sibling_text is not None:
            parts.append(f"sibling~={self.sibling_text!r}")
        if self.child is not None:
            parts.append(f"has=({self.child.describe()})")
        if self.within is not None:
            parts.append(f"within=({self.within.describe()})")
        if self.index:
            parts.append(f"index={self.index}")
        return " ".join(parts)


def _normalize(value: str, ignore_case: bool) -> str:
    value = value.strip()
    return value.lower() if ignore_case else value


async def _text_of(element: Element) -> str:
    return (await element.text() or "").strip()


async def _expected_text(host: Host, lookup: Lookup):
    if lookup.text_from is None:
        return lookup.text
    source = await host.query(lookup.text_from)
    if source is None:
        return _MISSING
    return await _text_of(source)


async def _matches(host: Host, element: Element, lookup: Lookup, expected_text: Optional[str]) -> bool:
    if lookup.visible and not await element.is_visible():
        return False

    if lookup.exclude_class and lookup.exclude_class in await element.classes():
        return False

    if expected_text is not None or lookup.text_contains is not None:
        text = _normalize(await _text_of(element), lookup.ignore_case)
        if expected_text is not None and text != _normalize(expected_text, lookup.ignore_case):
            return False
        if lookup.text_contains is not None and \
                _normalize(lookup.text_contains, lookup.ignore_case) not in text:
            return False

    if lookup.sibling_text is not None:
        sibling = await element.next_sibling()
        if sibling is None or lookup.sibling_text not in await sibling.text():
            return False

    if lookup.child is not None:
        if not await _select(host, element, lookup.child):
            return False

    return True


async def _select(host: Host, scope: Optional[Element], lookup: Lookup) -> List[Element]:
    expected = await _expected_text(host, lookup)
    if expected is _MISSING:
        logger.debug(f"Text source '{lookup.text_from}' not present")
        return []

    if lookup.within is not None:
        scope = await find(host, lookup.within)
        if scope is None:
            return []

    if scope is None:
        candidates = await host.query_all(lookup.selector)
    else:
        candidates = await scope.query_all(lookup.selector)

    return [el for el in candidates if await _matches(host, el, lookup, expected)]


async def find_all(host: Host, lookup: Lookup) -> List[Element]:
    """All elements matching ``lookup``, in document order.

    Host errors (invalid selector, element detached mid-query) are logged and
    treated as an empty result.
    """
    try:
        return await _select(host, None, lookup)
    except Exception as e:
        logger.debug(f"Lookup failed for '{lookup.describe()}': {e}")
        return []


async def find(host: Host, lookup: Lookup) -> Optional[Element]:
    """The element at ``lookup.index`` among the matches, or None."""
    elements = await find_all(host, lookup)
    if not elements:
        return None
    try:
        return elements[lookup.index]
    except IndexError:
        return None
