"""
Idempotent application of declarative patches (classes, attributes, inline
style) to elements of the live tree.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..host.base import Element, Host
from .lookup import Lookup, find, find_all
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class ApplyResult(Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"


@dataclass
class PatchRule:
    """
    A desired state for the elements a lookup finds.

    The desired state holds when every class in ``add_classes`` is present,
    no class in ``remove_classes`` is, and every attribute and inline style
    property has the given value.
    """
    name: str
    lookup: Lookup
    add_classes: Tuple[str, ...] = ()
    remove_classes: Tuple[str, ...] = ()
    attributes: Dict[str, str] = field(default_factory=dict)
    style: Dict[str, str] = field(default_factory=dict)
    require_attributes: Tuple[str, ...] = ()
    all_matches: bool = False
    when: Optional[Lookup] = None
    retry: Optional[RetryPolicy] = None
    description: str = ""

    def is_empty(self) -> bool:
        return not (self.add_classes or self.remove_classes or self.attributes or self.style)

    def summary(self) -> str:
        changes = []
        if self.remove_classes:
            changes.append(f"-class {' '.join(self.remove_classes)}")
        if self.add_classes:
            changes.append(f"+class {' '.join(self.add_classes)}")
        for name, value in self.attributes.items():
            changes.append(f"{name}={value}")
        for prop, value in self.style.items():
            changes.append(f"{prop}: {value}")
        return ", ".join(changes)


class PatchApplier:
    """Applies PatchRules, touching an element only when its state differs."""

    def __init__(self, host: Host):
        self.host = host

    async def is_satisfied(self, element: Element, rule: PatchRule) -> Optional[bool]:
        """
        Whether ``element`` already has the rule's desired state.

        Returns:
            True or False, or None when the state cannot be evaluated (a
            required attribute is absent or the element cannot be read).
        """
        try:
            for name in rule.require_attributes:
                if await element.get_attribute(name) is None:
                    logger.debug(f"Rule '{rule.name}': required attribute '{name}' missing")
                    return None

            if rule.add_classes or rule.remove_classes:
                current = set(await element.classes())
                if not set(rule.add_classes) <= current:
                    return False
                if current & set(rule.remove_classes):
                    return False

            for name, value in rule.attributes.items():
                if await element.get_attribute(name) != value:
                    return False

            for prop, value in rule.style.items():
                if await element.get_style(prop) != value:
                    return False

            return True
        except Exception as e:
            logger.debug(f"Rule '{rule.name}': could not read element state: {e}")
            return None

    async def apply(self, element: Element, rule: PatchRule) -> ApplyResult:
        """Bring ``element`` into the rule's desired state if it is not already."""
        satisfied = await self.is_satisfied(element, rule)
        if satisfied is None:
            logger.info(f"Skipped '{rule.name}': element state could not be evaluated")
            return ApplyResult.SKIPPED
        if satisfied:
            return ApplyResult.ALREADY_APPLIED

        if rule.remove_classes:
            await element.remove_classes(rule.remove_classes)
        if rule.add_classes:
            await element.add_classes(rule.add_classes)
        for name, value in rule.attributes.items():
            await element.set_attribute(name, value)
        for prop, value in rule.style.items():
            await element.set_style(prop, value)

        logger.info(f"Applied '{rule.name}' ({rule.summary()})")
        return ApplyResult.APPLIED

    async def apply_rule(self, rule: PatchRule) -> ApplyResult:
        """Look the rule's target up and apply it; ``NOT_FOUND`` if nothing matches."""
        if rule.all_matches:
            elements = await find_all(self.host, rule.lookup)
        else:
            element = await find(self.host, rule.lookup)
            elements = [element] if element is not None else []

        if not elements:
            return ApplyResult.NOT_FOUND

        results: List[ApplyResult] = [await self.apply(el, rule) for el in elements]
        if ApplyResult.APPLIED in results:
            return ApplyResult.APPLIED
        if all(result is ApplyResult.ALREADY_APPLIED for result in results):
            return ApplyResult.ALREADY_APPLIED
        return ApplyResult.SKIPPED
