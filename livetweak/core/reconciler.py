"""
Reconciliation pass: every registry rule through the retry scheduler into the
patch applier.
"""

import asyncio
import logging
from typing import Dict, Optional, Sequence, Set

from ..host.base import Host
from .lookup import find
from .patcher import ApplyResult, PatchApplier, PatchRule
from .retry import RetryOutcome, RetryPolicy, with_retry

logger = logging.getLogger(__name__)


def _not_found(result: ApplyResult) -> bool:
    return result is ApplyResult.NOT_FOUND


class Reconciler:
    """
    Re-checks each rule and re-applies it where the page has drifted.

    A rule whose previous pass is still retrying is not started twice; the
    running pass is flagged and runs once more when it finishes.
    """

    def __init__(self, host: Host, rules: Sequence[PatchRule], applier: PatchApplier,
                 default_policy: Optional[RetryPolicy] = None):
        self.host = host
        self.rules = list(rules)
        self.applier = applier
        self.default_policy = default_policy or RetryPolicy()
        self.passes = 0
        self._running: Set[str] = set()
        self._dirty: Set[str] = set()

    async def reconcile(self) -> Dict[str, RetryOutcome]:
        """Run one pass over all rules; returns outcomes keyed by rule name."""
        self.passes += 1
        outcomes = await asyncio.gather(*(self._schedule(rule) for rule in self.rules))
        return {rule.name: outcome for rule, outcome in zip(self.rules, outcomes) if outcome is not None}

    async def _schedule(self, rule: PatchRule) -> Optional[RetryOutcome]:
        if rule.name in self._running:
            self._dirty.add(rule.name)
            return None

        self._running.add(rule.name)
        try:
            while True:
                self._dirty.discard(rule.name)
                outcome = await self.reconcile_rule(rule)
                if rule.name not in self._dirty:
                    return outcome
        finally:
            self._running.discard(rule.name)
            self._dirty.discard(rule.name)

    async def reconcile_rule(self, rule: PatchRule) -> Optional[RetryOutcome]:
        """Apply a single rule with its retry policy. Never raises."""
        try:
            if rule.when is not None and await find(self.host, rule.when) is None:
                logger.debug(f"Rule '{rule.name}': guard '{rule.when.describe()}' absent")
                return None

            return await with_retry(
                lambda: self.applier.apply_rule(rule),
                rule.retry or self.default_policy,
                missing=_not_found,
                label=f"Rule '{rule.name}'",
            )
        except Exception:
            logger.exception(f"Rule '{rule.name}' failed")
            return None
