import asyncio

import pytest

from fakes import FakeElement
from livetweak.core.lookup import Lookup
from livetweak.core.patcher import ApplyResult, PatchApplier, PatchRule
from livetweak.core.reconciler import Reconciler
from livetweak.core.retry import RetryPolicy, RetryState


class CountingApplier(PatchApplier):
    def __init__(self, host):
        super().__init__(host)
        self.calls = 0

    async def apply_rule(self, rule):
        self.calls += 1
        return await super().apply_rule(rule)


@pytest.mark.asyncio
async def test_pass_applies_every_rule(host):
    panel = host.body.append(FakeElement("div", id="panel"))
    rules = [
        PatchRule("panel-open", Lookup("#panel"), add_classes=("open",)),
        PatchRule("absent", Lookup("#absent"), add_classes=("x",)),
    ]
    reconciler = Reconciler(host, rules, PatchApplier(host))

    outcomes = await reconciler.reconcile()

    assert outcomes["panel-open"].result is ApplyResult.APPLIED
    assert outcomes["absent"].state is RetryState.EXHAUSTED
    assert panel.class_list == ["open"]


@pytest.mark.asyncio
async def test_guard_skips_rule_until_container_exists(host):
    rule = PatchRule(
        "avatar-size",
        Lookup("img", within=Lookup(".start")),
        add_classes=("w-41",),
        when=Lookup(".start"),
        retry=RetryPolicy(max_attempts=5, delay_ms=10),
    )
    applier = CountingApplier(host)
    reconciler = Reconciler(host, [rule], applier)

    assert await reconciler.reconcile() == {}
    assert applier.calls == 0

    start = host.body.append(FakeElement("div", classes=["start"]))
    avatar = start.append(FakeElement("img"))
    outcomes = await reconciler.reconcile()

    assert outcomes["avatar-size"].ok
    assert "w-41" in avatar.class_list


@pytest.mark.asyncio
async def test_rule_retries_until_element_appears(host):
    rule = PatchRule("late", Lookup("#late"), add_classes=("ready",),
                     retry=RetryPolicy(max_attempts=5, delay_ms=20))
    reconciler = Reconciler(host, [rule], PatchApplier(host))

    async def insert():
        await asyncio.sleep(0.03)
        host.body.append(FakeElement("div", id="late"))

    outcomes, _ = await asyncio.gather(reconciler.reconcile(), insert())

    assert outcomes["late"].ok
    assert 1 < outcomes["late"].attempts <= 5


@pytest.mark.asyncio
async def test_overlapping_pass_reruns_instead_of_duplicating(host):
    rule = PatchRule("missing", Lookup("#missing"), add_classes=("x",),
                     retry=RetryPolicy(max_attempts=3, delay_ms=20))
    applier = CountingApplier(host)
    reconciler = Reconciler(host, [rule], applier)

    first = asyncio.ensure_future(reconciler.reconcile())
    await asyncio.sleep(0.01)
    assert await reconciler.reconcile() == {}
    assert await reconciler.reconcile() == {}

    outcomes = await first
    assert outcomes["missing"].attempts == 3
    assert applier.calls == 6


@pytest.mark.asyncio
async def test_rule_errors_are_logged_and_other_rules_still_run(host, caplog):
    good = host.body.append(FakeElement("div", id="good"))

    class BrokenApplier(PatchApplier):
        async def apply_rule(self, rule):
            if rule.name == "broken":
                raise RuntimeError("detached")
            return await super().apply_rule(rule)

    rules = [
        PatchRule("broken", Lookup("#good"), add_classes=("a",)),
        PatchRule("good", Lookup("#good"), add_classes=("b",)),
    ]
    outcomes = await Reconciler(host, rules, BrokenApplier(host)).reconcile()

    assert "broken" not in outcomes
    assert outcomes["good"].ok
    assert good.class_list == ["b"]
    assert "Rule 'broken' failed" in caplog.text
