import asyncio

import pytest

from fakes import FakeElement
from livetweak.config import Context, WatchConfig
from livetweak.core.lookup import Lookup
from livetweak.core.patcher import PatchRule
from livetweak.core.shortcuts import EscapeConfig, Platform, ShortcutTable
from livetweak.core.workflow import ActionDescriptor, Interaction, Step
from livetweak.runtime import Runtime, init


def make_context(**kwargs):
    rule = PatchRule("panel-open", Lookup("#panel"), add_classes=("open",))
    action = ActionDescriptor("open-settings", [Step(Interaction.CLICK, Lookup("#settings"))])
    defaults = dict(
        name="test",
        rules={rule.name: rule},
        actions={action.name: action},
        bindings=ShortcutTable({"cmd+,": "open-settings"}),
        watch=WatchConfig(debounce_ms=30),
        page_types={"chat": Lookup(".chat-start")},
    )
    defaults.update(kwargs)
    return Context(**defaults)


@pytest.mark.asyncio
async def test_inserted_panel_is_patched_once_after_debounce(host):
    runtime = await init(host, make_context())
    panel = FakeElement("div", id="panel")

    host.append(panel)
    await asyncio.sleep(0.01)
    assert panel.class_list == []

    await asyncio.sleep(0.1)
    assert panel.class_list == ["open"]
    assert panel.writes == 1

    host.append(FakeElement("span"))
    await asyncio.sleep(0.1)
    assert panel.writes == 1
    assert runtime.reconciler.passes == 3

    await runtime.close()
    assert host.active_subscriptions == 0


@pytest.mark.asyncio
async def test_init_reconciles_existing_elements(host):
    panel = host.body.append(FakeElement("div", id="panel"))
    runtime = Runtime(host, make_context())
    await runtime.init()
    await runtime.init()

    assert panel.class_list == ["open"]
    assert host.active_subscriptions == 1
    await runtime.close()


@pytest.mark.asyncio
async def test_keydown_routed_through_host(mac_host):
    settings = mac_host.body.append(FakeElement("button", id="settings"))
    runtime = await init(mac_host, make_context())

    assert runtime.platform is Platform.MAC
    assert mac_host.key_platform == "mac"
    assert mac_host.intercepts == ["cmd+,"]

    event = await mac_host.press(",", meta=True)
    assert event.consumed and event.default_prevented
    await asyncio.gather(*runtime.engine._tasks)
    assert settings.clicks == 1

    other = await mac_host.press(",", ctrl=True)
    assert not other.consumed
    await runtime.close()


@pytest.mark.asyncio
async def test_escape_rule_handed_to_host(host):
    escape = EscapeConfig(modal=Lookup("#modal"), panel=Lookup("#nav-panel"), cancel_label="Cancel")
    runtime = await init(host, make_context(escape=escape))

    assert host.escape_options == {
        "modal": "#modal",
        "panel": "#nav-panel",
        "buttons": "button",
        "stop": "stop",
        "cancel": "cancel",
        "danger": "bg-red-500",
    }
    await runtime.close()


@pytest.mark.asyncio
async def test_no_escape_rule_without_escape_config(host):
    runtime = await init(host, make_context())
    assert host.escape_options is None
    await runtime.close()


@pytest.mark.asyncio
async def test_platform_falls_back_to_configured_default(host):
    runtime = await init(host, make_context(default_platform=Platform.MAC))
    assert runtime.platform is Platform.MAC
    await runtime.close()


def test_views_are_read_only(host):
    runtime = Runtime(host, make_context())

    with pytest.raises(TypeError):
        runtime.registry["new"] = None
    with pytest.raises(TypeError):
        runtime.bindings["cmd+k"] = "open-settings"
    assert list(runtime.actions) == ["open-settings"]


@pytest.mark.asyncio
async def test_page_type_and_describe(host):
    runtime = Runtime(host, make_context())
    assert await runtime.page_type() == "other"

    host.body.append(FakeElement("div", classes=["chat-start"]))
    assert await runtime.page_type() == "chat"

    summary = runtime.describe()
    assert "panel-open: #panel -> +class open" in summary
    assert "cmd+,: open-settings" in summary
