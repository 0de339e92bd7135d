import pytest

from fakes import FakeElement
from livetweak.core.lookup import Lookup, find, find_all
from livetweak.errors import ConfigError


def test_parse_selector_string():
    assert Lookup.parse("#panel") == Lookup(selector="#panel")


def test_parse_nested_lookup():
    lookup = Lookup.parse({
        "selector": "button",
        "text": "Settings",
        "within": {"selector": "nav", "visible": True},
    })
    assert lookup.within == Lookup(selector="nav", visible=True)
    assert "within=(nav)" in lookup.describe()


@pytest.mark.parametrize("value", ["", "   ", {"text": "x"}, 42, {"selector": "a", "colour": "red"}])
def test_parse_rejects_invalid_values(value):
    with pytest.raises(ConfigError):
        Lookup.parse(value, "rules[0].lookup")


@pytest.mark.asyncio
async def test_find_returns_none_when_absent(host):
    assert await find(host, Lookup("#missing")) is None
    assert await find_all(host, Lookup("#missing")) == []


@pytest.mark.asyncio
async def test_text_match_is_trimmed_and_optionally_case_insensitive(host):
    host.body.append(FakeElement("button", "  Stop  "))
    host.body.append(FakeElement("button", "Regenerate"))

    assert await find(host, Lookup("button", text="Stop")) is not None
    assert await find(host, Lookup("button", text="stop")) is None
    assert await find(host, Lookup("button", text="stop", ignore_case=True)) is not None
    assert len(await find_all(host, Lookup("button", text_contains="gen"))) == 1


@pytest.mark.asyncio
async def test_index_selects_among_matches(host):
    first = host.body.append(FakeElement("button", "a", data_element_id="play"))
    last = host.body.append(FakeElement("button", "b", data_element_id="play"))

    assert await find(host, Lookup('[data-element-id="play"]')) is first
    assert await find(host, Lookup('[data-element-id="play"]', index=-1)) is last
    assert await find(host, Lookup('[data-element-id="play"]', index=5)) is None


@pytest.mark.asyncio
async def test_sibling_text_and_exclude_class(host):
    row = host.body.append(FakeElement("div"))
    toggle = row.append(FakeElement("button", classes=["switch"]))
    row.append(FakeElement("span", "Auto play assistant messages"))
    row.append(FakeElement("button", "Cancel", classes=["bg-red-500"]))
    keep = row.append(FakeElement("button", "Cancel"))

    assert await find(host, Lookup("button", sibling_text="Auto play")) is toggle
    assert await find(host, Lookup("button", text="Cancel", exclude_class="bg-red-500")) is keep


@pytest.mark.asyncio
async def test_child_and_within_scope(host):
    menu = host.body.append(FakeElement("div", id="menu"))
    menu.append(FakeElement("button", children=[FakeElement("span", "Manage Cloud Sync")]))
    outside = host.body.append(FakeElement("button", children=[FakeElement("span", "Other")]))

    found = await find_all(host, Lookup("button", child=Lookup("span", text="Manage Cloud Sync")))
    assert found == [menu.children[0]]
    assert await find_all(host, Lookup("button", within=Lookup("#menu"))) == [menu.children[0]]
    assert outside not in await find_all(host, Lookup("button", within=Lookup("#menu")))
    assert await find_all(host, Lookup("button", within=Lookup("#absent"))) == []


@pytest.mark.asyncio
async def test_text_from_reads_expected_text_from_another_element(host):
    host.body.append(FakeElement("div", "Research Assistant", id="active-agent"))
    host.body.append(FakeElement("div", "Writer", classes=["agent"]))
    match = host.body.append(FakeElement("div", "Research Assistant", classes=["agent"]))

    assert await find(host, Lookup(".agent", text_from="#active-agent")) is match
    assert await find(host, Lookup(".agent", text_from="#nobody")) is None


@pytest.mark.asyncio
async def test_host_errors_are_treated_as_not_found(host):
    host.body.append(FakeElement("div", id="panel"))
    host.fail_queries = True
    assert await find(host, Lookup("#panel")) is None
