"""
Profile loading: the selector/rule registry, shortcut bindings and policies.

A profile is a JSON document. The bundled ``data/typingmind.json`` is used
when no path is given and ``LIVETWEAK_CONFIG`` is unset.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .core.lookup import Lookup
from .core.patcher import PatchRule
from .core.retry import RetryPolicy
from .core.shortcuts import EscapeConfig, Platform, ShortcutTable
from .core.workflow import ActionDescriptor, Interaction, Step
from .errors import ConfigError
from .host.base import MutationFilter

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LIVETWEAK_CONFIG"
DEFAULT_PROFILE = Path(__file__).parent / "data" / "typingmind.json"


@dataclass
class WatchConfig:
    root: str = "body"
    debounce_ms: int = 200
    mutation_filter: MutationFilter = field(default_factory=MutationFilter)


@dataclass
class Context:
    """
    Everything the runtime components are constructed from.

    Built once from a profile and handed to the components explicitly; nothing
    reads configuration from module globals.
    """
    name: str = "profile"
    url: str = ""
    rules: Dict[str, PatchRule] = field(default_factory=dict)
    actions: Dict[str, ActionDescriptor] = field(default_factory=dict)
    bindings: ShortcutTable = field(default_factory=ShortcutTable)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    watch: WatchConfig = field(default_factory=WatchConfig)
    escape: Optional[EscapeConfig] = None
    default_platform: Platform = Platform.OTHER
    page_types: Dict[str, Lookup] = field(default_factory=dict)
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "Context":
        if not isinstance(data, dict):
            raise ConfigError("profile must be a JSON object")

        retry = _parse_retry(data.get("retry", {}), "retry")
        rules = {}
        for index, raw in enumerate(data.get("rules", [])):
            rule = _parse_rule(raw, f"rules[{index}]")
            if rule.name in rules:
                raise ConfigError(f"duplicate rule name '{rule.name}'", f"rules[{index}]")
            rules[rule.name] = rule

        actions = {}
        for index, raw in enumerate(data.get("actions", [])):
            action = _parse_action(raw, f"actions[{index}]", rules)
            if action.name in actions:
                raise ConfigError(f"duplicate action name '{action.name}'", f"actions[{index}]")
            actions[action.name] = action

        shortcuts = data.get("shortcuts", {})
        if not isinstance(shortcuts, dict):
            raise ConfigError("expected an object of combination -> action", "shortcuts")
        for combo, action in shortcuts.items():
            if action not in actions:
                raise ConfigError(f"unknown action '{action}'", f"shortcuts.{combo}")

        platform = data.get("default_platform", Platform.OTHER.value)
        try:
            default_platform = Platform(platform)
        except ValueError:
            raise ConfigError(f"must be 'mac' or 'other', got {platform!r}", "default_platform")

        return cls(
            name=data.get("name", "profile"),
            url=data.get("url", ""),
            rules=rules,
            actions=actions,
            bindings=ShortcutTable(shortcuts),
            retry=retry,
            watch=_parse_watch(data.get("watch", {})),
            escape=_parse_escape(data.get("escape")),
            default_platform=default_platform,
            page_types={
                name: Lookup.parse(value, f"page_types.{name}")
                for name, value in data.get("page_types", {}).items()
            },
            source=source,
        )


def _require_dict(value: Any, key: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"expected an object, got {type(value).__name__}", key)
    return value


def _parse_retry(value: Any, key: str) -> RetryPolicy:
    data = _require_dict(value, key)
    try:
        return RetryPolicy(
            max_attempts=int(data.get("max_attempts", 1)),
            delay_ms=int(data.get("delay_ms", 0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(str(e), key)


def _parse_watch(value: Any) -> WatchConfig:
    data = _require_dict(value, "watch")
    return WatchConfig(
        root=data.get("root", "body"),
        debounce_ms=int(data.get("debounce_ms", 200)),
        mutation_filter=MutationFilter(
            child_list=bool(data.get("child_list", True)),
            subtree=bool(data.get("subtree", True)),
            attributes=bool(data.get("attributes", False)),
        ),
    )


def _parse_escape(value: Any) -> Optional[EscapeConfig]:
    if value is None or value is False:
        return None
    data = _require_dict(value, "escape")
    for required in ("modal", "panel"):
        if required not in data:
            raise ConfigError(f"missing '{required}'", "escape")
    return EscapeConfig(
        modal=Lookup.parse(data["modal"], "escape.modal"),
        panel=Lookup.parse(data["panel"], "escape.panel"),
        buttons=data.get("buttons", "button"),
        stop_label=data.get("stop_label", "stop"),
        cancel_label=data.get("cancel_label", "cancel"),
        danger_class=data.get("danger_class", "bg-red-500"),
    )


def _parse_rule(value: Any, key: str) -> PatchRule:
    data = _require_dict(value, key)
    name = data.get("name")
    if not name:
        raise ConfigError("missing 'name'", key)
    if "lookup" not in data:
        raise ConfigError("missing 'lookup'", key)

    rule = PatchRule(
        name=name,
        lookup=Lookup.parse(data["lookup"], f"{key}.lookup"),
        add_classes=tuple(data.get("add_classes", ())),
        remove_classes=tuple(data.get("remove_classes", ())),
        attributes={k: str(v) for k, v in data.get("attributes", {}).items()},
        style={k: str(v) for k, v in data.get("style", {}).items()},
        require_attributes=tuple(data.get("require_attributes", ())),
        all_matches=bool(data.get("all_matches", False)),
        when=Lookup.parse(data["when"], f"{key}.when") if data.get("when") else None,
        retry=_parse_retry(data["retry"], f"{key}.retry") if "retry" in data else None,
        description=data.get("description", ""),
    )
    if rule.is_empty():
        raise ConfigError("rule changes nothing", key)
    return rule


def _parse_step(value: Any, key: str, rules: Dict[str, PatchRule]) -> Step:
    data = _require_dict(value, key)
    try:
        interaction = Interaction(data.get("interaction", "click"))
    except ValueError:
        choices = ", ".join(i.value for i in Interaction)
        raise ConfigError(f"unknown interaction {data.get('interaction')!r} (expected one of {choices})", key)

    rule = data.get("rule")
    if interaction is Interaction.PATCH:
        if rule not in rules:
            raise ConfigError(f"unknown rule {rule!r}", key)
    elif "target" not in data:
        raise ConfigError("missing 'target'", key)

    return Step(
        interaction=interaction,
        target=Lookup.parse(data["target"], f"{key}.target") if "target" in data else None,
        timeout_ms=int(data.get("timeout_ms", 0)),
        delay_ms=int(data.get("delay_ms", 0)),
        expect=Lookup.parse(data["expect"], f"{key}.expect") if data.get("expect") else None,
        expect_timeout_ms=int(data.get("expect_timeout_ms", 2000)),
        rule=rule,
    )


def _parse_action(value: Any, key: str, rules: Dict[str, PatchRule]) -> ActionDescriptor:
    data = _require_dict(value, key)
    name = data.get("name")
    if not name:
        raise ConfigError("missing 'name'", key)
    steps: List[Step] = [
        _parse_step(raw, f"{key}.steps[{index}]", rules)
        for index, raw in enumerate(data.get("steps", []))
    ]
    if not steps:
        raise ConfigError("action has no steps", key)
    return ActionDescriptor(
        name=name,
        steps=steps,
        exclusive=bool(data.get("exclusive", False)),
        description=data.get("description", ""),
    )


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """Explicit path, then ``LIVETWEAK_CONFIG``, then the bundled profile."""
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_PROFILE


def load_config(path: Optional[Union[str, Path]] = None) -> Context:
    """
    Load a profile into a Context.

    Args:
        path: Profile JSON file. See ``resolve_config_path`` for the fallbacks.

    Returns:
        The validated Context.

    Raises:
        ConfigError: If the file is missing, not valid JSON, or fails validation.
    """
    config_path = resolve_config_path(path)
    if not config_path.exists():
        raise ConfigError(f"profile not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {config_path}: {e}")

    context = Context.from_dict(data, source=str(config_path))
    logger.info(
        f"Loaded profile '{context.name}' from {config_path}: "
        f"{len(context.rules)} rules, {len(context.actions)} actions, {len(context.bindings)} shortcuts"
    )
    return context
