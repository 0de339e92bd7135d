#!/usr/bin/env python3
"""
Command implementations for the livetweak CLI.
"""

import argparse
import logging

from .config import load_config
from .core.shortcuts import Platform
from .errors import ConfigError
from .host.launcher import BrowserSession
from .host.page import PageHost
from .runtime import Runtime

logger = logging.getLogger(__name__)

MAC_KEY_NAMES = {"cmd": "⌘", "alt": "⌥", "ctrl": "⌃", "shift": "⇧"}
OTHER_KEY_NAMES = {"cmd": "Ctrl", "alt": "Alt", "meta": "Win", "shift": "Shift"}


def display_combo(combo: str, platform: Platform) -> str:
    """Render a canonical combination with the platform's key names."""
    head, _, key = combo.rpartition("+")
    if not key:
        head, key = head[:-1], "+"
    modifiers = head.split("+") if head else []
    names = MAC_KEY_NAMES if platform is Platform.MAC else OTHER_KEY_NAMES
    rendered = [names.get(modifier, modifier.title()) for modifier in modifiers]
    rendered.append(key.upper() if len(key) == 1 else key.title())
    return ("" if platform is Platform.MAC else "+").join(rendered)


async def run_command(args: argparse.Namespace) -> int:
    """Open the target page and keep the profile applied until the tab closes."""
    print("🚀 livetweak")
    print("=" * 40)

    context = load_config(args.config)
    url = args.url or context.url
    if not url:
        print("❌ No URL given and the profile has no 'url'")
        return 1
    print(f"📁 Profile: {context.name} ({context.source})")
    print(f"🌐 Target: {url}")

    async with BrowserSession(
        cdp_url=args.cdp_url,
        use_chrome=args.chrome,
        user_data_dir=args.profile_dir,
        headless=args.headless,
    ) as session:
        page = await session.open(url)
        host = PageHost(page)
        await host.attach()

        runtime = Runtime(host, context)
        await runtime.init()
        print(f"✅ Active on {page.url}: {len(runtime.registry)} rules, {len(runtime.bindings)} shortcuts")
        print("   Close the tab (or press Ctrl+C) to stop.")

        try:
            await page.wait_for_event("close", timeout=0)
        finally:
            await runtime.close()

    print("⏹️  Page closed")
    return 0


async def rules_command(args: argparse.Namespace) -> int:
    """List the patch rules of a profile."""
    context = load_config(args.config)
    print(f"📁 Profile: {context.name} ({context.source})")
    for rule in context.rules.values():
        print(f"\n• {rule.name}")
        if rule.description:
            print(f"    {rule.description}")
        print(f"    target: {rule.lookup.describe()}{' (all matches)' if rule.all_matches else ''}")
        if rule.when is not None:
            print(f"    when:   {rule.when.describe()}")
        print(f"    patch:  {rule.summary()}")
        policy = rule.retry or context.retry
        if policy.max_attempts > 1:
            print(f"    retry:  {policy.max_attempts} attempts, {policy.delay_ms}ms apart")
    return 0


async def bindings_command(args: argparse.Namespace) -> int:
    """List the keyboard shortcuts of a profile."""
    context = load_config(args.config)
    platform = Platform(args.platform) if args.platform else context.default_platform
    print(f"📁 Profile: {context.name} ({platform.value} key names)")
    if context.escape is not None:
        print(f"  {'Esc':<14} stop/cancel button (unless a modal or the settings panel is open)")
    for combo, action in context.bindings.items():
        descriptor = context.actions[action]
        suffix = f" - {descriptor.description}" if descriptor.description else ""
        print(f"  {display_combo(combo, platform):<14} {action}{suffix}")
    return 0


async def check_command(args: argparse.Namespace) -> int:
    """Validate a profile without opening a browser."""
    try:
        context = load_config(args.config)
    except ConfigError as e:
        print(f"❌ Invalid profile: {e}")
        return 1

    print(f"✅ Profile '{context.name}' is valid")
    print(f"   {len(context.rules)} rules, {len(context.actions)} actions, {len(context.bindings)} shortcuts")
    unbound = sorted(set(context.actions) - set(context.bindings.values()))
    if unbound:
        print(f"⚠️  Actions without a shortcut: {', '.join(unbound)}")
    return 0
