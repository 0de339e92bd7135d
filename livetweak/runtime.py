"""
Wires the core components together for one live document.
"""

import logging
from types import MappingProxyType
from typing import Mapping, Optional

from .config import Context, load_config
from .core.lookup import find
from .core.patcher import PatchApplier, PatchRule
from .core.reconciler import Reconciler
from .core.shortcuts import EscapeHandler, Platform, ShortcutDispatcher, detect_platform
from .core.waiter import ElementWaiter
from .core.watcher import Watcher
from .core.workflow import ActionDescriptor, WorkflowEngine
from .host.base import Host, KeyEvent

logger = logging.getLogger(__name__)


class Runtime:
    """
    Keeps a Context's adjustments applied to ``host`` and serves its shortcuts.

    Construct it, then ``await init()`` once. Components are exposed as
    attributes for callers that need them (the CLI, tests); the registry and
    binding table are exposed read-only.
    """

    def __init__(self, host: Host, context: Context):
        self.host = host
        self.context = context
        watch = context.watch

        self.applier = PatchApplier(host)
        self.waiter = ElementWaiter(host, watch.root, watch.mutation_filter)
        self.reconciler = Reconciler(host, list(context.rules.values()), self.applier, context.retry)
        self.engine = WorkflowEngine(host, self.waiter, self.applier, context.actions, context.rules)
        self.watcher = Watcher(
            host,
            self.reconciler.reconcile,
            root=watch.root,
            mutation_filter=watch.mutation_filter,
            debounce_ms=watch.debounce_ms,
        )
        self.platform: Optional[Platform] = None
        self.dispatcher: Optional[ShortcutDispatcher] = None
        self.started = False

    @property
    def registry(self) -> Mapping[str, PatchRule]:
        return MappingProxyType(self.context.rules)

    @property
    def bindings(self) -> Mapping[str, str]:
        return MappingProxyType(self.context.bindings.as_dict())

    @property
    def actions(self) -> Mapping[str, ActionDescriptor]:
        return MappingProxyType(self.context.actions)

    async def init(self) -> None:
        """Install the mutation watcher and keydown listener, then reconcile once."""
        if self.started:
            return

        self.platform = detect_platform(self.host.platform, self.context.default_platform)
        escape = EscapeHandler(self.host, self.context.escape) if self.context.escape else None
        self.dispatcher = ShortcutDispatcher(self.context.bindings, self.engine, self.platform, escape)

        await self.host.listen_keys(
            self._on_keydown,
            intercepts=self.context.bindings.combos(),
            platform=self.platform.value,
            escape=self.context.escape.to_options() if self.context.escape else None,
        )
        await self.watcher.start()
        self.started = True

        await self.reconciler.reconcile()
        logger.info(f"Platform: {self.platform.value} (primary modifier: "
                    f"{'meta' if self.platform is Platform.MAC else 'ctrl'})")
        logger.info(f"Initial page type: {await self.page_type()}")
        logger.info(f"Profile '{self.context.name}' active\n{self.describe()}")

    async def close(self) -> None:
        await self.watcher.stop()
        await self.engine.shutdown()
        self.started = False

    async def _on_keydown(self, event: KeyEvent) -> bool:
        if self.dispatcher is None:
            return False
        return await self.dispatcher.handle(event)

    async def page_type(self) -> str:
        """First configured page type whose marker is present, else ``other``."""
        for name, marker in self.context.page_types.items():
            if await find(self.host, marker) is not None:
                return name
        return "other"

    def describe(self) -> str:
        lines = ["Rules:"]
        for rule in self.context.rules.values():
            lines.append(f"  {rule.name}: {rule.lookup.describe()} -> {rule.summary()}")
        lines.append("Hotkeys:")
        if self.context.escape is not None:
            lines.append("  escape: stop/cancel button (unless a modal or the settings panel is open)")
        for combo, action in self.context.bindings.items():
            lines.append(f"  {combo}: {action}")
        return "\n".join(lines)


async def init(host: Host, context: Optional[Context] = None) -> Runtime:
    """Build a Runtime for ``host`` (default profile if ``context`` is None) and start it."""
    runtime = Runtime(host, context if context is not None else load_config())
    await runtime.init()
    return runtime
