"""
livetweak - keep declarative UI adjustments applied to a live single-page app.

This package provides:
- A reconciliation core that watches the document for structural changes and
  re-applies patch rules idempotently, with bounded waits and retries
- Keyboard shortcut dispatch, including multi-step workflows
- A Playwright host that runs the core against a real browser tab

Modules:
    core: Watcher, element waiter, patch applier, retry scheduler, shortcuts, workflows
    host: Host interfaces and the Playwright implementation
    config: Profile loading
    runtime: Component wiring and the init() entry point
"""

__version__ = "0.1.0"

from .config import Context, load_config
from .errors import ConfigError, LivetweakError
from .runtime import Runtime, init

__all__ = [
    "Context",
    "load_config",
    "ConfigError",
    "LivetweakError",
    "Runtime",
    "init",
]
