"""
Reconciliation core: watching, waiting, patching, retrying and dispatching.
"""

from .lookup import Lookup, find, find_all
from .patcher import ApplyResult, PatchApplier, PatchRule
from .reconciler import Reconciler
from .retry import RetryOutcome, RetryPolicy, RetryState, with_retry
from .shortcuts import (
    EscapeConfig,
    EscapeHandler,
    Platform,
    ShortcutDispatcher,
    ShortcutTable,
    detect_platform,
    normalize_event,
    parse_combo,
)
from .waiter import ElementWaiter, WaitOutcome, WaitRequest, WaitState
from .watcher import Watcher
from .workflow import (
    ActionDescriptor,
    Interaction,
    Step,
    WorkflowEngine,
    WorkflowResult,
    WorkflowStatus,
)

__all__ = [
    "Lookup",
    "find",
    "find_all",
    "ApplyResult",
    "PatchApplier",
    "PatchRule",
    "Reconciler",
    "RetryOutcome",
    "RetryPolicy",
    "RetryState",
    "with_retry",
    "EscapeConfig",
    "EscapeHandler",
    "Platform",
    "ShortcutDispatcher",
    "ShortcutTable",
    "detect_platform",
    "normalize_event",
    "parse_combo",
    "ElementWaiter",
    "WaitOutcome",
    "WaitRequest",
    "WaitState",
    "Watcher",
    "ActionDescriptor",
    "Interaction",
    "Step",
    "WorkflowEngine",
    "WorkflowResult",
    "WorkflowStatus",
]
