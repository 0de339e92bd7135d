"""
Hosts: the live document tree the core reconciles against.
"""

from .base import Element, Host, KeyEvent, MutationFilter, Subscription
from .launcher import BrowserSession, ChromeManager
from .page import PageElement, PageHost

__all__ = [
    "Element",
    "Host",
    "KeyEvent",
    "MutationFilter",
    "Subscription",
    "BrowserSession",
    "ChromeManager",
    "PageElement",
    "PageHost",
]
