#!/usr/bin/env python3
"""
Command-line interface for livetweak.

This module allows the livetweak package to be executed as a command-line tool
using: python -m livetweak

Usage:
    python -m livetweak run [options]        # Keep a profile applied to a live page
    python -m livetweak rules [--config F]   # List patch rules
    python -m livetweak bindings             # List keyboard shortcuts
    python -m livetweak --help               # Show help
"""

import sys
import asyncio
from .cli import main

if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nStopped by user.")
        sys.exit(1)
