"""helpv - navigate CLI help text and man pages by subcommand."""

from __future__ import annotations

from .models import (
    Command,
    CommandExtension,
    ContentSource,
    FetchResult,
    HistoryEntry,
    InvokeCommand,
    ManTarget,
    NavigationState,
    Subcommand,
    View,
)
from .navigation import NavigationController

__version__ = "0.1.0"

__all__ = [
    "Command",
    "CommandExtension",
    "ContentSource",
    "FetchResult",
    "HistoryEntry",
    "InvokeCommand",
    "ManTarget",
    "NavigationController",
    "NavigationState",
    "Subcommand",
    "View",
    "__version__",
]
