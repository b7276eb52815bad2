"""Exception hierarchy for helpv."""

from __future__ import annotations


class HelpvError(Exception):
    """Base exception for helpv failures."""


class LaunchError(HelpvError):
    """A process could not be started (missing binary, permissions)."""


class ProcessTimeout(LaunchError):
    """A process ran past its timeout and was killed."""


class StrategyUnusable(HelpvError):
    """One fetch strategy produced nothing usable; the next one is tried."""


class FetchFailed(HelpvError):
    """Every fetch strategy for a command was exhausted."""

    def __init__(self, command: object) -> None:
        super().__init__(f"Could not fetch help for '{command}'")
        self.command = command


class ConfigPatternInvalid(ValueError, HelpvError):
    """A configured regex failed to compile and was replaced by a default."""

    def __init__(self, *, pattern: str, kind: str, reason: str) -> None:
        super().__init__(f"Invalid {kind} pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.kind = kind


class DiscoveryBackgroundFailure(HelpvError):
    """A background discovery source failed (e.g. no man database)."""
