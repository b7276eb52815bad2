"""Core data model: commands, fetched content, subcommands and views."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Union

MAN_PAGES_LABEL = "Man Pages"


@dataclass(frozen=True, slots=True)
class Command:
    """Ordered, immutable token sequence such as ("git", "remote")."""

    tokens: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.tokens:
            raise ValueError("Command needs at least one token")
        if not isinstance(self.tokens, tuple):
            object.__setattr__(self, "tokens", tuple(self.tokens))

    @classmethod
    def of(cls, *tokens: str) -> Command:
        return cls(tuple(tokens))

    @property
    def base(self) -> str:
        return self.tokens[0]

    @property
    def rest(self) -> tuple[str, ...]:
        return self.tokens[1:]

    @property
    def joined(self) -> str:
        return " ".join(self.tokens)

    @property
    def man_name(self) -> str:
        # git remote -> git-remote
        return "-".join(self.tokens)

    def extend(self, name: str) -> Command:
        return Command((*self.tokens, name))

    def __str__(self) -> str:
        return self.joined


class ContentSource(enum.Enum):
    HELP = "help"
    MAN = "man"

    @property
    def tag(self) -> str:
        return "Help" if self is ContentSource.HELP else "Man"


@dataclass(frozen=True, slots=True)
class FetchResult:
    text: str
    source: ContentSource


@dataclass(frozen=True, slots=True)
class CommandExtension:
    """Selecting re-runs the fetch chain for ``command + [name]``."""


@dataclass(frozen=True, slots=True)
class ManTarget:
    page: str


@dataclass(frozen=True, slots=True)
class InvokeCommand:
    """An explicit command line whose output is shown as-is."""

    argv: tuple[str, ...]


InvokeOverride = Union[CommandExtension, ManTarget, InvokeCommand]


@dataclass(frozen=True, slots=True)
class Subcommand:
    name: str
    description: str = ""
    invoke_override: InvokeOverride | None = None
    origin_label: str | None = None


@dataclass(frozen=True, slots=True)
class View:
    """A fully resolved, renderable snapshot. Never edited in place."""

    command: Command
    content: FetchResult
    subcommands: tuple[Subcommand, ...] = ()
    found: bool = True

    @property
    def breadcrumb(self) -> str:
        return self.command.joined

    @property
    def source(self) -> ContentSource:
        return self.content.source

    def with_subcommands(self, subcommands: tuple[Subcommand, ...]) -> View:
        return replace(self, subcommands=tuple(subcommands))


def not_found_view(command: Command) -> View:
    """Sentinel view for a command whose every fetch strategy failed."""
    text = f"No documentation found for '{command.joined}'.\n"
    return View(
        command=command,
        content=FetchResult(text=text, source=ContentSource.HELP),
        subcommands=(),
        found=False,
    )


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    view: View
    scroll_offset: int = 0


@dataclass(slots=True)
class NavigationState:
    """Owned by the NavigationController; ``history`` is the ancestor chain."""

    current: View
    current_scroll: int = 0
    history: list[HistoryEntry] = field(default_factory=list)

    @property
    def depth(self) -> int:
        return len(self.history)
