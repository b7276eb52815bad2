"""Subcommand discovery from help text, man pages and toolpack sources.

Producers, in output order:
1. Pattern-based parsing of help text (configured section/entry regex pairs,
   with git-style and broad fallbacks when nothing matched).
2. SEE ALSO references in man page content.
3. The man index: pages named `<base>-*` (`man -k`), plus toolpack discovery
   sources. This is the slow part and may run on a worker thread.

Each producer de-duplicates by name; results of different producers are
concatenated as-is, their origin labels tell them apart.
"""

from __future__ import annotations

import concurrent.futures
import logging
import re
import shlex
from typing import Callable, Final, Iterable, Sequence

from .config import Config, DiscoverySource, SubcommandPattern, compile_patterns
from .errors import DiscoveryBackgroundFailure, LaunchError
from .manpage import ManPages, man_env
from .models import (
    MAN_PAGES_LABEL,
    Command,
    ContentSource,
    FetchResult,
    InvokeCommand,
    InvokeOverride,
    ManTarget,
    Subcommand,
)
from .process import ProcessRunner

logger = logging.getLogger(__name__)

# Git lists commands three spaces in, grouped under lowercase headings.
_GIT_ENTRY_RE: Final = re.compile(r"^   ([a-z][\w-]*)\s{2,}(.+)$")
_BROAD_ENTRY_RE: Final = re.compile(r"^\s{2,6}([a-z][\w-]*):?\s{2,}(.*)$")
_SEE_ALSO_RE: Final = re.compile(r"(?i)^\s*see\s+also\s*$")
_MAN_REF_RE: Final = re.compile(r"([\w][\w.+-]*)\s?\(\d\w*\)")
_MAN_HEADER_RE: Final = re.compile(r"^(NAME|SYNOPSIS|DESCRIPTION)\s*$", re.MULTILINE)


def dedupe_by_name(items: Iterable[Subcommand]) -> list[Subcommand]:
    """Keep the first occurrence of each name."""
    seen: set[str] = set()
    out: list[Subcommand] = []
    for item in items:
        if item.name in seen:
            continue
        seen.add(item.name)
        out.append(item)
    return out


def merge_items(
    existing: Sequence[Subcommand], incoming: Iterable[Subcommand]
) -> tuple[Subcommand, ...]:
    """Append ``incoming`` items not already present under the same label."""
    present = {(item.origin_label, item.name) for item in existing}
    merged = list(existing)
    for item in incoming:
        key = (item.origin_label, item.name)
        if key in present:
            continue
        present.add(key)
        merged.append(item)
    return tuple(merged)


def looks_like_man_page(text: str) -> bool:
    headers = set(_MAN_HEADER_RE.findall(text))
    return "NAME" in headers and len(headers) >= 2


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _entry_from_match(match: re.Match[str]) -> tuple[str, str]:
    if match.re.groups >= 1 and match.group(1):
        name = match.group(1).strip()
    else:
        name = match.group(0).strip().split()[0] if match.group(0).strip() else ""
    description = ""
    if match.re.groups >= 2 and match.group(2):
        description = match.group(2).strip()
    return name, description


def _parse_pattern_sections(text: str, pattern: SubcommandPattern) -> list[Subcommand]:
    items: list[Subcommand] = []
    in_section = False
    entry_indent: int | None = None

    for line in text.splitlines():
        if pattern.section.search(line):
            in_section = True
            entry_indent = None
            continue
        if not in_section or not line.strip():
            continue

        match = pattern.entry.search(line)
        if match:
            name, description = _entry_from_match(match)
            if name and not name.startswith("-"):
                items.append(Subcommand(name=name, description=description))
                entry_indent = _indent(line)
                continue
        # Wrapped description of the previous entry.
        if entry_indent is not None and _indent(line) > entry_indent:
            continue
        in_section = False
        entry_indent = None

    return items


def _parse_git_style(text: str) -> list[Subcommand]:
    items: list[Subcommand] = []
    past_usage = False
    in_commands = False

    for line in text.splitlines():
        if line.startswith(("usage:", "Usage:")):
            past_usage = False
            continue
        if not past_usage:
            # The first blank line after the usage block opens the listing.
            if not line.strip():
                past_usage = True
            continue

        stripped = line.strip()
        if stripped and not line[0].isspace():
            if stripped[0].islower() or "(see also:" in stripped:
                in_commands = True
                continue
            if stripped.startswith(("'", '"')):
                in_commands = False
                continue

        if in_commands:
            match = _GIT_ENTRY_RE.match(line)
            if match:
                items.append(
                    Subcommand(name=match.group(1), description=match.group(2).strip())
                )
    return items


def _parse_broad(text: str) -> list[Subcommand]:
    items: list[Subcommand] = []
    in_section = False

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        lower = line.lower()
        unindented = not line[0].isspace()

        if unindented and ("command" in lower or "available" in lower):
            in_section = True
            continue
        if not in_section:
            continue
        if unindented:
            # Lowercase category headings keep the section open.
            if not stripped[0].islower() and "see also" not in lower:
                in_section = False
            continue

        match = _BROAD_ENTRY_RE.match(line)
        if match and not match.group(1).startswith("-"):
            items.append(
                Subcommand(name=match.group(1), description=match.group(2).strip())
            )
    return items


def parse_help_subcommands(
    text: str, patterns: Sequence[SubcommandPattern]
) -> list[Subcommand]:
    """Producer 1: subcommands listed in CLI help text."""
    found: list[Subcommand] = []
    for pattern in patterns:
        found.extend(_parse_pattern_sections(text, pattern))
    if not found:
        found = _parse_git_style(text)
    if not found:
        found = _parse_broad(text)
    return dedupe_by_name(found)


def parse_see_also(
    text: str, base: str, *, exclude: Iterable[str] = ()
) -> list[Subcommand]:
    """Producer 2: `name(N)` references from a man page's SEE ALSO section.

    Keeps references equal to ``base`` or starting with ``base-``.
    """
    collected: list[str] = []
    in_see_also = False
    for line in text.splitlines():
        if _SEE_ALSO_RE.match(line):
            in_see_also = True
            continue
        if not in_see_also:
            continue
        if line.strip() and not line[0].isspace():
            # Next top-level section header.
            break
        collected.append(line)

    if not collected:
        return []

    prefix = f"{base}-"
    skip = set(exclude)
    items: list[Subcommand] = []
    for match in _MAN_REF_RE.finditer(" ".join(collected)):
        name = match.group(1)
        if name in skip:
            continue
        if name != base and not name.startswith(prefix):
            continue
        items.append(
            Subcommand(
                name=name,
                invoke_override=ManTarget(name),
                origin_label=MAN_PAGES_LABEL,
            )
        )
    return dedupe_by_name(items)


def invoke_for(template: str, *, base: str, name: str) -> InvokeOverride:
    """Turn a toolpack `invoke` template into a drill-in target."""
    expanded = template.replace("{base}", base).replace("{name}", name)
    try:
        argv = shlex.split(expanded)
    except ValueError:
        argv = expanded.split()
    if len(argv) >= 2 and argv[0] == "man":
        return ManTarget(argv[-1])
    return InvokeCommand(tuple(argv))


def run_discovery_source(
    *,
    runner: ProcessRunner,
    source: DiscoverySource,
    base: str,
    timeout_s: float | None = None,
) -> list[Subcommand]:
    """Run one toolpack listing command and turn its matches into items."""
    try:
        entry_re = re.compile(source.pattern)
        section_re = re.compile(source.section) if source.section else None
    except re.error as e:
        raise DiscoveryBackgroundFailure(f"{source.label}: bad pattern: {e}") from e

    try:
        argv = shlex.split(source.run.replace("{base}", base))
    except ValueError:
        argv = source.run.replace("{base}", base).split()
    try:
        result = runner.run(argv, timeout=timeout_s, env=man_env())
    except LaunchError as e:
        raise DiscoveryBackgroundFailure(f"{source.label}: {e}") from e
    if result.exit_code != 0:
        return []

    items: list[Subcommand] = []
    in_section = section_re is None
    for line in result.stdout.splitlines():
        if section_re is not None and section_re.search(line):
            in_section = True
            continue
        if not in_section:
            continue
        match = entry_re.search(line)
        if not match:
            continue
        name, description = _entry_from_match(match)
        if not name or name.startswith("-"):
            continue
        items.append(
            Subcommand(
                name=name,
                description=description,
                invoke_override=invoke_for(source.invoke, base=base, name=name),
                origin_label=source.label,
            )
        )
    return dedupe_by_name(items)


class SubcommandDiscoveryEngine:
    def __init__(
        self,
        *,
        runner: ProcessRunner,
        config: Config,
        man_pages: ManPages | None = None,
        patterns: Sequence[SubcommandPattern] | None = None,
    ) -> None:
        self.runner = runner
        self.config = config
        self.man_pages = man_pages or ManPages(runner=runner, timeout_s=config.timeout_s)
        if patterns is None:
            patterns, errors = compile_patterns(config.subcommand_patterns)
            for error in errors:
                logger.warning("%s; using the built-in default", error)
        self.patterns = list(patterns)

    def discover(
        self,
        content: FetchResult,
        command: Command,
        *,
        include_background: bool = False,
    ) -> tuple[Subcommand, ...]:
        """Synchronous producers for a freshly fetched page.

        With ``include_background`` the man index and toolpack sources are
        searched inline as well.
        """
        items: list[Subcommand] = []
        if content.source is ContentSource.HELP or not looks_like_man_page(content.text):
            items.extend(parse_help_subcommands(content.text, self.patterns))
        if content.source is ContentSource.MAN:
            items.extend(
                parse_see_also(
                    content.text,
                    command.base,
                    exclude=(command.man_name, command.tokens[-1]),
                )
            )
        if include_background:
            items.extend(self.background_items(command))
        return tuple(items)

    def prefix_items(self, base: str) -> list[Subcommand]:
        """Producer 3: man pages named `<base>-*`."""
        pages = self.man_pages.search_prefix(base)
        return dedupe_by_name(
            Subcommand(
                name=name,
                description=description,
                invoke_override=ManTarget(name),
                origin_label=MAN_PAGES_LABEL,
            )
            for name, description in pages
        )

    def background_items(self, command: Command) -> list[Subcommand]:
        """Toolpack sources then the man index; failures yield nothing."""
        items: list[Subcommand] = []
        for source in self.config.discovery_sources(command.base):
            try:
                items.extend(
                    run_discovery_source(
                        runner=self.runner,
                        source=source,
                        base=command.base,
                        timeout_s=self.config.timeout_s,
                    )
                )
            except DiscoveryBackgroundFailure as e:
                logger.debug("%s: discovery source failed: %s", command, e)
        try:
            items.extend(self.prefix_items(command.base))
        except DiscoveryBackgroundFailure as e:
            logger.debug("%s: man prefix search failed: %s", command, e)
        return items

    def discover_background(
        self,
        command: Command,
        *,
        executor: concurrent.futures.Executor,
        deliver: Callable[[Command, list[Subcommand]], None],
    ) -> concurrent.futures.Future[None]:
        """Run :meth:`background_items` on ``executor`` and hand the result to ``deliver``.

        ``deliver`` is called on the worker thread before the future completes,
        so waiting on the future guarantees the result has been handed over.
        """
        return executor.submit(self._background_job, command, deliver)

    def _background_job(
        self, command: Command, deliver: Callable[[Command, list[Subcommand]], None]
    ) -> None:
        items: list[Subcommand] = []
        try:
            items = self.background_items(command)
        except Exception:
            logger.exception("%s: background discovery crashed", command)
        finally:
            deliver(command, items)
