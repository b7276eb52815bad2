"""Obtain raw help text for a command by trying strategies in order."""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from typing import Final, Sequence

from .config import Config
from .errors import FetchFailed, LaunchError, StrategyUnusable
from .manpage import ManPages, man_env
from .models import Command, ContentSource, FetchResult
from .process import ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_HELP_TEMPLATES: Final[tuple[str, ...]] = ("{cmd} --help", "{cmd} -h")
HELP_SUBCOMMAND_TEMPLATE: Final[str] = "{base} help {sub}"


@dataclass(frozen=True, slots=True)
class Strategy:
    """One way of obtaining help text; ``argv`` is None for the man page."""

    label: str
    argv: tuple[str, ...] | None
    source: ContentSource


def expand_template(template: str, command: Command) -> tuple[str, ...]:
    """Expand `{cmd}`, `{base}` and `{sub}` in a whitespace-separated template."""
    try:
        parts = shlex.split(template)
    except ValueError:
        # Unbalanced quotes; fall back to a plain split.
        parts = template.split()

    argv: list[str] = []
    for part in parts:
        if part == "{cmd}":
            argv.extend(command.tokens)
        elif part == "{sub}":
            argv.extend(command.rest)
        else:
            argv.append(
                part.replace("{cmd}", command.joined)
                .replace("{base}", command.base)
                .replace("{sub}", " ".join(command.rest))
            )
    return tuple(a for a in argv if a)


def usable_output(text: str) -> bool:
    return bool(text and text.strip())


class FetchStrategyResolver:
    """Tries configured templates, --help, -h, `help <sub>` and finally man."""

    def __init__(
        self,
        *,
        runner: ProcessRunner,
        config: Config,
        man_pages: ManPages | None = None,
    ) -> None:
        self.runner = runner
        self.config = config
        self.man_pages = man_pages or ManPages(runner=runner, timeout_s=config.timeout_s)

    def strategies(self, command: Command) -> list[Strategy]:
        templates: list[str] = [*self.config.help_templates(command), *DEFAULT_HELP_TEMPLATES]
        if command.rest:
            templates.append(HELP_SUBCOMMAND_TEMPLATE)

        out: list[Strategy] = []
        seen: set[tuple[str, ...]] = set()
        for template in templates:
            argv = expand_template(template, command)
            if not argv or argv in seen:
                continue
            seen.add(argv)
            out.append(Strategy(label=template, argv=argv, source=ContentSource.HELP))
        out.append(Strategy(label="man", argv=None, source=ContentSource.MAN))
        return out

    def fetch(self, command: Command) -> FetchResult:
        """Return the first usable result, or raise FetchFailed."""
        for strategy in self.strategies(command):
            try:
                text = self._attempt(strategy, command)
            except StrategyUnusable as e:
                logger.debug("%s: %s unusable: %s", command, strategy.label, e)
                continue
            logger.debug("%s: resolved via %s", command, strategy.label)
            return FetchResult(text=text, source=strategy.source)
        raise FetchFailed(command)

    def _attempt(self, strategy: Strategy, command: Command) -> str:
        if strategy.argv is None:
            text = self.man_pages.page(command.man_name)
            if text is None or not usable_output(text):
                raise StrategyUnusable(f"no man page {command.man_name}")
            return text
        return self._run_for_output(strategy.argv)

    def _run_for_output(self, argv: Sequence[str]) -> str:
        try:
            result = self.runner.run(argv, timeout=self.config.timeout_s, env=man_env())
        except LaunchError as e:
            raise StrategyUnusable(str(e)) from e
        # Nonzero exit is fine: plenty of tools print usage and exit 1 or 2.
        output = result.output
        if not usable_output(output):
            raise StrategyUnusable(f"empty output (exit {result.exit_code})")
        return output

    def fetch_man(self, page: str) -> FetchResult:
        """Fetch exactly one man page, bypassing the help chain."""
        text = self.man_pages.page(page)
        if text is None or not usable_output(text):
            raise FetchFailed(f"man {page}")
        return FetchResult(text=text, source=ContentSource.MAN)

    def fetch_invoke(self, argv: Sequence[str]) -> FetchResult:
        """Run an explicit command line and use its output as help text."""
        try:
            text = self._run_for_output(argv)
        except StrategyUnusable as e:
            raise FetchFailed(shlex.join(argv)) from e
        return FetchResult(text=text, source=ContentSource.HELP)
