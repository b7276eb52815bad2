"""Navigation state machine: load, drill in, go back, switch command.

The controller is the single owner of :class:`NavigationState`. The only
concurrent work is the background man-index search; its results come back
through a queue and are merged by :meth:`NavigationController.poll_background`
from the owner's loop, after a staleness check on the command they were
computed for.
"""

from __future__ import annotations

import concurrent.futures
import logging
import queue
from typing import Callable, Sequence

from .classifier import ContentClassifier
from .config import Config
from .discovery import SubcommandDiscoveryEngine, merge_items
from .errors import FetchFailed
from .fetcher import FetchStrategyResolver
from .manpage import ManPages
from .models import (
    Command,
    CommandExtension,
    FetchResult,
    HistoryEntry,
    InvokeCommand,
    ManTarget,
    NavigationState,
    Subcommand,
    View,
    not_found_view,
)
from .process import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)


def as_command(command: Command | Sequence[str]) -> Command:
    if isinstance(command, Command):
        return command
    if isinstance(command, str):
        return Command((command,))
    return Command(tuple(command))


class NavigationController:
    def __init__(
        self,
        *,
        resolver: FetchStrategyResolver,
        classifier: ContentClassifier,
        discovery: SubcommandDiscoveryEngine,
        background: bool = True,
        executor: concurrent.futures.Executor | None = None,
    ) -> None:
        self.resolver = resolver
        self.classifier = classifier
        self.discovery = discovery
        self.background = background
        self.state: NavigationState | None = None
        self.recent_commands: list[str] = []

        self._executor = executor
        self._owns_executor = executor is None
        self._inbox: queue.Queue[tuple[Command, list[Subcommand]]] = queue.Queue()
        self._in_flight: dict[Command, concurrent.futures.Future[None]] = {}

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        runner: ProcessRunner | None = None,
        executor: concurrent.futures.Executor | None = None,
    ) -> NavigationController:
        runner = runner or SubprocessRunner(timeout_s=config.timeout_s)
        man_pages = ManPages(runner=runner, timeout_s=config.timeout_s)
        return cls(
            resolver=FetchStrategyResolver(runner=runner, config=config, man_pages=man_pages),
            classifier=ContentClassifier(man_pages=man_pages),
            discovery=SubcommandDiscoveryEngine(
                runner=runner, config=config, man_pages=man_pages
            ),
            background=config.background_discovery,
            executor=executor,
        )

    # -- state accessors ---------------------------------------------------

    def _require_state(self) -> NavigationState:
        if self.state is None:
            raise RuntimeError("No command loaded yet")
        return self.state

    @property
    def current(self) -> View:
        return self._require_state().current

    @property
    def current_scroll(self) -> int:
        return self._require_state().current_scroll

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._require_state().history)

    @property
    def breadcrumb(self) -> str:
        return self.current.breadcrumb

    def set_scroll(self, offset: int) -> None:
        self._require_state().current_scroll = max(0, offset)

    # -- pipeline ------------------------------------------------------------

    def _assemble(self, command: Command, content: FetchResult) -> View:
        subcommands = self.discovery.discover(
            content, command, include_background=not self.background
        )
        return View(command=command, content=content, subcommands=subcommands)

    def resolve_view(self, command: Command) -> View:
        """fetch -> classify -> discover, without touching navigation state."""
        try:
            provisional = self.resolver.fetch(command)
        except FetchFailed as e:
            logger.info("%s", e)
            return not_found_view(command)
        content = self.classifier.resolve(provisional, command)
        return self._assemble(command, content)

    def _resolve_fixed(
        self, command: Command, fetch: Callable[[], FetchResult]
    ) -> View:
        # Explicit targets skip the help chain and the classifier.
        try:
            content = fetch()
        except FetchFailed as e:
            logger.info("%s", e)
            return not_found_view(command)
        return self._assemble(command, content)

    def _remember(self, command: Command) -> None:
        name = command.joined
        if name not in self.recent_commands:
            self.recent_commands.append(name)

    # -- operations ----------------------------------------------------------

    def load(self, command: Command | Sequence[str]) -> View:
        """Resolve ``command`` as a fresh root with empty history."""
        command = as_command(command)
        view = self.resolve_view(command)
        self.state = NavigationState(current=view)
        self._remember(command)
        self._after_navigation(view)
        return view

    def drill_into(self, selected: Subcommand) -> View:
        state = self._require_state()
        parent = state.current
        child_command = parent.command.extend(selected.name)
        override = selected.invoke_override

        if override is None or isinstance(override, CommandExtension):
            child = self.resolve_view(child_command)
        elif isinstance(override, ManTarget):
            child = self._resolve_fixed(
                child_command, lambda: self.resolver.fetch_man(override.page)
            )
        elif isinstance(override, InvokeCommand):
            child = self._resolve_fixed(
                child_command, lambda: self.resolver.fetch_invoke(override.argv)
            )
        else:
            raise TypeError(f"Unknown invoke override: {override!r}")

        state.history.append(HistoryEntry(view=parent, scroll_offset=state.current_scroll))
        state.current = child
        state.current_scroll = 0
        self._after_navigation(child)
        return child

    def go_back(self) -> View | None:
        """Restore the previous view exactly; None at the root."""
        state = self._require_state()
        if not state.history:
            return None
        entry = state.history.pop()
        state.current = entry.view
        state.current_scroll = entry.scroll_offset
        # Background results for this view may have been dropped as stale.
        self._after_navigation(entry.view)
        return entry.view

    def switch_command(self, new_command: Command | Sequence[str]) -> View:
        """Start over at ``new_command``; history is discarded."""
        return self.load(new_command)

    def merge_background_discovery(
        self, for_command: Command, items: Sequence[Subcommand]
    ) -> bool:
        """Append late items to the current view if it is still for ``for_command``."""
        if self.state is None or self.state.current.command != for_command:
            logger.debug("discarding stale discovery for %s", for_command)
            return False
        current = self.state.current
        merged = merge_items(current.subcommands, items)
        if merged != current.subcommands:
            self.state.current = current.with_subcommands(merged)
        return True

    # -- background discovery ------------------------------------------------

    def _after_navigation(self, view: View) -> None:
        if self.background and view.found:
            self._dispatch_background(view.command)

    def _get_executor(self) -> concurrent.futures.Executor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="helpv-discovery"
            )
        return self._executor

    def _dispatch_background(self, command: Command) -> None:
        if command in self._in_flight:
            return
        self._in_flight[command] = self.discovery.discover_background(
            command, executor=self._get_executor(), deliver=self._deliver
        )

    def _deliver(self, command: Command, items: list[Subcommand]) -> None:
        # Runs on the worker thread; the queue is the only shared object.
        self._inbox.put((command, items))

    @property
    def pending_background(self) -> int:
        return len(self._in_flight)

    def poll_background(self) -> int:
        """Merge every delivered result; returns how many were applied."""
        applied = 0
        while True:
            try:
                command, items = self._inbox.get_nowait()
            except queue.Empty:
                break
            self._in_flight.pop(command, None)
            if self.merge_background_discovery(command, items):
                applied += 1
        # Cancelled work never delivers; forget it so the command can retry.
        for command, future in list(self._in_flight.items()):
            if future.cancelled():
                del self._in_flight[command]
        return applied

    def wait_for_background(self, timeout: float | None = None) -> int:
        """Block until in-flight discovery is delivered (or timeout), then merge."""
        if self._in_flight:
            concurrent.futures.wait(list(self._in_flight.values()), timeout=timeout)
        return self.poll_background()

    def close(self) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def __enter__(self) -> NavigationController:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
