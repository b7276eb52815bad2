"""helpv - help viewer with subcommand navigation.

Usage:
    helpv git                      # Print git's help and its subcommands
    helpv git remote               # Start at `git remote`
    helpv -i git                   # Navigate interactively
    helpv -vv --no-background tar  # Debug logging, man index searched inline

Interactive commands:
    <number> | <name>   drill into a subcommand
    b                   go back
    :<command>          switch to another command (history is cleared)
    r                   redisplay the current view
    q                   quit
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import shlex
import sys
from typing import Callable, Final, Sequence, TextIO

from . import __version__
from .config import load_config
from .models import Subcommand, View
from .navigation import NavigationController

logger = logging.getLogger(__name__)

# ANSI colors for terminal output
DIM: Final[str] = "\033[2m"
RESET: Final[str] = "\033[0m"
CYAN: Final[str] = "\033[36m"
BOLD: Final[str] = "\033[1m"

_LOG_LEVELS: Final[dict[int, int]] = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def configure_logging(verbosity: int) -> None:
    """Send helpv's diagnostics to stderr with a `[helpv]` prefix."""
    root = logging.getLogger("helpv")
    root.setLevel(_LOG_LEVELS[min(max(verbosity, 0), 2)])
    if not any(h.get_name() == "helpv" for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[helpv] %(levelname)s %(name)s: %(message)s"))
        handler.set_name("helpv")
        root.addHandler(handler)
        root.propagate = False


def _group_subcommands(
    subcommands: Sequence[Subcommand],
) -> list[tuple[str, list[tuple[int, Subcommand]]]]:
    groups: dict[str, list[tuple[int, Subcommand]]] = {}
    for idx, item in enumerate(subcommands, start=1):
        groups.setdefault(item.origin_label or "Subcommands", []).append((idx, item))
    return list(groups.items())


def format_view(view: View, *, use_color: bool = True) -> str:
    """Render a view as plain text: header, content, numbered subcommands."""
    header = f"== {view.breadcrumb} ({view.source.value}) =="
    lines: list[str] = [f"{BOLD}{header}{RESET}" if use_color else header, ""]
    lines.append(view.content.text.rstrip("\n"))

    if view.subcommands:
        width = max(len(item.name) for item in view.subcommands)
        for label, items in _group_subcommands(view.subcommands):
            lines.append("")
            lines.append(f"{BOLD}{label}:{RESET}" if use_color else f"{label}:")
            for idx, item in items:
                name = item.name.ljust(width)
                desc = item.description
                if use_color:
                    lines.append(f"  {DIM}{idx:>3}{RESET}  {CYAN}{name}{RESET}  {DIM}{desc}{RESET}")
                else:
                    lines.append(f"  {idx:>3}  {name}  {desc}".rstrip())
    return "\n".join(lines)


def select_subcommand(subcommands: Sequence[Subcommand], choice: str) -> Subcommand | None:
    """Pick by 1-based number or by exact name."""
    choice = choice.strip()
    if choice.isdigit():
        idx = int(choice)
        if 1 <= idx <= len(subcommands):
            return subcommands[idx - 1]
        return None
    for item in subcommands:
        if item.name == choice:
            return item
    return None


def run_interactive(
    controller: NavigationController,
    *,
    use_color: bool,
    input_fn: Callable[[str], str] = input,
    out: TextIO | None = None,
) -> int:
    out = out or sys.stdout

    def show() -> None:
        print(format_view(controller.current, use_color=use_color), file=out)

    show()
    while True:
        controller.poll_background()
        try:
            line = input_fn(f"{controller.breadcrumb}> ").strip()
        except EOFError:
            break
        if not line:
            continue
        if line in {"q", "quit"}:
            break
        if line in {"b", "back"}:
            if controller.go_back() is None:
                print("Already at the top.", file=out)
            else:
                show()
            continue
        if line == "r":
            show()
            continue
        if line.startswith(":"):
            try:
                tokens = shlex.split(line[1:])
            except ValueError:
                tokens = line[1:].split()
            if tokens:
                controller.switch_command(tokens)
                show()
            continue

        item = select_subcommand(controller.current.subcommands, line)
        if item is None:
            print(f"No subcommand matching {line!r}", file=out)
            continue
        controller.drill_into(item)
        show()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="helpv",
        description="Help viewer with subcommand navigation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", nargs="+", help="Command and optional subcommand path")
    parser.add_argument(
        "-i", "--interactive", action="store_true", help="Navigate interactively"
    )
    parser.add_argument(
        "--no-background",
        action="store_true",
        help="Search the man index inline instead of on a worker thread",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colors")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Log to stderr (-vv for debug)"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    config = load_config()
    configure_logging(max(args.verbose, config.verbose))
    if args.no_background:
        config = dataclasses.replace(config, background_discovery=False)

    use_color = not args.no_color and sys.stdout.isatty()

    try:
        with NavigationController.from_config(config) as controller:
            view = controller.load(args.command)
            if args.interactive:
                return run_interactive(controller, use_color=use_color)
            controller.wait_for_background(timeout=config.timeout_s)
            print(format_view(controller.current, use_color=use_color))
            return 0 if view.found else 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
