"""Man page access: formatting cleanup, page lookup and prefix search."""

from __future__ import annotations

import logging
import os
import re
from typing import Final

from .errors import DiscoveryBackgroundFailure, LaunchError
from .process import ProcessRunner

logger = logging.getLogger(__name__)

_ANSI_RE: Final = re.compile(r"\x1b(?:\[[0-9;?]*[A-Za-z])?")
# man -k prints "name (section) - description" or "name(section) - description"
_APROPOS_RE: Final = re.compile(r"^([\w][\w.+-]*)\s*\(\w+\)\s*-+\s*(.*)$")


def man_env() -> dict[str, str]:
    """Environment forcing man to write the whole page to stdout."""
    return {
        **os.environ,
        "MANPAGER": "cat",
        "PAGER": "cat",
        "MAN_KEEP_FORMATTING": "0",
    }


def strip_formatting(text: str) -> str:
    """Remove overstrike (bold/underline) and ANSI escape sequences."""
    text = _ANSI_RE.sub("", text)
    if "\b" not in text:
        return text
    out: list[str] = []
    for ch in text:
        if ch == "\b":
            if out:
                out.pop()
        else:
            out.append(ch)
    return "".join(out)


def is_man_error_output(*, text: str) -> bool:
    # Some man implementations write "No manual entry for ..." to stdout.
    if not text or not text.strip():
        return True
    if len(text) > 300:
        return False
    lowered = text.strip().lower()
    patterns = [
        "no manual entry",
        "no entry for",
        "nothing appropriate",
        "man: no entry",
        "not found",
    ]
    return any(pat in lowered for pat in patterns)


class ManPages:
    """Reads man pages and searches the man index through a ProcessRunner."""

    def __init__(self, *, runner: ProcessRunner, timeout_s: float | None = None) -> None:
        self.runner = runner
        self.timeout_s = timeout_s

    def page(self, name: str) -> str | None:
        """Return the plain-text page, or None when it does not exist."""
        try:
            result = self.runner.run(
                ["man", name], timeout=self.timeout_s, env=man_env()
            )
        except LaunchError as e:
            logger.debug("man %s unusable: %s", name, e)
            return None
        if result.exit_code != 0:
            return None
        text = strip_formatting(result.stdout)
        if is_man_error_output(text=text):
            return None
        return text

    def search_prefix(self, base: str) -> list[tuple[str, str]]:
        """Pages named ``<base>-*`` as (name, description) pairs."""
        prefix = f"{base}-"
        try:
            result = self.runner.run(
                ["man", "-k", f"^{re.escape(base)}-"],
                timeout=self.timeout_s,
                env=man_env(),
            )
        except LaunchError as e:
            raise DiscoveryBackgroundFailure(f"man -k failed for {base}: {e}") from e
        if result.exit_code != 0:
            raise DiscoveryBackgroundFailure(
                f"man -k exited {result.exit_code} for {base}"
            )

        found: list[tuple[str, str]] = []
        for line in result.stdout.splitlines():
            m = _APROPOS_RE.match(line.strip())
            if not m:
                continue
            name = m.group(1)
            if name.startswith(prefix):
                found.append((name, m.group(2).strip()))
        return found
