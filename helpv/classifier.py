"""Decide whether fetched help is too thin and upgrade it to a man page."""

from __future__ import annotations

import logging
from typing import Final

from .manpage import ManPages
from .models import Command, ContentSource, FetchResult

logger = logging.getLogger(__name__)

THIN_LINE_THRESHOLD: Final[int] = 10


def non_blank_lines(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip())


def is_thin(text: str, *, threshold: int = THIN_LINE_THRESHOLD) -> bool:
    """Thin content has fewer than ``threshold`` non-blank lines."""
    return non_blank_lines(text) < threshold


class ContentClassifier:
    def __init__(self, *, man_pages: ManPages) -> None:
        self.man_pages = man_pages

    def resolve(self, provisional: FetchResult, command: Command) -> FetchResult:
        """Upgrade thin help to the command's man page when one exists.

        Runs once per fetch and only looks at this command's own result; the
        source of a parent view never enters into it.
        """
        if provisional.source is ContentSource.MAN:
            return provisional
        if not is_thin(provisional.text):
            return provisional

        man_text = self.man_pages.page(command.man_name)
        if man_text is None or not man_text.strip():
            # Thin help and no man page: show the thin help.
            return provisional
        logger.debug(
            "%s: help has %d non-blank lines, using man %s",
            command,
            non_blank_lines(provisional.text),
            command.man_name,
        )
        return FetchResult(text=man_text, source=ContentSource.MAN)
