"""Process execution primitive used by every fetch and discovery step."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Final, Mapping, Protocol, Sequence

from .errors import LaunchError, ProcessTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S: Final[float] = 15.0


@dataclass(frozen=True, slots=True)
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def output(self) -> str:
        """stdout when it has content, otherwise stderr."""
        if self.stdout.strip():
            return self.stdout
        return self.stderr


class ProcessRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult: ...


class SubprocessRunner:
    """Runs commands with ``subprocess.run`` and a hard timeout."""

    def __init__(self, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self.timeout_s = timeout_s

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        if not argv:
            raise LaunchError("Empty command line")
        limit = timeout if timeout is not None else self.timeout_s
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                errors="replace",
                stdin=subprocess.DEVNULL,
                timeout=limit,
                env=dict(env) if env is not None else None,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessTimeout(f"{argv[0]} timed out after {limit}s") from e
        except FileNotFoundError as e:
            raise LaunchError(f"Executable not found: {argv[0]}") from e
        except OSError as e:
            raise LaunchError(f"Could not launch {argv[0]}: {e}") from e

        logger.debug("ran %s -> exit %d", shlex.join(argv), result.returncode)
        return ProcessResult(
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            exit_code=result.returncode,
        )
