"""Fakes and text builders shared by the test modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from helpv.errors import LaunchError
from helpv.process import ProcessResult


def ok(stdout: str = "", stderr: str = "", exit_code: int = 0) -> ProcessResult:
    return ProcessResult(stdout=stdout, stderr=stderr, exit_code=exit_code)


def help_page(name: str, commands: Sequence[str] = (), options: int = 12) -> str:
    lines = [f"Usage: {name} [OPTIONS] COMMAND", "", f"{name} does things.", ""]
    if commands:
        lines.append("Commands:")
        lines += [f"  {c}    {c.capitalize()} things" for c in commands]
        lines.append("")
    lines.append("Options:")
    lines += [f"  --opt{i}    Option number {i}" for i in range(options)]
    return "\n".join(lines) + "\n"


def thin_page(non_blank: int) -> str:
    return "\n\n".join(f"line {i}" for i in range(non_blank)) + "\n"


def man_page(name: str, see_also: Sequence[str] = (), body_lines: int = 20) -> str:
    lines = [
        "NAME",
        f"       {name} - manual page for {name}",
        "",
        "SYNOPSIS",
        f"       {name} [options]",
        "",
        "DESCRIPTION",
    ]
    lines += [f"       Paragraph line {i}." for i in range(body_lines)]
    if see_also:
        lines += ["", "SEE ALSO", "       " + ", ".join(f"{s}(1)" for s in see_also)]
    lines += ["", "AUTHOR", "       Somebody"]
    return "\n".join(lines) + "\n"


@dataclass(slots=True)
class FakeRunner:
    """ProcessRunner keyed by argv; unknown commands behave like missing binaries."""

    responses: dict[tuple[str, ...], ProcessResult | Exception] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        key = tuple(argv)
        self.calls.append(key)
        response = self.responses.get(key)
        if response is None:
            raise LaunchError(f"Executable not found: {key[0]}")
        if isinstance(response, Exception):
            raise response
        return response

    def add(self, *argv: str, stdout: str = "", stderr: str = "", exit_code: int = 0) -> None:
        self.responses[tuple(argv)] = ok(stdout=stdout, stderr=stderr, exit_code=exit_code)
