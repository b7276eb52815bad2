"""Configuration: help flag templates, subcommand patterns and toolpacks.

Storage model:
- `$HELPV_HOME/config.toml`, defaulting to `~/.config/helpv/config.toml`.
- Scalar keys can be overridden with `HELPV_<KEY>` environment variables,
  e.g. `HELPV_TIMEOUT_S=5` or `HELPV_BACKGROUND_DISCOVERY=0`.

Example:

    timeout_s = 10

    [tools.kubectl]
    help_flags = ["{cmd} --help"]
    subcommand_flags = ["{cmd} --help", "{base} help {sub}"]

    [[subcommand_patterns]]
    section = '(?i)^available plugins:$'
    entry = '^\\s{2,4}(\\w[\\w-]*)\\s{2,}(.*)$'

    [[toolpacks.git.discover]]
    label = "Guides"
    run = "git help -g"
    pattern = '^\\s{3}(\\w[\\w-]*)\\s+(.*)$'
    invoke = "man git{name}"
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Mapping

from .errors import ConfigPatternInvalid
from .models import Command
from .process import DEFAULT_TIMEOUT_S

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PatternSpec:
    """A raw (uncompiled) section/entry regex pair.

    Entry patterns capture the name in group 1 and an optional description
    in group 2.
    """

    section: str
    entry: str


@dataclass(frozen=True, slots=True)
class SubcommandPattern:
    section: re.Pattern[str]
    entry: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class ToolConfig:
    help_flags: tuple[str, ...] = ()
    subcommand_flags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DiscoverySource:
    """A toolpack listing command whose matches become labelled subcommands."""

    label: str
    run: str
    pattern: str
    invoke: str
    section: str | None = None


DEFAULT_SUBCOMMAND_PATTERNS: Final[tuple[PatternSpec, ...]] = (
    PatternSpec(
        section=r"(?i)^\s*(?:available\s+)?(?:sub)?commands?\s*:?\s*$",
        entry=r"^\s{2,4}(\w[\w-]*)(?:\s{2,}(\S.*?))?\s*$",
    ),
    PatternSpec(
        section=r"(?i)^(?:usage|options)\s*:?\s*$",
        entry=r"^\s{2,4}(\w[\w-]*)\s{2,}(\S.*?)\s*$",
    ),
)

DEFAULT_TOOLPACKS: Final[dict[str, tuple[DiscoverySource, ...]]] = {
    "git": (
        DiscoverySource(
            label="All Commands",
            run="git help -a",
            pattern=r"^\s{3}(\w[\w-]*)\s{2,}(.*)$",
            invoke="man git-{name}",
        ),
        DiscoverySource(
            label="Guides",
            run="git help -g",
            pattern=r"^\s{3}(\w[\w-]*)\s{2,}(.*)$",
            invoke="man git{name}",
        ),
    ),
}


def helpv_home() -> Path:
    """Return helpv's home directory.

    Defaults to `~/.config/helpv`, overridable via `HELPV_HOME`.
    """
    raw = os.environ.get("HELPV_HOME")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".config" / "helpv"


def helpv_config_path() -> Path:
    return helpv_home() / "config.toml"


@dataclass(frozen=True, slots=True)
class Config:
    tools: Mapping[str, ToolConfig] = field(default_factory=dict)
    subcommand_patterns: tuple[PatternSpec, ...] = ()
    toolpacks: Mapping[str, tuple[DiscoverySource, ...]] = field(
        default_factory=lambda: dict(DEFAULT_TOOLPACKS)
    )
    timeout_s: float = DEFAULT_TIMEOUT_S
    background_discovery: bool = True
    verbose: int = 0

    def help_templates(self, command: Command) -> tuple[str, ...]:
        """User-configured flag templates for this command's base token."""
        tool = self.tools.get(command.base)
        if tool is None:
            return ()
        if command.rest and tool.subcommand_flags:
            return tool.subcommand_flags
        return tool.help_flags

    def discovery_sources(self, base: str) -> tuple[DiscoverySource, ...]:
        return tuple(self.toolpacks.get(base, ()))


def _str_tuple(value: object, *, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return tuple(v for v in value if v.strip())


def _parse_tools(payload: object) -> dict[str, ToolConfig]:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("tools must be a table")
    tools: dict[str, ToolConfig] = {}
    for name, raw in payload.items():
        if not isinstance(raw, dict):
            raise ValueError(f"tools.{name} must be a table")
        tools[name] = ToolConfig(
            help_flags=_str_tuple(raw.get("help_flags"), key=f"tools.{name}.help_flags"),
            subcommand_flags=_str_tuple(
                raw.get("subcommand_flags"), key=f"tools.{name}.subcommand_flags"
            ),
        )
    return tools


def _parse_patterns(payload: object) -> tuple[PatternSpec, ...]:
    if payload is None:
        return ()
    if not isinstance(payload, list):
        raise ValueError("subcommand_patterns must be an array of tables")
    specs: list[PatternSpec] = []
    for idx, raw in enumerate(payload):
        if not isinstance(raw, dict):
            raise ValueError(f"subcommand_patterns[{idx}] must be a table")
        section = raw.get("section")
        entry = raw.get("entry")
        if not isinstance(section, str) or not isinstance(entry, str):
            raise ValueError(f"subcommand_patterns[{idx}] needs section and entry strings")
        specs.append(PatternSpec(section=section, entry=entry))
    return tuple(specs)


def _parse_toolpacks(payload: object) -> dict[str, tuple[DiscoverySource, ...]]:
    packs = dict(DEFAULT_TOOLPACKS)
    if payload is None:
        return packs
    if not isinstance(payload, dict):
        raise ValueError("toolpacks must be a table")
    for name, raw in payload.items():
        if not isinstance(raw, dict):
            raise ValueError(f"toolpacks.{name} must be a table")
        sources: list[DiscoverySource] = []
        for idx, src in enumerate(raw.get("discover") or []):
            if not isinstance(src, dict):
                raise ValueError(f"toolpacks.{name}.discover[{idx}] must be a table")
            fields = {k: src.get(k) for k in ("label", "run", "pattern", "invoke")}
            if not all(isinstance(v, str) and v for v in fields.values()):
                raise ValueError(
                    f"toolpacks.{name}.discover[{idx}] needs label, run, pattern and invoke"
                )
            section = src.get("section")
            sources.append(
                DiscoverySource(
                    section=section if isinstance(section, str) and section else None,
                    **fields,
                )
            )
        # User packs replace the built-in pack for the same tool.
        packs[name] = tuple(sources)
    return packs


def _env_value(key: str) -> str | None:
    raw = os.environ.get(f"HELPV_{key.upper()}")
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def _as_bool(value: object, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"0", "false", "no", "off"}:
            return False
        if lowered in {"1", "true", "yes", "on"}:
            return True
    return default


def _as_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _as_verbosity(value: object) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        if value <= 0:
            return 0
        return 2 if value > 1 else 1
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"", "0", "false", "no", "off"}:
            return 0
        if lowered in {"1", "true", "yes", "on"}:
            return 1
        return 2
    return 0


def config_from_mapping(payload: Mapping[str, object]) -> Config:
    """Build a Config from an already-parsed TOML document plus env overrides."""

    def scalar(key: str) -> object:
        env = _env_value(key)
        return env if env is not None else payload.get(key)

    return Config(
        tools=_parse_tools(payload.get("tools")),
        subcommand_patterns=_parse_patterns(payload.get("subcommand_patterns")),
        toolpacks=_parse_toolpacks(payload.get("toolpacks")),
        timeout_s=_as_float(scalar("timeout_s"), default=DEFAULT_TIMEOUT_S),
        background_discovery=_as_bool(scalar("background_discovery"), default=True),
        verbose=_as_verbosity(scalar("verbose")),
    )


def load_config(path: Path | None = None) -> Config:
    """Load configuration; problems are logged and fall back to defaults."""
    path = path or helpv_config_path()
    payload: Mapping[str, object] = {}
    if path.exists():
        try:
            with path.open("rb") as fh:
                payload = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            payload = {}
    try:
        return config_from_mapping(payload)
    except ValueError as e:
        logger.warning("Ignoring invalid config %s: %s", path, e)
        return config_from_mapping({})


def _compile(
    raw: str, *, kind: str, fallback: str, errors: list[ConfigPatternInvalid]
) -> re.Pattern[str]:
    try:
        return re.compile(raw)
    except re.error as e:
        errors.append(ConfigPatternInvalid(pattern=raw, kind=kind, reason=str(e)))
        return re.compile(fallback)


def compile_patterns(
    specs: tuple[PatternSpec, ...] = (),
) -> tuple[list[SubcommandPattern], list[ConfigPatternInvalid]]:
    """Compile user patterns followed by the built-in defaults.

    A user regex that fails to compile is replaced by the default at the same
    position (or the last default), and reported in the returned error list.
    """
    errors: list[ConfigPatternInvalid] = []
    compiled: list[SubcommandPattern] = []
    for idx, spec in enumerate(specs):
        default = DEFAULT_SUBCOMMAND_PATTERNS[min(idx, len(DEFAULT_SUBCOMMAND_PATTERNS) - 1)]
        compiled.append(
            SubcommandPattern(
                section=_compile(
                    spec.section, kind="section", fallback=default.section, errors=errors
                ),
                entry=_compile(
                    spec.entry, kind="entry", fallback=default.entry, errors=errors
                ),
            )
        )
    for default in DEFAULT_SUBCOMMAND_PATTERNS:
        compiled.append(
            SubcommandPattern(
                section=re.compile(default.section), entry=re.compile(default.entry)
            )
        )
    return compiled, errors
