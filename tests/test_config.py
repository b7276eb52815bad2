import logging
from pathlib import Path

import pytest

from helpers import FakeRunner
from helpv.config import (
    DEFAULT_SUBCOMMAND_PATTERNS,
    DEFAULT_TOOLPACKS,
    Config,
    PatternSpec,
    ToolConfig,
    compile_patterns,
    config_from_mapping,
    helpv_config_path,
    load_config,
)
from helpv.discovery import SubcommandDiscoveryEngine
from helpv.errors import ConfigPatternInvalid
from helpv.models import Command, ContentSource, FetchResult


def test_defaults_without_config_file(helpv_home: Path):
    assert not helpv_config_path().exists()
    cfg = load_config()
    assert cfg.timeout_s == 15
    assert cfg.background_discovery is True
    assert cfg.subcommand_patterns == ()
    assert cfg.toolpacks["git"] == DEFAULT_TOOLPACKS["git"]


def test_load_config_from_toml(helpv_home: Path):
    helpv_home.mkdir(parents=True)
    (helpv_home / "config.toml").write_text(
        """
timeout_s = 4
background_discovery = false

[tools.kubectl]
help_flags = ["{cmd} --help"]
subcommand_flags = ["{base} help {sub}"]

[[subcommand_patterns]]
section = '^Plugins:$'
entry = '^  (\\w+)\\s+(.*)$'

[[toolpacks.tmux.discover]]
label = "Commands"
run = "tmux list-commands"
pattern = '^(\\S+)\\s+(.*)$'
invoke = "man tmux"
"""
    )
    cfg = load_config()
    assert cfg.timeout_s == 4
    assert cfg.background_discovery is False
    assert cfg.tools["kubectl"] == ToolConfig(
        help_flags=("{cmd} --help",), subcommand_flags=("{base} help {sub}",)
    )
    assert cfg.subcommand_patterns == (
        PatternSpec(section="^Plugins:$", entry="^  (\\w+)\\s+(.*)$"),
    )
    assert cfg.toolpacks["tmux"][0].label == "Commands"
    # Built-in packs survive alongside user packs.
    assert "git" in cfg.toolpacks


def test_malformed_toml_falls_back_to_defaults(helpv_home: Path):
    helpv_home.mkdir(parents=True)
    (helpv_home / "config.toml").write_text("timeout_s = [unterminated\n")
    assert load_config() == Config()


def test_invalid_structure_falls_back_to_defaults(helpv_home: Path):
    helpv_home.mkdir(parents=True)
    (helpv_home / "config.toml").write_text('[tools.git]\nhelp_flags = "not a list"\n')
    assert load_config().tools == {}


def test_env_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("HELPV_TIMEOUT_S", "2.5")
    monkeypatch.setenv("HELPV_BACKGROUND_DISCOVERY", "off")
    monkeypatch.setenv("HELPV_VERBOSE", "debug")
    cfg = config_from_mapping({"timeout_s": 9, "background_discovery": True})
    assert cfg.timeout_s == 2.5
    assert cfg.background_discovery is False
    assert cfg.verbose == 2


def test_help_templates_for_subcommands():
    cfg = Config(
        tools={
            "kubectl": ToolConfig(help_flags=("{cmd} --help",), subcommand_flags=("x {sub}",)),
            "tar": ToolConfig(help_flags=("{cmd} --usage",)),
        }
    )
    assert cfg.help_templates(Command.of("kubectl")) == ("{cmd} --help",)
    assert cfg.help_templates(Command.of("kubectl", "get")) == ("x {sub}",)
    assert cfg.help_templates(Command.of("tar", "x")) == ("{cmd} --usage",)
    assert cfg.help_templates(Command.of("ls")) == ()


def test_compile_patterns_user_first_then_defaults():
    compiled, errors = compile_patterns((PatternSpec(section="^Plugins:$", entry=r"^  (\w+)"),))
    assert errors == []
    assert compiled[0].section.pattern == "^Plugins:$"
    assert len(compiled) == 1 + len(DEFAULT_SUBCOMMAND_PATTERNS)


def test_invalid_pattern_falls_back_to_default():
    compiled, errors = compile_patterns(
        (PatternSpec(section="(unclosed", entry=r"^  (\w+)"),)
    )
    assert len(errors) == 1
    assert isinstance(errors[0], ConfigPatternInvalid)
    assert errors[0].kind == "section"
    assert compiled[0].section.pattern == DEFAULT_SUBCOMMAND_PATTERNS[0].section
    assert compiled[0].entry.pattern == r"^  (\w+)"


def test_invalid_pattern_is_logged_once_when_engine_starts(caplog: pytest.LogCaptureFixture):
    cfg = Config(
        toolpacks={},
        subcommand_patterns=(PatternSpec(section="(unclosed", entry=r"^  (\w+)"),),
    )
    with caplog.at_level(logging.WARNING, logger="helpv.discovery"):
        engine = SubcommandDiscoveryEngine(runner=FakeRunner(), config=cfg)
        engine.discover(
            FetchResult(text="Commands:\n  run   Run it\n", source=ContentSource.HELP),
            Command.of("tool"),
        )
        engine.discover(
            FetchResult(text="Commands:\n  stop  Stop it\n", source=ContentSource.HELP),
            Command.of("tool"),
        )
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "(unclosed" in warnings[0].getMessage()
    assert "using the built-in default" in warnings[0].getMessage()
