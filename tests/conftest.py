from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from helpers import FakeRunner
from helpv.config import Config
from helpv.navigation import NavigationController


@pytest.fixture(autouse=True)
def helpv_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "helpv-home"
    monkeypatch.setenv("HELPV_HOME", str(home))
    for key in ("TIMEOUT_S", "BACKGROUND_DISCOVERY", "VERBOSE"):
        monkeypatch.delenv(f"HELPV_{key}", raising=False)
    return home


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def config() -> Config:
    # No built-in toolpacks so tests only see the calls they set up.
    return Config(toolpacks={}, timeout_s=5)


@pytest.fixture()
def make_controller(runner: FakeRunner, config: Config):
    created: list[NavigationController] = []

    def factory(*, background: bool = False, cfg: Config | None = None, **kwargs):
        cfg = dataclasses.replace(cfg or config, background_discovery=background)
        controller = NavigationController.from_config(cfg, runner=runner, **kwargs)
        created.append(controller)
        return controller

    yield factory
    for controller in created:
        controller.close()
