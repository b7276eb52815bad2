import pytest

from helpv.models import Command, ContentSource, FetchResult, View, not_found_view


def test_command_properties():
    cmd = Command.of("git", "remote", "add")
    assert cmd.base == "git"
    assert cmd.rest == ("remote", "add")
    assert cmd.joined == "git remote add"
    assert cmd.man_name == "git-remote-add"
    assert str(cmd) == "git remote add"


def test_command_is_immutable_and_comparable():
    cmd = Command(["git"])  # type: ignore[arg-type]
    assert cmd.tokens == ("git",)
    child = cmd.extend("log")
    assert child == Command.of("git", "log")
    assert cmd == Command.of("git")
    with pytest.raises(AttributeError):
        cmd.tokens = ("other",)  # type: ignore[misc]


def test_command_requires_tokens():
    with pytest.raises(ValueError):
        Command(())


def test_not_found_view_is_empty_sentinel():
    view = not_found_view(Command.of("nonexistent-tool"))
    assert view.found is False
    assert view.subcommands == ()
    assert "No documentation found" in view.content.text
    assert view.breadcrumb == "nonexistent-tool"


def test_with_subcommands_returns_new_view():
    view = View(
        command=Command.of("git"),
        content=FetchResult(text="x", source=ContentSource.HELP),
    )
    from helpv.models import Subcommand

    updated = view.with_subcommands((Subcommand("log"),))
    assert view.subcommands == ()
    assert [s.name for s in updated.subcommands] == ["log"]
    assert ContentSource.MAN.tag == "Man"
