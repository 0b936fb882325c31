"""Tests for toolchain installation helpers."""

import pytest

from conftest import FakeRunner
from trapkeeper import installer, shell
from trapkeeper.errors import MissingDependency
from trapkeeper.installer import Installer


def test_add_to_shell_profile_once(tmp_path):
    profile = tmp_path / ".bashrc"
    profile.write_text("alias ll='ls -l'", encoding="utf-8")

    assert installer.add_to_shell_profile(str(tmp_path / "bin"), profile) is True
    assert installer.add_to_shell_profile(str(tmp_path / "bin"), profile) is False

    lines = profile.read_text(encoding="utf-8").splitlines()
    assert lines == ["alias ll='ls -l'", f"export PATH=$PATH:{tmp_path / 'bin'}"]


def test_verify_drosera_cli_requires_apply(tmp_path, tools_present):
    runner = FakeRunner(tmp_path, {"drosera --help": (0, "Usage: drosera <COMMAND>\n  init\n  dryrun\n")})
    with pytest.raises(MissingDependency):
        Installer(runner).verify_drosera_cli()


def test_verify_drosera_cli_ok(tmp_path, tools_present):
    runner = FakeRunner(tmp_path, {"drosera --help": (0, "Commands:\n  apply     Deploy traps\n")})
    Installer(runner).verify_drosera_cli()


def test_apt_update_failure_is_not_fatal(tmp_path, tools_present, capsys):
    runner = FakeRunner(tmp_path, {"update": (100, "network unreachable")})
    Installer(runner).apt_install(["jq"])
    assert runner.calls[0]["critical"] is False
    assert runner.calls[1]["critical"] is True
    assert runner.calls[1]["env"] == {"DEBIAN_FRONTEND": "noninteractive"}
    assert "apt-get update failed" in capsys.readouterr().out


def test_docker_already_installed_skips_script(tmp_path, tools_present):
    runner = FakeRunner(tmp_path)
    Installer(runner).ensure_docker()
    assert not any("get.docker.com" in command for command in runner.commands())


def test_missing_apt_get(tmp_path, monkeypatch):
    monkeypatch.setattr(shell, "which", lambda tool: None)
    with pytest.raises(MissingDependency):
        Installer(FakeRunner(tmp_path)).apt_install(["jq"])
