"""Installation of the toolchains a trap operator needs."""

import re
from pathlib import Path
from typing import Optional

from trapkeeper import config, shell, utils
from trapkeeper.errors import MissingDependency

CATEGORY = "install"

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
APT_OPTIONS = ["-y", "-o", "Dpkg::Options::=--force-confold"]


def add_to_shell_profile(directory: str, profile: Optional[Path] = None) -> bool:
    """
    Append a PATH export for a directory to the shell profile once.

    Args:
        directory: Directory to add, may start with ~
        profile: Profile file, defaults to ~/.bashrc

    Returns:
        True if the profile was changed
    """
    profile = profile or Path.home() / ".bashrc"
    expanded = str(Path(directory).expanduser())
    line = f"export PATH=$PATH:{expanded}"
    existing = profile.read_text(encoding="utf-8") if profile.exists() else ""
    if expanded in existing:
        return False
    with open(profile, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    return True


def _expose_bin_dir(name: str) -> None:
    directory = config.TOOL_BIN_DIRS[name]
    shell.prepend_path(directory)
    add_to_shell_profile(directory)


class Installer:
    """Install base packages, Docker, bun, Foundry and the Drosera CLI."""

    def __init__(self, runner: shell.Runner) -> None:
        self.runner = runner

    def apt_install(self, packages: list[str]) -> None:
        shell.require_tool("apt-get", "only Debian/Ubuntu hosts are supported")
        update = self.runner.run(["apt-get", *APT_OPTIONS, "update"], CATEGORY, env=APT_ENV)
        if not update.ok:
            utils.warn(f"apt-get update failed (exit {update.returncode}), continuing with cached indexes.")
        self.runner.run(["apt-get", "install", *APT_OPTIONS, *packages], CATEGORY, env=APT_ENV, critical=True)

    def ensure_base_packages(self) -> None:
        utils.info("Updating apt and installing base packages...")
        self.apt_install(config.BASE_PACKAGES)
        utils.success("Base packages installed.")

    def ensure_docker(self) -> None:
        if shell.which("docker"):
            utils.info("Docker already installed. Skipping re-install.")
        else:
            utils.info("Installing Docker...")
            self.runner.shell(f"curl -fsSL {config.INSTALLER_URLS['docker']} | sh", CATEGORY, critical=True)
        if shell.which("systemctl"):
            enabled = self.runner.run(["systemctl", "enable", "--now", "docker"], CATEGORY)
            if not enabled.ok:
                utils.warn(f"Could not enable the docker service. See {enabled.log_path}")
        shell.require_tool("docker")
        utils.success("Docker ready.")

    def ensure_bun(self) -> None:
        _expose_bin_dir("bun")
        if shell.which("bun"):
            utils.info("bun already installed.")
            return
        utils.info("Installing bun...")
        self.runner.shell(f"curl -fsSL {config.INSTALLER_URLS['bun']} | bash", CATEGORY, critical=True)
        shell.require_tool("bun")
        utils.success("bun ready.")

    def ensure_foundry(self) -> None:
        _expose_bin_dir("foundry")
        if not shell.which("foundryup"):
            utils.info("Installing Foundry...")
            self.runner.shell(f"curl -fsSL {config.INSTALLER_URLS['foundry']} | bash", CATEGORY, critical=True)
        utils.info("Running foundryup...")
        update = self.runner.run([shell.require_tool("foundryup")], CATEGORY)
        if not update.ok:
            utils.warn(f"foundryup failed. See {update.log_path}")
        shell.require_tool("forge")
        utils.success("Foundry ready.")

    def ensure_drosera_cli(self) -> None:
        _expose_bin_dir("drosera")
        if not shell.which("drosera"):
            utils.info("Installing Drosera CLI...")
            self.runner.shell(f"curl -fsSL {config.INSTALLER_URLS['drosera']} | bash", CATEGORY, critical=True)
        if shell.which("droseraup"):
            update = self.runner.run(["droseraup"], CATEGORY)
            if not update.ok:
                utils.warn(f"droseraup failed. See {update.log_path}")
        self.verify_drosera_cli()
        utils.success("Drosera CLI ready.")

    def verify_drosera_cli(self) -> None:
        """Check that the installed Drosera CLI supports 'apply'."""
        shell.require_tool("drosera")
        help_result = self.runner.run(["drosera", "--help"], CATEGORY)
        if not re.search(r"\bapply\b", help_result.output):
            raise MissingDependency("drosera apply", "installed CLI has no 'apply' command, rerun the install later")

    def install_all(self) -> None:
        self.ensure_base_packages()
        self.ensure_docker()
        self.ensure_bun()
        self.ensure_foundry()
        self.ensure_drosera_cli()
