"""Trap project lifecycle: template init, build, whitelist, apply and funding."""

import re
import shutil
import time
from pathlib import Path
from typing import Optional

from trapkeeper import evm, patcher, shell, utils
from trapkeeper.config import Settings
from trapkeeper.errors import ConfigFileNotFound
from trapkeeper.models import CommandResult, OperatorIdentity

# drosera apply asks for a typed confirmation before sending transactions
APPLY_CONFIRMATION = "ofc\n"

TRAP_ADDRESS_LINE = re.compile(
    r"trap[ _-]?(?:config[ _-]?)?address\W{0,4}(0x[0-9a-fA-F]{40})(?![0-9a-fA-F])",
    re.IGNORECASE,
)


class TrapProject:
    """A Foundry trap project with its drosera.toml."""

    def __init__(self, settings: Settings, runner: shell.Runner) -> None:
        self.settings = settings
        self.runner = runner
        self.path = settings.trap_dir
        self.config_path = settings.trap_config

    def is_initialized(self) -> bool:
        return self.config_path.is_file()

    def needs_reset(self) -> bool:
        """Whether initializing would move a non-empty directory aside."""
        return not self.is_initialized() and self.path.is_dir() and any(self.path.iterdir())

    def move_aside(self) -> Optional[Path]:
        """Move a non-empty project directory to <dir>.bak.<epoch>."""
        if not self.path.is_dir() or not any(self.path.iterdir()):
            return None
        backup = self.path.with_name(f"{self.path.name}.bak.{int(time.time())}")
        shutil.move(str(self.path), str(backup))
        return backup

    def initialize(self) -> None:
        """
        Create the project from the template when drosera.toml is missing.

        Raises:
            SubprocessFailed: If neither forge init nor git clone succeeds
            ConfigFileNotFound: If the template did not provide drosera.toml
        """
        if self.is_initialized():
            utils.info(f"Trap project already present at {self.path}.")
            return

        backup = self.move_aside()
        if backup:
            utils.warn(f"Moved existing directory to {backup}")
        if self.path.exists():
            shutil.rmtree(self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        template = self.settings.template_repo
        utils.info(f"Initializing trap project from {template}...")
        init = self.runner.run(
            [shell.require_tool("forge"), "init", "-t", template, str(self.path)], "install"
        )
        if init.ok:
            utils.success(f"Initialized template ({template}).")
        else:
            utils.warn("forge init failed, falling back to git clone.")
            self.runner.run(
                [shell.require_tool("git"), "clone", f"https://github.com/{template}.git", str(self.path)],
                "install",
                critical=True,
            )

        if not self.is_initialized():
            raise ConfigFileNotFound(self.config_path)

    def build(self) -> None:
        """Install JS dependencies and compile contracts."""
        if not self.is_initialized():
            raise ConfigFileNotFound(self.config_path)
        utils.info("Installing trap dependencies (bun install)...")
        self.runner.run([shell.require_tool("bun"), "install"], "install", cwd=self.path, critical=True)
        utils.info("Compiling contracts (forge build)...")
        self.runner.run([shell.require_tool("forge"), "build"], "install", cwd=self.path, critical=True)
        utils.success("Trap project built.")

    def set_whitelist(self, address: str) -> Optional[Path]:
        """Make the trap private and whitelist a single operator address."""
        address = evm.validate_address(address)
        backup = patcher.patch_section(
            self.config_path,
            self.settings.trap_section_pattern,
            {"private_trap": True, "whitelist": [address]},
        )
        utils.success(f"Wrote whitelist = [{address}] to {self.config_path.name}")
        return backup

    def set_node_settings(self, public_ip: str) -> Optional[Path]:
        """Write RPC and advertised P2P addresses for the operator node."""
        return patcher.patch_file(
            self.config_path,
            {
                "rpc_url": self.settings.rpc_url,
                "external_p2p_address": f"/ip4/{public_ip}/udp/{self.settings.p2p_udp_port}/quic-v1",
                "external_p2p_tcp_address": f"/ip4/{public_ip}/tcp/{self.settings.p2p_tcp_port}",
            },
        )

    def configured_trap_address(self) -> Optional[str]:
        """Return the trap address recorded in drosera.toml, if any."""
        lines = patcher.read_document(self.config_path)
        value = patcher.get_key_in_section(lines, self.settings.trap_section_pattern, "address")
        if value and evm.ADDRESS_PATTERN.match(value):
            return value
        return None

    def apply(self, identity: OperatorIdentity) -> Optional[str]:
        """
        Deploy or update the trap with drosera apply.

        Args:
            identity: Operator identity whose key pays for the deployment

        Returns:
            The trap config address if one could be detected

        Raises:
            SubprocessFailed: If drosera apply fails
        """
        if not self.is_initialized():
            raise ConfigFileNotFound(self.config_path)
        utils.info("Running drosera apply...")
        result = self.runner.run(
            [shell.require_tool("drosera"), "apply"],
            "apply",
            cwd=self.path,
            env={self.settings.primary_key_env: identity.private_key},
            input_text=APPLY_CONFIRMATION,
            critical=True,
        )
        utils.success("drosera apply finished.")
        return self.detect_trap_address(result)

    def detect_trap_address(self, result: Optional[CommandResult] = None) -> Optional[str]:
        """Find the trap address in drosera.toml, the apply output or drosera.log."""
        configured = self.configured_trap_address()
        if configured:
            return configured

        if result is not None:
            labelled = TRAP_ADDRESS_LINE.findall(result.output)
            if labelled:
                return labelled[-1]

        drosera_log = self.path / "drosera.log"
        if drosera_log.is_file():
            found = evm.find_addresses(drosera_log.read_text(encoding="utf-8", errors="replace"))
            if found:
                return found[-1]

        if result is not None:
            found = evm.find_addresses(result.output)
            if found:
                return found[-1]
        return None

    def fund(self, identity: OperatorIdentity, trap_address: str, eth_amount: str) -> CommandResult:
        """Deposit ETH into the trap's reward pool with drosera bloomboost."""
        trap_address = evm.validate_address(trap_address)
        return self.runner.run(
            [
                shell.require_tool("drosera"),
                "bloomboost",
                "--trap-address",
                trap_address,
                "--eth-amount",
                eth_amount,
            ],
            "fund",
            cwd=self.path if self.path.is_dir() else None,
            env={self.settings.primary_key_env: identity.private_key},
            input_text=APPLY_CONFIRMATION,
            critical=True,
        )
