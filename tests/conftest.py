"""Shared fixtures for Trapkeeper tests."""

import os
import sys
from pathlib import Path
from typing import List

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from trapkeeper import shell
from trapkeeper.config import Settings
from trapkeeper.models import CommandResult

# Private key 1 and its well-known address
KEY_ONE = "0" * 63 + "1"
ADDRESS_ONE = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

SAMPLE_TOML = """ethereum_rpc = "https://ethereum-hoodi-rpc.publicnode.com"
drosera_rpc = "https://relay.hoodi.drosera.io"
eth_chain_id = 560048

[traps]

[traps.mytrap]
path = "out/HelloWorldTrap.sol/HelloWorldTrap.json"
response_contract = "0x183D78491555cb69B68d2354F7373cc2632508C7"
response_function = "helloworld(string)"
cooldown_period_blocks = 33
private_trap = false
whitelist = []

[other]
whitelist = ["0x0000000000000000000000000000000000000001"]
"""


class FakeRunner(shell.Runner):
    """Runner that records commands instead of executing them."""

    def __init__(self, log_dir: Path, outputs=None) -> None:
        super().__init__(log_dir)
        self.calls: List[dict] = []
        self.outputs = outputs or {}

    def run(self, argv, category, cwd=None, env=None, input_text=None, critical=False):
        argv = [str(arg) for arg in argv]
        self.calls.append(
            {"argv": argv, "category": category, "cwd": cwd, "env": env, "input": input_text, "critical": critical}
        )
        returncode, output = 0, ""
        for needle, response in self.outputs.items():
            if needle in " ".join(argv):
                returncode, output = response
                break
        return CommandResult(argv=argv, returncode=returncode, output=output, log_path=self.log_path(category))

    def commands(self) -> List[str]:
        return [" ".join(call["argv"]) for call in self.calls]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        trap_dir=tmp_path / "my-drosera-trap",
        net_dir=tmp_path / "drosera-network",
        log_dir=tmp_path / "logs",
        template_repo="drosera-network/trap-foundry-template",
        network_repo="https://github.com/example/drosera-network.git",
        operator_image="ghcr.io/drosera-network/drosera-operator:test",
        operator_container="drosera-operator",
        operator_volume="drosera_data",
        rpc_url="https://rpc.example.org",
        p2p_tcp_port=31313,
        p2p_udp_port=31314,
        public_ip="203.0.113.7",
        spawn_attempts=3,
        spawn_interval=0,
    )


@pytest.fixture
def trap_settings(settings):
    """Settings whose trap directory holds a sample drosera.toml."""
    settings.trap_dir.mkdir(parents=True)
    settings.trap_config.write_text(SAMPLE_TOML, encoding="utf-8")
    return settings


@pytest.fixture
def no_key_env(monkeypatch):
    monkeypatch.delenv("DROSERA_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("ETH_PRIVATE_KEY", raising=False)


@pytest.fixture
def tools_present(monkeypatch):
    """Pretend every external tool is installed."""
    monkeypatch.setattr(shell, "require_tool", lambda tool, hint="": tool)
    monkeypatch.setattr(shell, "which", lambda tool: f"/usr/bin/{tool}")
