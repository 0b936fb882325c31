"""Operator node container: environment, lifecycle, registration and opt-in."""

import time
from pathlib import Path
from typing import Callable, Optional

import requests

from trapkeeper import config, evm, patcher, shell, utils
from trapkeeper.config import Settings
from trapkeeper.models import CommandResult, OperatorIdentity

OPERATOR_CONFIG = "/data/drosera.toml"
ALREADY_REGISTERED = "operatoralreadyregistered"
ALREADY_OPTED_IN = "already opted"


def get_public_ip(services: Optional[list[str]] = None, timeout: float = 10.0) -> Optional[str]:
    """
    Discover the host's public IPv4 address.

    Args:
        services: Plain-text IP echo services, tried in order
        timeout: Per-request timeout in seconds

    Returns:
        The address, or None if every service failed
    """
    for url in services or config.PUBLIC_IP_SERVICES:
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            utils.warn(f"Public IP lookup via {url} failed: {e}")
            continue
        candidate = response.text.strip()
        if candidate.count(".") == 3 and all(part.isdigit() for part in candidate.split(".")):
            return candidate
    return None


class OperatorNode:
    """The drosera-operator container and its supporting files."""

    def __init__(
        self,
        settings: Settings,
        runner: shell.Runner,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self.sleep = sleep
        self.container = settings.operator_container

    def resolve_public_ip(self) -> str:
        """Return the configured or discovered public IP, 0.0.0.0 as last resort."""
        if self.settings.public_ip:
            return self.settings.public_ip
        ip = get_public_ip()
        if ip is None:
            utils.warn("Could not determine the public IP. Using 0.0.0.0; set VPS_IP to override.")
            return "0.0.0.0"
        return ip

    def prepare_env(self, public_ip: str) -> Path:
        """
        Clone the network repository and write node settings to its .env.

        The private key is not written; it is passed to the container at start.

        Args:
            public_ip: Address advertised to peers

        Returns:
            Path of the .env file
        """
        net_dir = self.settings.net_dir
        if not (net_dir / ".git").is_dir():
            net_dir.parent.mkdir(parents=True, exist_ok=True)
            cloned = self.runner.run(
                [shell.require_tool("git"), "clone", self.settings.network_repo, str(net_dir)], "install"
            )
            if not cloned.ok:
                utils.warn(f"Could not clone {self.settings.network_repo}. See {cloned.log_path}")
        net_dir.mkdir(parents=True, exist_ok=True)

        env_file = self.settings.env_file
        env_file.touch(exist_ok=True)

        udp_maddr = f"/ip4/{public_ip}/udp/{self.settings.p2p_udp_port}/quic-v1"
        tcp_maddr = f"/ip4/{public_ip}/tcp/{self.settings.p2p_tcp_port}"
        patcher.patch_file(
            env_file,
            {
                "VPS_IP": public_ip,
                "EXTERNAL_P2P_MADDR": udp_maddr,
                "EXTERNAL_P2P_TCP_MADDR": tcp_maddr,
                "EXTERNAL_P2P_ADDRESS": udp_maddr,
                "EXTERNAL_P2P_TCP_ADDRESS": tcp_maddr,
                "RPC_URL": self.settings.rpc_url,
            },
            formatter=patcher.env_line,
        )
        utils.success(f"Wrote RPC and P2P settings to {env_file}")
        return env_file

    def run_command(self) -> list[str]:
        """Build the docker run command line; key values come from the environment."""
        tcp = self.settings.p2p_tcp_port
        udp = self.settings.p2p_udp_port
        argv = [
            "docker", "run", "-d",
            "--name", self.container,
            "--restart", "unless-stopped",
            "-p", f"{tcp}:{tcp}/tcp",
            "-p", f"{udp}:{udp}/udp",
            "-v", f"{self.settings.operator_volume}:/data",
            "-v", f"{self.settings.trap_config}:{OPERATOR_CONFIG}:ro",
        ]
        if self.settings.env_file.is_file():
            argv += ["--env-file", str(self.settings.env_file)]
        for name in config.OPERATOR_KEY_ENVS:
            argv += ["-e", name]
        argv += [self.settings.operator_image, "-c", OPERATOR_CONFIG, "node"]
        return argv

    def start(self, identity: OperatorIdentity) -> bool:
        """
        Replace and start the operator container, then wait for it to spawn.

        Args:
            identity: Operator identity passed to the container environment

        Returns:
            True if the spawn message was seen in the container logs
        """
        shell.require_tool("docker")
        utils.info("Resetting operator container...")
        self.runner.run(["docker", "rm", "-f", self.container], "operator")
        self.runner.run(["docker", "volume", "create", self.settings.operator_volume], "operator")

        utils.info(f"Pulling operator image {self.settings.operator_image}...")
        pulled = self.runner.run(["docker", "pull", self.settings.operator_image], "operator")
        if not pulled.ok:
            utils.warn(f"Image pull failed, trying a cached image. See {pulled.log_path}")

        utils.info("Starting operator node...")
        key_env = {name: f"0x{identity.private_key}" for name in config.OPERATOR_KEY_ENVS}
        self.runner.run(self.run_command(), "operator", env=key_env, critical=True)

        if self.wait_for_spawn():
            utils.success("Operator node spawned.")
            return True
        waited = int(self.settings.spawn_attempts * self.settings.spawn_interval)
        utils.warn(f"Operator did not report a successful spawn after {waited}s. Continuing.")
        return False

    def wait_for_spawn(self) -> bool:
        """Poll recent container logs for the spawn marker."""
        for attempt in range(self.settings.spawn_attempts):
            logs = self.runner.run(["docker", "logs", "--since=20s", self.container], "operator")
            if config.SPAWNED_MARKER in logs.output:
                return True
            if attempt + 1 < self.settings.spawn_attempts:
                self.sleep(self.settings.spawn_interval)
        return False

    def exec_operator(self, args: list[str], category: str) -> CommandResult:
        """Run a drosera-operator subcommand inside the running container."""
        command = " ".join(["drosera-operator", "-c", OPERATOR_CONFIG, *args])
        return self.runner.run(
            [shell.require_tool("docker"), "exec", self.container, "sh", "-lc", command], category
        )

    def register(self) -> bool:
        """Register the operator; an existing registration counts as success."""
        utils.info("Registering operator...")
        result = self.exec_operator(["register"], "register")
        if result.ok:
            utils.success("Register successful.")
            return True
        if ALREADY_REGISTERED in result.output.lower():
            utils.success("Operator already registered. Skip.")
            return True
        utils.warn(f"Register failed (exit {result.returncode}). See {result.log_path}")
        return False

    def optin(self, trap_address: str) -> bool:
        """Opt the operator in to a trap; an existing opt-in counts as success."""
        trap_address = evm.validate_address(trap_address)
        utils.info(f"Opting in operator to trap: {trap_address}")
        result = self.exec_operator(["optin", "--trap-config-address", trap_address], "optin")
        if result.ok:
            utils.success("Opt-in done.")
            return True
        if ALREADY_OPTED_IN in result.output.lower():
            utils.success("Operator already opted in.")
            return True
        utils.warn(f"Opt-in failed (exit {result.returncode}). See {result.log_path}")
        return False

    def status(self) -> CommandResult:
        """Query the container status."""
        return self.runner.run(
            [
                shell.require_tool("docker"), "ps", "-a",
                "--filter", f"name=^{self.container}$",
                "--format", "{{.Names}}\t{{.Status}}\t{{.Image}}",
            ],
            "operator",
        )

    def follow_logs(self, lines: int = 100) -> int:
        """Stream container logs to the terminal until interrupted."""
        shell.require_tool("docker")
        return self.runner.stream(["docker", "logs", "-f", "--tail", str(lines), self.container])

    def stop(self) -> CommandResult:
        """Remove the operator container; its data volume is kept."""
        return self.runner.run([shell.require_tool("docker"), "rm", "-f", self.container], "operator")
