"""
Configuration module for Trapkeeper.
Stores filesystem locations, repositories, images and network endpoints.
Supports environment variables with fallback to defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


def get_env(key: str, default: str) -> str:
    """Get environment variable with fallback to default."""
    return os.getenv(key, default)


def get_int_env(key: str, default: int) -> int:
    """Get integer environment variable with fallback to default."""
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


# Environment variables that may carry the operator private key, in priority order
PRIMARY_KEY_ENV = "DROSERA_PRIVATE_KEY"
SECONDARY_KEY_ENV = "ETH_PRIVATE_KEY"

# Environment variables read by drosera-operator inside the container
OPERATOR_KEY_ENVS = ("ETH_PRIVATE_KEY", "DRO__ETH__PRIVATE_KEY")

# Directories where installers drop their binaries
TOOL_BIN_DIRS: Dict[str, str] = {
    "bun": "~/.bun/bin",
    "foundry": "~/.foundry/bin",
    "drosera": "~/.drosera/bin",
}

# Installer scripts piped to bash
INSTALLER_URLS: Dict[str, str] = {
    "docker": "https://get.docker.com",
    "bun": "https://bun.sh/install",
    "foundry": "https://foundry.paradigm.xyz",
    "drosera": "https://app.drosera.io/install",
}

BASE_PACKAGES = [
    "curl", "ca-certificates", "gnupg", "lsb-release", "jq", "git", "unzip",
    "make", "build-essential", "pkg-config", "libssl-dev", "clang", "cmake",
    "dnsutils",
]

# Services queried in order to discover the public IPv4 address
PUBLIC_IP_SERVICES = [
    "https://api.ipify.org",
    "https://ifconfig.me/ip",
]

SPAWNED_MARKER = "Operator Node successfully spawned"

# Section holding the trap definition inside drosera.toml
TRAP_SECTION_PATTERN = r"traps\.[A-Za-z0-9_\-]+"


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration, built once at startup."""
    trap_dir: Path
    net_dir: Path
    log_dir: Path
    template_repo: str
    network_repo: str
    operator_image: str
    operator_container: str
    operator_volume: str
    rpc_url: str
    p2p_tcp_port: int
    p2p_udp_port: int
    public_ip: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)
    private_key_file: Optional[Path] = None
    non_interactive: bool = False
    assume_yes: bool = False
    run_optin: bool = True
    spawn_attempts: int = 36
    spawn_interval: float = 5.0
    primary_key_env: str = PRIMARY_KEY_ENV
    secondary_key_env: str = SECONDARY_KEY_ENV
    trap_section_pattern: str = TRAP_SECTION_PATTERN

    @property
    def env_file(self) -> Path:
        return self.net_dir / ".env"

    @property
    def trap_config(self) -> Path:
        return self.trap_dir / "drosera.toml"


def load_settings(
    private_key: Optional[str] = None,
    private_key_file: Optional[str] = None,
    non_interactive: bool = False,
    assume_yes: bool = False,
    run_optin: bool = True,
) -> Settings:
    """
    Build Settings from environment defaults and command-line values.

    Args:
        private_key: Value of the --pk flag, if any
        private_key_file: Value of the --pk-file flag, if any
        non_interactive: Never prompt; fail instead
        assume_yes: Answer yes to confirmations
        run_optin: Opt the operator in to the trap after registration

    Returns:
        Frozen Settings instance
    """
    net_dir = Path(get_env("NET_DIR", "/root/drosera-network")).expanduser()
    public_ip = get_env("VPS_IP", "").strip() or None

    return Settings(
        trap_dir=Path(get_env("TRAP_DIR", "/root/my-drosera-trap")).expanduser(),
        net_dir=net_dir,
        log_dir=Path(get_env("LOG_DIR", "/var/log/drosera")).expanduser(),
        template_repo=get_env("TEMPLATE_REPO", "drosera-network/trap-foundry-template"),
        network_repo=get_env("NETWORK_REPO", "https://github.com/laodauhgc/drosera-network.git"),
        operator_image=get_env("OP_IMAGE", "ghcr.io/drosera-network/drosera-operator:v1.20.0"),
        operator_container=get_env("OP_CONTAINER", "drosera-operator"),
        operator_volume=get_env("OP_VOLUME", "drosera-network_drosera_data"),
        rpc_url=get_env("DEFAULT_RPC_URL", "https://0xrpc.io/hoodi"),
        p2p_tcp_port=get_int_env("P2P_TCP", 31313),
        p2p_udp_port=get_int_env("P2P_UDP", 31313),
        public_ip=public_ip,
        private_key=private_key,
        private_key_file=Path(private_key_file).expanduser() if private_key_file else None,
        non_interactive=non_interactive,
        assume_yes=assume_yes,
        run_optin=run_optin,
        spawn_attempts=get_int_env("SPAWN_ATTEMPTS", 36),
    )
