"""Main CLI interface for Trapkeeper."""

from __future__ import annotations

import argparse
import readline
import sys
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple

from trapkeeper import __version__, config, evm, shell, utils
from trapkeeper.config import Settings
from trapkeeper.credentials import CredentialResolver
from trapkeeper.errors import TrapkeeperError
from trapkeeper.installer import Installer
from trapkeeper.models import OperatorIdentity
from trapkeeper.node import OperatorNode
from trapkeeper.trap import TrapProject


class TrapkeeperCLI:
    """Main CLI class for Trapkeeper."""

    def __init__(self, settings: Settings, resolver: Optional[CredentialResolver] = None) -> None:
        self.settings = settings
        self.runner = shell.Runner(settings.log_dir)
        self.installer = Installer(self.runner)
        self.trap = TrapProject(settings, self.runner)
        self.node = OperatorNode(settings, self.runner)
        self.resolver = resolver or CredentialResolver(settings)
        self._identity: Optional[OperatorIdentity] = None
        self.trap_address: Optional[str] = None
        self.actions: Dict[str, Tuple[str, Callable[[], None]]] = {
            "1": ("Install dependencies", self.install_dependencies),
            "2": ("Initialize and build trap project", self.init_trap),
            "3": ("Deploy trap (drosera apply)", self.deploy_trap),
            "4": ("Configure and start operator node", self.start_operator),
            "5": ("Register operator", self.register_operator),
            "6": ("Opt in operator to trap", self.optin_operator),
            "7": ("Fund trap (bloomboost)", self.fund_trap),
            "8": ("Show operator status", self.show_status),
            "9": ("Follow operator logs", self.follow_logs),
            "10": ("Stop operator node", self.stop_operator),
            "11": ("Show operator wallet", self.show_wallet),
            "12": ("Run full setup", self.full_setup),
            "0": ("Exit", self.exit_program),
        }
        self.should_exit = False

    def run(self) -> None:
        """Run the CLI main loop."""
        utils.print_banner()
        print()
        print(f"{utils.bold('Trap project:')} {self.settings.trap_dir}")
        print(f"{utils.bold('Network dir:')} {self.settings.net_dir}")
        print(f"{utils.bold('Logs:')} {self.settings.log_dir}")
        print()

        while not self.should_exit:
            try:
                choice = self.prompt_main_menu()
                action = self.actions.get(choice)
                if action:
                    label, callback = action
                    utils.section_header(label)
                    try:
                        callback()
                    except TrapkeeperError as e:
                        utils.error(str(e))
                        utils.section_footer(f"{label} aborted. Returning to main menu.")
                    except KeyboardInterrupt:
                        utils.section_footer("Cancelled. Returning to main menu.")
                    except EOFError:
                        utils.section_footer("Received EOF. Exiting Trapkeeper.")
                        self.should_exit = True
                    except Exception as e:
                        utils.error(f"Unexpected error: {e}")
                        utils.section_footer(f"{label} aborted. Returning to main menu.")
                else:
                    utils.warn(f"Unknown choice: {choice!r}")
            except KeyboardInterrupt:
                utils.section_footer("Interrupted. Returning to main menu.")
            except EOFError:
                print("\nGoodbye!")
                break

    def prompt_main_menu(self) -> str:
        """Prompt for main menu choice."""
        menu_items = {key: label for key, (label, _) in self.actions.items()}
        utils.print_menu("Trapkeeper Main Menu", menu_items)
        return input("Choose an option: ").strip()

    def prompt_input(self, prompt: str, default: str) -> str:
        """
        Prompt user for input with a default value pre-filled.

        Args:
            prompt: The prompt message
            default: The default value to pre-fill in the input field

        Returns:
            The user input, or the default if empty or non-interactive
        """
        if self.settings.non_interactive:
            return default
        readline.set_startup_hook(lambda: readline.insert_text(default))
        try:
            user_input = input(prompt).strip()
        finally:
            readline.set_startup_hook()
        return user_input if user_input else default

    def prompt_confirm(self, prompt: str, default: bool = False) -> bool:
        """
        Prompt user for yes/no confirmation.

        Args:
            prompt: The prompt message (should include (y/N) or (Y/n) format)
            default: Answer used for empty input and in non-interactive mode

        Returns:
            True if confirmed; always True with --yes
        """
        if self.settings.assume_yes:
            return True
        if self.settings.non_interactive:
            return default
        user_input = input(prompt).strip().lower()
        if not user_input:
            return default
        return user_input in ["y", "yes"]

    def pause(self) -> None:
        if not self.settings.non_interactive:
            input("\nPress Enter to return to the main menu...")

    def identity(self) -> OperatorIdentity:
        """Operator key and address, resolved on first use and kept in memory."""
        if self._identity is None:
            private_key = self.resolver.resolve()
            self._identity = evm.load_identity(private_key)
            utils.info(f"Operator address: {utils.bold(self._identity.address)}")
        return self._identity

    def current_trap_address(self, ask: bool = True) -> Optional[str]:
        """Return the known trap address, reading drosera.toml or asking if needed."""
        if self.trap_address:
            return self.trap_address
        if self.trap.is_initialized():
            self.trap_address = self.trap.detect_trap_address()
        if self.trap_address or not ask or self.settings.non_interactive:
            return self.trap_address
        entered = input("Enter trap config address (0x...): ").strip()
        if not entered:
            return None
        self.trap_address = evm.validate_address(entered)
        return self.trap_address

    def install_dependencies(self) -> None:
        """Install base packages and all toolchains."""
        self.installer.install_all()
        utils.section_footer(utils.bold_green("All dependencies installed."))

    def init_trap(self) -> None:
        """Create the trap project from the template and build it."""
        if self.trap.needs_reset():
            if not self.prompt_confirm(
                f"{self.settings.trap_dir} has no drosera.toml. Move it aside and re-initialize? (y/N): ",
                default=self.settings.non_interactive,
            ):
                utils.warn("Initialization skipped.")
                return
        self.trap.initialize()
        self.trap.build()

    def deploy_trap(self) -> None:
        """Whitelist the operator and run drosera apply."""
        identity = self.identity()
        self.trap.set_whitelist(identity.address)
        trap_address = self.trap.apply(identity)
        if trap_address:
            self.trap_address = trap_address
            utils.result(f"Trap address: {utils.bold_cyan(trap_address)}")
        else:
            utils.warn(
                f"Could not detect the trap address. Check {self.runner.log_path('apply')} "
                f"and {self.settings.trap_dir / 'drosera.log'}."
            )

    def start_operator(self) -> None:
        """Write node settings and start the operator container."""
        identity = self.identity()
        public_ip = self.node.resolve_public_ip()
        utils.info(f"Public IP: {public_ip}")
        self.trap.set_node_settings(public_ip)
        self.node.prepare_env(public_ip)
        self.node.start(identity)

    def register_operator(self) -> None:
        self.node.register()

    def optin_operator(self) -> None:
        if not self.settings.run_optin:
            utils.info("Skip opt-in as requested.")
            return
        trap_address = self.current_trap_address()
        if not trap_address:
            utils.warn("No trap address to opt in to.")
            return
        self.node.optin(trap_address)

    def fund_trap(self) -> None:
        """Send ETH to the trap reward pool."""
        trap_address = self.current_trap_address()
        if not trap_address:
            utils.warn("No trap address to fund.")
            return
        amount = self.prompt_input("Enter amount in ETH: ", "0.01")
        try:
            if Decimal(amount) <= 0:
                raise InvalidOperation
        except InvalidOperation:
            utils.warn(f"Invalid amount: {amount!r}")
            return
        if not self.prompt_confirm(f"Deposit {amount} ETH into {trap_address}? (y/N): "):
            utils.warn("Funding cancelled.")
            return
        result = self.trap.fund(self.identity(), trap_address, amount)
        utils.success(f"Trap funded. See {result.log_path}")

    def show_status(self) -> None:
        result = self.node.status()
        lines = [line for line in result.output.splitlines() if line.strip()]
        if not result.ok:
            utils.warn(f"docker ps failed. See {result.log_path}")
        elif lines:
            for line in lines:
                utils.result(line)
        else:
            utils.warn(f"Container {self.settings.operator_container} not found.")
        self.pause()

    def follow_logs(self) -> None:
        utils.info("Following operator logs. Press Ctrl+C to stop.")
        try:
            self.node.follow_logs()
        except KeyboardInterrupt:
            print()

    def stop_operator(self) -> None:
        if not self.prompt_confirm("Stop and remove the operator container? (y/N): "):
            return
        result = self.node.stop()
        shell.report(result, "Operator container removed.", "Failed to remove operator container")

    def show_wallet(self) -> None:
        """Show the operator address and its native balance."""
        identity = self.identity()
        print()
        print(f"{utils.bold('Address:')} {identity.address}")
        print(f"{utils.bold('Public Key:')} {identity.public_key}")
        print(f"{utils.bold('Private Key:')} {utils.mask(identity.private_key)}")
        try:
            balance = evm.get_balance(identity.address, self.settings.rpc_url)
            print(f"{utils.bold('Balance:')} {utils.bold_yellow(f'{balance:.6f} ETH')}")
        except Exception as e:
            utils.warn(f"Failed to fetch balance from {self.settings.rpc_url}: {e}")
        self.pause()

    def full_setup(self) -> None:
        """Run every step from dependency installation to opt-in."""
        utils.info("Starting full setup...")
        self.identity()
        self.install_dependencies()
        self.init_trap()
        if not self.trap.is_initialized():
            utils.warn("Trap project is not initialized. Stopping.")
            return
        self.deploy_trap()
        self.start_operator()
        self.register_operator()
        if self.trap_address:
            self.optin_operator()

        # best-effort final status
        try:
            status = self.node.status()
            if status.ok and status.output.strip():
                utils.result(status.output.strip())
        except TrapkeeperError:
            pass
        utils.section_footer(utils.bold_green("Done."))

    def exit_program(self) -> None:
        """Exit the program."""
        print("\nExiting Trapkeeper. Goodbye!")
        self.should_exit = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trapkeeper",
        description="Provision and operate a Drosera trap and operator node.",
    )
    parser.add_argument("--pk", metavar="HEX", help="Operator private key (64 hex, 0x optional)")
    parser.add_argument("--pk-file", metavar="PATH", help="File whose first non-empty line is the private key")
    parser.add_argument(
        "--non-interactive", "--auto",
        dest="non_interactive",
        action="store_true",
        help="Run the full setup without prompting, then exit",
    )
    parser.add_argument("-y", "--yes", dest="assume_yes", action="store_true", help="Answer yes to confirmations")
    parser.add_argument("--no-optin", dest="run_optin", action="store_false", help="Skip opting in to the trap")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        settings = config.load_settings(
            private_key=args.pk,
            private_key_file=args.pk_file,
            non_interactive=args.non_interactive,
            assume_yes=args.assume_yes,
            run_optin=args.run_optin,
        )
    except ValueError as e:
        utils.error(str(e))
        return 1

    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        utils.error(f"Cannot create log directory {settings.log_dir}: {e.strerror}. Set LOG_DIR to a writable path.")
        return 1

    cli = TrapkeeperCLI(settings)
    if not settings.non_interactive:
        cli.run()
        return 0

    try:
        cli.full_setup()
    except TrapkeeperError as e:
        utils.error(str(e))
        return 1
    except KeyboardInterrupt:
        utils.error("Interrupted.")
        return 130
    except Exception as e:
        utils.error(f"Unexpected error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
