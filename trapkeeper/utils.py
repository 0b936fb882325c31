"""Utility functions for Trapkeeper."""

import sys
from datetime import datetime
from typing import Dict

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[31m"
YELLOW = "\033[33m"
GREEN = "\033[32m"
BLUE = "\033[34m"
CYAN = "\033[36m"


def timestamp() -> str:
    """Return the current local time in ISO 8601 format with offset."""
    return datetime.now().astimezone().strftime("%Y-%m-%dT%H:%M:%S%z")


def print_banner() -> None:
    """Print the Trapkeeper banner."""
    banner = r"""  _                  _
 | |_ _ __ __ _ _ __| | _____  ___ _ __   ___ _ __
 | __| '__/ _` | '_ \ |/ / _ \/ _ \ '_ \ / _ \ '__|
 | |_| | | (_| | |_) |   <  __/  __/ |_) |  __/ |
  \__|_|  \__,_| .__/|_|\_\___|\___| .__/ \___|_|
               |_|                 |_|
"""
    print(banner)
    print("Welcome to Trapkeeper - the Drosera trap and operator toolkit.")


def section_header(title: str) -> None:
    """Print a section header."""
    print()
    print(f"--- {title} ---")


def section_footer(message: str) -> None:
    """Print a section footer."""
    print()
    print(message)


def error(message: str) -> None:
    """Print an error message in red to stderr."""
    print(f"{timestamp()}  {RED}[error]{RESET} {message}", file=sys.stderr)


def warn(message: str) -> None:
    """Print a warning message in yellow."""
    print(f"{timestamp()}  {YELLOW}[warn]{RESET} {message}")


def info(message: str) -> None:
    """Print an info message in blue."""
    print(f"{timestamp()}  {BLUE}[info]{RESET} {message}")


def success(message: str) -> None:
    """Print a success message in green."""
    print(f"{timestamp()}  {GREEN}[success]{RESET} {message}")


def result(message: str) -> None:
    """Print a result message in cyan."""
    print(f"{timestamp()}  {CYAN}[result]{RESET} {message}")


def bold(message: str) -> str:
    """Return a bold formatted message."""
    return f"{BOLD}{message}{RESET}"


def bold_yellow(message: str) -> str:
    """Return a bold yellow formatted message."""
    return f"{BOLD}{YELLOW}{message}{RESET}"


def bold_green(message: str) -> str:
    """Return a bold green formatted message."""
    return f"{BOLD}{GREEN}{message}{RESET}"


def bold_cyan(message: str) -> str:
    """Return a bold cyan formatted message."""
    return f"{BOLD}{CYAN}{message}{RESET}"


def mask(secret: str, visible: int = 4) -> str:
    """Return a masked form of a secret showing only its last characters."""
    if len(secret) <= visible:
        return "*" * len(secret)
    return "*" * 8 + secret[-visible:]


def print_menu(title: str, items: Dict[str, str]) -> None:
    """Print a formatted menu.

    Args:
        title: Menu title
        items: Dictionary mapping keys to labels
    """
    print()
    print(f"=== {title} ===")

    for key, label in items.items():
        print(f"{key:>2}. {bold(label)}")

    print()
