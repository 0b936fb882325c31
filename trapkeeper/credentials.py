"""Private key resolution from environment, flags, files, stdin and prompts."""

import getpass
import os
import re
import sys
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, TextIO, Tuple

from trapkeeper import utils
from trapkeeper.config import Settings
from trapkeeper.errors import InvalidCredentialFormat, MissingCredential

PRIVATE_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")

# Whitespace and ASCII control characters
_STRIP_PATTERN = re.compile(r"[\s\x00-\x1f\x7f]+")


def normalize_private_key(value: str) -> str:
    """
    Normalize a private key to 64 hex characters without prefix.

    Args:
        value: Raw key, optionally 0x-prefixed and containing whitespace

    Returns:
        The normalized key, case preserved

    Raises:
        InvalidCredentialFormat: If the result is not 64 hex characters
    """
    key = _STRIP_PATTERN.sub("", value or "")
    if key[:2] in ("0x", "0X"):
        key = key[2:]
    if not PRIVATE_KEY_PATTERN.match(key):
        raise InvalidCredentialFormat(
            "Private key must be 64 hex characters (32 bytes), with or without 0x."
        )
    return key


def is_valid_private_key(value: str) -> bool:
    """Check whether a value normalizes to a valid private key."""
    try:
        normalize_private_key(value)
    except InvalidCredentialFormat:
        return False
    return True


def read_key_file(path: Path) -> Optional[str]:
    """Return the first non-empty line of a key file, or None if unreadable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    return line.strip()
    except OSError as e:
        utils.warn(f"Cannot read private key file {path}: {e.strerror}")
    return None


class CredentialResolver:
    """Resolve the operator private key from an ordered set of sources.

    Sources, first valid wins:
        1. primary environment variable
        2. secondary environment variable
        3. --pk flag value
        4. first non-empty line of the --pk-file file
        5. one line from stdin when stdin is not a terminal
        6. masked prompt, then one visible retry (interactive mode only)
    """

    def __init__(
        self,
        settings: Settings,
        environ: Optional[Mapping[str, str]] = None,
        stdin: Optional[TextIO] = None,
        secret_prompt: Callable[[str], str] = getpass.getpass,
        visible_prompt: Callable[[str], str] = input,
    ) -> None:
        self.settings = settings
        self.environ = os.environ if environ is None else environ
        self.stdin = sys.stdin if stdin is None else stdin
        self.secret_prompt = secret_prompt
        self.visible_prompt = visible_prompt

    def candidates(self) -> Iterator[Tuple[str, Optional[str]]]:
        """Yield (source name, raw value) pairs for non-prompt sources, lazily."""
        yield self.settings.primary_key_env, self.environ.get(self.settings.primary_key_env)
        yield self.settings.secondary_key_env, self.environ.get(self.settings.secondary_key_env)
        yield "--pk", self.settings.private_key
        if self.settings.private_key_file:
            yield "--pk-file", read_key_file(self.settings.private_key_file)
        if self._stdin_is_piped():
            yield "stdin", self.stdin.readline()

    def _stdin_is_piped(self) -> bool:
        if self.stdin is None or self.stdin.closed:
            return False
        try:
            return not self.stdin.isatty()
        except (AttributeError, ValueError):
            return False

    def resolve(self) -> str:
        """
        Return the first valid private key.

        Returns:
            Normalized 64-character hex private key

        Raises:
            MissingCredential: Non-interactive mode and no source validated
            InvalidCredentialFormat: Both interactive attempts were invalid
        """
        for source, raw in self.candidates():
            if raw is None or not raw.strip():
                continue
            try:
                return normalize_private_key(raw)
            except InvalidCredentialFormat:
                utils.warn(f"Ignoring invalid private key from {source}.")

        if self.settings.non_interactive:
            raise MissingCredential(
                f"No valid private key found. Set {self.settings.primary_key_env}, "
                f"{self.settings.secondary_key_env}, --pk or --pk-file."
            )

        return self._prompt()

    def _prompt(self) -> str:
        raw = self.secret_prompt("Enter EVM private key (hidden, 64 hex, 0x optional): ")
        if is_valid_private_key(raw):
            return normalize_private_key(raw)

        utils.warn("Invalid private key. Try once more (input will be visible).")
        raw = self.visible_prompt("Enter EVM private key: ")
        return normalize_private_key(raw)
