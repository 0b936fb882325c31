"""Data models for Trapkeeper."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""
    argv: List[str]
    returncode: int
    output: str = ""
    log_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class OperatorIdentity:
    """Private key and the address derived from it."""
    private_key: str = field(repr=False)
    address: str
    public_key: str = ""
