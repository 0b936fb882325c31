"""Blocking execution of external commands with per-category log files."""

import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from trapkeeper import utils
from trapkeeper.errors import MissingDependency, SubprocessFailed
from trapkeeper.models import CommandResult


def which(tool: str) -> Optional[str]:
    """Return the full path of a tool on PATH, or None."""
    return shutil.which(tool)


def require_tool(tool: str, hint: str = "") -> str:
    """Return the path of a tool or raise MissingDependency."""
    path = which(tool)
    if path is None:
        raise MissingDependency(tool, hint)
    return path


def prepend_path(directory: Union[str, Path]) -> None:
    """Add a directory to this process's PATH if it is not already there."""
    directory = str(Path(directory).expanduser())
    entries = os.environ.get("PATH", "").split(os.pathsep)
    if directory not in entries:
        os.environ["PATH"] = os.pathsep.join([directory] + [e for e in entries if e])


class Runner:
    """Run external commands and append their output to category logs."""

    def __init__(self, log_dir: Union[str, Path]) -> None:
        self.log_dir = Path(log_dir)

    def log_path(self, category: str) -> Path:
        return self.log_dir / f"{category}.log"

    def _append_log(self, category: str, header: str, output: str) -> Path:
        path = self.log_path(category)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"==> {utils.timestamp()} {header}\n")
            if output:
                f.write(output)
                if not output.endswith("\n"):
                    f.write("\n")
        return path

    def _child_env(self, env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not env:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def run(
        self,
        argv: Sequence[str],
        category: str,
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
        critical: bool = False,
    ) -> CommandResult:
        """
        Run a command to completion, capturing stdout and stderr into the log.

        Args:
            argv: Command and arguments
            category: Log category; output goes to <log_dir>/<category>.log
            cwd: Working directory
            env: Extra environment variables; values are never logged
            input_text: Text fed to the command's stdin
            critical: Raise SubprocessFailed on a non-zero exit status

        Returns:
            CommandResult with the combined output

        Raises:
            MissingDependency: If the executable cannot be found
            SubprocessFailed: If critical and the command fails
        """
        argv = [str(arg) for arg in argv]
        command = shlex.join(argv)
        try:
            completed = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=self._child_env(env),
                input=input_text,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=None if input_text is not None else subprocess.DEVNULL,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as e:
            self._append_log(category, f"$ {command}", f"not found: {argv[0]}")
            raise MissingDependency(argv[0]) from e

        log_path = self._append_log(
            category, f"$ {command} (exit {completed.returncode})", completed.stdout
        )
        result = CommandResult(
            argv=argv,
            returncode=completed.returncode,
            output=completed.stdout or "",
            log_path=log_path,
        )
        if critical and not result.ok:
            raise SubprocessFailed(command, result.returncode, log_path)
        return result

    def shell(self, script: str, category: str, critical: bool = False, **kwargs) -> CommandResult:
        """Run a bash snippet, for installers that are piped to a shell."""
        return self.run(["bash", "-c", script], category, critical=critical, **kwargs)

    def stream(self, argv: Sequence[str], cwd: Optional[Union[str, Path]] = None) -> int:
        """Run a command attached to the terminal and return its exit status."""
        argv = [str(arg) for arg in argv]
        try:
            return subprocess.call(argv, cwd=str(cwd) if cwd else None)
        except FileNotFoundError as e:
            raise MissingDependency(argv[0]) from e


def report(result: CommandResult, success_message: str, failure_message: str) -> bool:
    """Print the outcome of a non-critical command and return whether it succeeded."""
    if result.ok:
        utils.success(success_message)
        return True
    utils.warn(f"{failure_message} (exit {result.returncode}). See {result.log_path}")
    return False

