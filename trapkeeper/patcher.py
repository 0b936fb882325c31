"""Line-oriented editing of key/value configuration files.

Edits are pure functions over lists of lines. Reading, backing up and
atomically replacing files on disk is handled separately below.

Only the first line defining a key is rewritten. Any later duplicate of the
same key is left as it is.
"""

import os
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from trapkeeper.errors import ConfigFileNotFound, WriteFailed

Value = Union[str, int, bool, Sequence[str]]
Formatter = Callable[[str, Value], str]

SECTION_PATTERN = re.compile(r"^\s*\[\[?[^\[\]]+\]\]?\s*(#.*)?$")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def toml_line(key: str, value: Value) -> str:
    """Render a TOML assignment, e.g. key = "value"."""
    if isinstance(value, bool):
        rendered = "true" if value else "false"
    elif isinstance(value, int):
        rendered = str(value)
    elif isinstance(value, str):
        rendered = _quote(value)
    else:
        rendered = "[" + ", ".join(_quote(item) for item in value) + "]"
    return f"{key} = {rendered}"


def env_line(key: str, value: Value) -> str:
    """Render a dotenv assignment, e.g. KEY=value."""
    return f"{key}={value}"


def key_pattern(key: str) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(key)}\s*=")


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
        return raw[1:-1]
    return raw


def _terminator(line: str) -> str:
    for ending in ("\r\n", "\n", "\r"):
        if line.endswith(ending):
            return ending
    return ""


def _insert(lines: List[str], index: int, text: str, newline: str) -> None:
    if index == len(lines) and lines and not _terminator(lines[-1]):
        # a missing final newline stays missing
        lines[-1] += newline
        lines.append(text)
    else:
        lines.insert(index, text + newline)


def find_key(lines: Sequence[str], key: str, start: int = 0, end: Optional[int] = None) -> Optional[int]:
    """Return the index of the first line defining key within [start, end)."""
    pattern = key_pattern(key)
    stop = len(lines) if end is None else end
    for index in range(start, stop):
        if pattern.match(lines[index]):
            return index
    return None


def set_key(
    lines: Sequence[str],
    key: str,
    value: Value,
    formatter: Formatter = toml_line,
    newline: str = "",
) -> List[str]:
    """
    Replace or append a key assignment.

    Args:
        lines: Document lines, with or without their line terminators
        key: Key to set
        value: New value
        formatter: Renders the replacement line
        newline: Terminator for an appended line; a replaced line keeps its own

    Returns:
        New list of lines; the input is not modified
    """
    updated = list(lines)
    new_line = formatter(key, value)
    index = find_key(updated, key)
    if index is None:
        _insert(updated, len(updated), new_line, newline)
    else:
        updated[index] = new_line + _terminator(updated[index])
    return updated


def find_section(lines: Sequence[str], section_pattern: str) -> Optional[Tuple[int, int]]:
    """
    Locate a [section] block.

    Args:
        lines: Document lines
        section_pattern: Regular expression matched against the section name

    Returns:
        (header index, end index) where end is the index of the next section
        marker or len(lines); None if no section matches
    """
    header = re.compile(rf"^\s*\[\s*(?:{section_pattern})\s*\]\s*(#.*)?$")
    for index, line in enumerate(lines):
        if header.match(line):
            end = index + 1
            while end < len(lines) and not SECTION_PATTERN.match(lines[end]):
                end += 1
            return index, end
    return None


def set_key_in_section(
    lines: Sequence[str],
    section_pattern: str,
    key: str,
    value: Value,
    formatter: Formatter = toml_line,
    newline: str = "",
) -> List[str]:
    """
    Replace or insert a key assignment inside one section only.

    Lines outside the matched section are never modified. When the key is
    missing from the section it is inserted after the section's last non-blank
    line. When no section matches, the whole document is treated as the
    region, as set_key does.
    """
    bounds = find_section(lines, section_pattern)
    if bounds is None:
        return set_key(lines, key, value, formatter, newline)

    start, end = bounds
    updated = list(lines)
    new_line = formatter(key, value)
    index = find_key(updated, key, start + 1, end)
    if index is not None:
        updated[index] = new_line + _terminator(updated[index])
        return updated

    insert_at = end
    while insert_at > start + 1 and not updated[insert_at - 1].strip():
        insert_at -= 1
    _insert(updated, insert_at, new_line, newline)
    return updated


def get_key(lines: Sequence[str], key: str, start: int = 0, end: Optional[int] = None) -> Optional[str]:
    """Return the unquoted value of the first assignment of key, if any."""
    index = find_key(lines, key, start, end)
    if index is None:
        return None
    raw = lines[index].split("=", 1)[1]
    return _unquote(raw.split(" #", 1)[0])


def get_key_in_section(lines: Sequence[str], section_pattern: str, key: str) -> Optional[str]:
    """Return the value of key inside the first matching section, if any."""
    bounds = find_section(lines, section_pattern)
    if bounds is None:
        return None
    start, end = bounds
    return get_key(lines, key, start + 1, end)


def read_lines(path: Union[str, Path]) -> List[str]:
    """
    Read a config file as lines that keep their original terminators.

    Raises:
        ConfigFileNotFound: If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigFileNotFound(path)
    with open(path, encoding="utf-8", newline="") as f:
        return f.readlines()


def read_document(path: Union[str, Path]) -> List[str]:
    """Read a config file as a list of lines without terminators."""
    return [line.rstrip("\r\n") for line in read_lines(path)]


def backup_file(path: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """Copy a file to a sibling named <name>.bak.<YYYYmmddHHMMSS>."""
    path = Path(path)
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    backup = path.with_name(f"{path.name}.bak.{stamp}")
    shutil.copy2(path, backup)
    return backup


def atomic_write(path: Union[str, Path], lines: Sequence[str]) -> None:
    """
    Replace a file's content atomically.

    Lines are written as given, terminators included. The new content goes
    to a temporary file in the same directory, which is renamed over the
    target. On any failure the temporary file is removed and the original
    file is left untouched.

    Raises:
        WriteFailed: If the content cannot be committed
    """
    path = Path(path)
    content = "".join(lines)
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise WriteFailed(path, e.strerror or str(e)) from e
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)


def _commit(path: Path, original: List[str], updated: List[str]) -> Optional[Path]:
    if updated == original:
        return None
    try:
        backup = backup_file(path)
    except OSError as e:
        raise WriteFailed(path, f"backup failed: {e.strerror or e}") from e
    atomic_write(path, updated)
    return backup


def _document_newline(lines: Sequence[str]) -> str:
    for line in lines:
        ending = _terminator(line)
        if ending:
            return ending
    return "\n"


def patch_file(
    path: Union[str, Path],
    updates: Dict[str, Value],
    formatter: Formatter = toml_line,
) -> Optional[Path]:
    """
    Set several keys in a file, backing it up first.

    Untouched lines keep their bytes, including CRLF terminators and a
    missing final newline. Appended lines use the file's own terminator.

    Returns:
        Path of the backup, or None when the file already had these values
    """
    path = Path(path)
    original = read_lines(path)
    newline = _document_newline(original)
    updated = original
    for key, value in updates.items():
        updated = set_key(updated, key, value, formatter, newline)
    return _commit(path, original, updated)


def patch_section(
    path: Union[str, Path],
    section_pattern: str,
    updates: Dict[str, Value],
    formatter: Formatter = toml_line,
) -> Optional[Path]:
    """Set several keys inside one section of a file, backing it up first."""
    path = Path(path)
    original = read_lines(path)
    newline = _document_newline(original)
    updated = original
    for key, value in updates.items():
        updated = set_key_in_section(updated, section_pattern, key, value, formatter, newline)
    return _commit(path, original, updated)
