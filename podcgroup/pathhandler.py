"""Helpers for locating cgroup directories and parsing cgroupfs files."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator

_UINT64_MAX = 2**64 - 1


def _parse_uint64(text: str) -> int:
    """Parse an unsigned 64-bit decimal integer, raising ValueError if invalid."""
    if not text or not (text.isascii() and text.isdigit()):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range for uint64: {text!r}")
    return value


def _walk(top: str) -> Iterator[tuple[str, str]]:
    """Yield (path, name) for top and everything below it, in lexical order.

    Symbolic links are not followed and unreadable directories are skipped.
    """
    if not os.path.lexists(top):
        return
    yield top, os.path.basename(os.path.normpath(top))
    if not os.path.isdir(top) or os.path.islink(top):
        return
    yield from _walk_children(top)


def _walk_children(directory: str) -> Iterator[tuple[str, str]]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError:
        return
    for entry in entries:
        path = os.path.join(directory, entry.name)
        yield path, entry.name
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if is_dir:
            yield from _walk_children(path)


def _first_match(top_folder: str, predicate: Callable[[str, str], bool]) -> str:
    for path, name in _walk(top_folder):
        if predicate(path, name):
            return path
    return ""


def search_by_container_id(top_folder: str, container_id: str) -> str:
    """Return the first path under top_folder whose name contains container_id, or ""."""
    return _first_match(top_folder, lambda _path, name: container_id in name)


def search_by_suffix(top_folder: str, suffix: str) -> str:
    """Return the first path under top_folder ending with suffix, or ""."""
    return _first_match(top_folder, lambda path, _name: path.endswith(suffix))


def read_uint64(file_name: str | os.PathLike[str]) -> int:
    """Read a single unsigned integer from a file.

    Raises OSError if the file cannot be read and ValueError if it does not
    hold an unsigned integer.
    """
    with open(file_name, encoding="utf-8") as handle:
        content = handle.read()
    return _parse_uint64(content.strip())


def read_kv(file_name: str | os.PathLike[str]) -> dict[str, int]:
    """Read "key value" lines, keeping those whose value is an unsigned integer."""
    values: dict[str, int] = {}
    with open(file_name, encoding="utf-8") as handle:
        for line in handle:
            fields = line.split()
            if len(fields) != 2:
                continue
            try:
                values[fields[0]] = _parse_uint64(fields[1])
            except ValueError:
                continue
    return values


def read_line_k_equal_to_v(file_name: str | os.PathLike[str]) -> dict[str, int]:
    """Sum "key=value" fields over all lines, skipping device-mapper (253:) lines."""
    values: dict[str, int] = {}
    with open(file_name, encoding="utf-8") as handle:
        for line in handle:
            fields = line.split()
            if not fields or "253:" in fields[0]:
                continue
            for field in fields:
                if "=" not in field:
                    continue
                key, raw = field.split("=")[:2]
                values.setdefault(key, 0)
                try:
                    values[key] += _parse_uint64(raw)
                except ValueError:
                    continue
    return values