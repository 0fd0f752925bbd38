"""Disk read and write byte counts from cgroup io.stat files."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .containers import CGROUP_PATH, CgroupLookupError, ContainerResolver, path_from_pid

IO_STAT_FILE = "io.stat"

# e.g. "8:16 rbytes=58032128 wbytes=0 rios=120 wios=0 dbytes=0 dios=0"
_IO_STAT_LINE = re.compile(r"(\d+):(\d+).rbytes=(\d+).wbytes=(\d+)")

_UINT64_MAX = 2**64 - 1
_RUNTIMES = ("crio", "docker", "containerd")


@dataclass(frozen=True)
class IOStat:
    read_bytes: int = 0
    write_bytes: int = 0
    disks: int = 0


def _is_virtual_disk(major: str) -> bool:
    return major == "253"


def _uint64_or_zero(text: str) -> int:
    value = int(text)
    return value if value <= _UINT64_MAX else 0


def read_io_stat(path: str | os.PathLike[str]) -> IOStat:
    """Sum read and write bytes over the non-virtual disks listed in an io.stat file.

    Raises OSError if the file cannot be opened.
    """
    read_bytes = write_bytes = disks = 0
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            match = _IO_STAT_LINE.search(line)
            if match is None:
                continue
            major, _minor, rbytes, wbytes = (part.strip() for part in match.groups())
            if _is_virtual_disk(major):
                continue
            disks += 1
            read_bytes += _uint64_or_zero(rbytes)
            write_bytes += _uint64_or_zero(wbytes)
    return IOStat(read_bytes=read_bytes, write_bytes=write_bytes, disks=disks)


def read_all_cgroup_io_stat(cgroup_root: str = CGROUP_PATH) -> IOStat:
    """Read the io.stat file at the root of the cgroup hierarchy."""
    return read_io_stat(os.path.join(cgroup_root, IO_STAT_FILE))


def read_cgroup_io_stat(resolver: ContainerResolver, cgroup_id: int, pid: int) -> IOStat:
    """Read the io.stat file of the container cgroup a process or cgroup id is in.

    Raises CgroupLookupError when the cgroup path is not a container runtime's.
    """
    if resolver.with_cgroup_id:
        path = resolver.path_from_cgroup_id(cgroup_id)
    else:
        path = path_from_pid(resolver.proc_path, pid)
    if any(runtime in path for runtime in _RUNTIMES):
        return read_io_stat(os.path.join(path, IO_STAT_FILE))
    raise CgroupLookupError("no cgroup path found")