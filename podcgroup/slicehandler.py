"""Locate the cgroup hierarchy of containers and read their statistics."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .pathhandler import search_by_container_id, search_by_suffix
from .statreader import (
    EXPORT_METRICS,
    CPUStatReader,
    IOStatReader,
    MemoryStatReader,
    StatReader,
    convert_to_standard,
)

log = logging.getLogger(__name__)

BASE_CGROUP_PATH = "/sys/fs/cgroup"
KUBEPODS_SLICE = "kubepods.slice"
SYSTEM_SLICE = "system.slice"
SCOPE_SUFFIX = ".scope"


@dataclass
class SliceHandler:
    """Holds the top cgroup paths and the stat readers of known containers."""

    cpu_top_path: str
    memory_top_path: str
    io_top_path: str
    stat_readers: dict[str, list[StatReader]] = field(default_factory=dict)

    @classmethod
    def _same_top(cls, path: str) -> SliceHandler:
        return cls(cpu_top_path=path, memory_top_path=path, io_top_path=path)

    @classmethod
    def discover(cls, base_path: str = BASE_CGROUP_PATH) -> SliceHandler:
        """Pick top paths for the cgroup layout found under base_path."""
        kubepods = os.path.join(base_path, KUBEPODS_SLICE)
        system = os.path.join(base_path, SYSTEM_SLICE)
        if os.path.exists(kubepods):
            handler = cls._same_top(kubepods)
        elif os.path.exists(system):
            handler = cls._same_top(system)
        else:
            cpu_base = os.path.join(base_path, "cpu")
            memory_base = os.path.join(base_path, "memory")
            io_base = os.path.join(base_path, "blkio")
            for slice_name in (KUBEPODS_SLICE, SYSTEM_SLICE):
                if os.path.exists(os.path.join(cpu_base, slice_name)):
                    handler = cls(
                        cpu_top_path=os.path.join(cpu_base, slice_name),
                        memory_top_path=os.path.join(memory_base, slice_name),
                        io_top_path=os.path.join(io_base, slice_name),
                    )
                    break
            else:
                handler = cls(
                    cpu_top_path=cpu_base,
                    memory_top_path=memory_base,
                    io_top_path=io_base,
                )
        log.debug("slice handler: %s", handler)
        return handler

    def set_stat_readers(self, container_id: str, readers: Sequence[StatReader]) -> None:
        self.stat_readers[container_id] = list(readers)

    def stats(self, container_id: str) -> dict[str, Any]:
        """Merge the values of every reader registered for container_id."""
        values: dict[str, Any] = {}
        for reader in self.stat_readers.get(container_id, ()):
            values.update(reader.read())
        return values

    def try_init_stat_readers(self, container_id: str) -> None:
        """Register CPU, memory and IO readers for a container if not yet known."""
        if container_id in self.stat_readers:
            return
        cpu_path = search_by_container_id(self.cpu_top_path, container_id)
        memory_path = cpu_path.replace(self.cpu_top_path, self.memory_top_path, 1)
        io_path = cpu_path.replace(self.cpu_top_path, self.io_top_path, 1)
        self.stat_readers[container_id] = [
            CPUStatReader(cpu_path),
            MemoryStatReader(memory_path),
            IOStatReader(io_path),
        ]

    def standard_stats(self, container_id: str) -> dict[str, Any]:
        return convert_to_standard(self.stats(container_id))

    def find_example_container_id(self) -> str:
        """Return the id of some container scope under the CPU top path, or ""."""
        scope_path = search_by_suffix(self.cpu_top_path, SCOPE_SUFFIX)
        if not scope_path:
            log.info(
                "no .scope entry found in %s; cgroup metrics will likely be 0",
                self.cpu_top_path,
            )
            return ""
        file_name = scope_path.split("/")[-1]
        scope_name = file_name.split(SCOPE_SUFFIX)[0]
        return scope_name.split("-")[-1]

    def available_metrics(self) -> list[str]:
        """Standard metric names readable for an example container."""
        container_id = self.find_example_container_id()
        self.try_init_stat_readers(container_id)
        return list(self.standard_stats(container_id))


def has_cgroup_export_metric(available_metrics: Iterable[str]) -> bool:
    """True when the available metrics cover every exported cgroup metric."""
    expected = len(EXPORT_METRICS)
    found = 0
    for metric in available_metrics:
        if metric in EXPORT_METRICS:
            found += 1
        if found >= expected:
            return True
    return False