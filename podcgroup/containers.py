"""Resolve processes and cgroups to the Kubernetes containers they belong to."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

log = logging.getLogger(__name__)

SYSTEM_PROCESS_NAME = "system_processes"
SYSTEM_PROCESS_NAMESPACE = "system"
UNKNOWN_PATH = "unknown"

PROC_PATH = "/proc/{pid}/cgroup"
CGROUP_PATH = "/sys/fs/cgroup"

_FIND_CONTAINER_ID_PATH = re.compile(r".*-(.*?)\.scope")
_REPLACE_PATH_PREFIX = re.compile(r".*-")
# Some platforms (e.g. RHEL) use a different cgroup path layout.
_FIND_CONTAINER_ID_PATH2 = re.compile(r"[^:]*\Z")
_REPLACE_PATH_SUFFIX = re.compile(r"\..*")
_REPLACE_ID_PREFIX = re.compile(r".*//")

_RUNTIMES = ("crio", "docker", "containerd")
_STATUS_KINDS_REFRESH = (
    "containerStatuses",
    "initContainerStatuses",
    "ephemeralContainerStatuses",
)


class CgroupLookupError(LookupError):
    """Raised when a process or cgroup cannot be mapped to a container.

    ``container_id`` holds the identifier the lookup settled on despite the
    failure (the system process name, or an empty string).
    """

    def __init__(self, message: str, container_id: str = SYSTEM_PROCESS_NAME) -> None:
        super().__init__(message)
        self.container_id = container_id


@dataclass(frozen=True)
class ContainerInfo:
    container_id: str
    container_name: str
    pod_name: str
    namespace: str

    @classmethod
    def system(cls) -> ContainerInfo:
        """Info used for processes that do not belong to a Kubernetes container."""
        return cls(
            container_id=SYSTEM_PROCESS_NAME,
            container_name=SYSTEM_PROCESS_NAME,
            pod_name=SYSTEM_PROCESS_NAME,
            namespace=SYSTEM_PROCESS_NAMESPACE,
        )


class PodLister(Protocol):
    def list_pods(self) -> Iterable[Mapping[str, Any]]: ...


def parse_container_id_from_pod_status(container_id: str) -> str:
    """Strip the runtime prefix, e.g. ``containerd://abc`` -> ``abc``."""
    return _REPLACE_ID_PREFIX.sub("", container_id)


def _statuses(pod: Mapping[str, Any], kind: str) -> list[Mapping[str, Any]]:
    status = pod.get("status") or {}
    return list(status.get(kind) or [])


def _container_ids(pod: Mapping[str, Any]) -> Iterator[str]:
    for kind in (
        "initContainerStatuses",
        "containerStatuses",
        "ephemeralContainerStatuses",
    ):
        for status in _statuses(pod, kind):
            yield parse_container_id_from_pod_status(status.get("containerID", ""))


def alive_containers(pods: Iterable[Mapping[str, Any]]) -> set[str]:
    """Return the ids of every init, regular and ephemeral container in pods."""
    return {container_id for pod in pods for container_id in _container_ids(pod)}


def extract_container_id_from_path(path: str, cgroup_version: int) -> str:
    """Extract a container id from a cgroup path.

    Raises CgroupLookupError for cgroup v2 paths of conmon or systemd
    services, which are not in a Kubernetes pod.
    """
    if _FIND_CONTAINER_ID_PATH.search(path):
        for match in _FIND_CONTAINER_ID_PATH.finditer(path):
            element = match.group(0)
            if cgroup_version == 2 and ("-conmon-" in element or ".service" in element):
                raise CgroupLookupError("process is not in a kubernetes pod", container_id="")
            if any(runtime in element for runtime in _RUNTIMES):
                container_id = _REPLACE_PATH_PREFIX.sub("", element)
                return _REPLACE_PATH_SUFFIX.sub("", container_id)
    match = _FIND_CONTAINER_ID_PATH2.search(path)
    if match is not None:
        return match.group(0)
    raise CgroupLookupError("failed to find pod's container id")


def path_from_pid(search_path: str, pid: int) -> str:
    """Return the first cgroup line of a process that refers to a pod or runtime.

    ``search_path`` is a template with a ``{pid}`` field.
    """
    path = search_path.format(pid=pid)
    try:
        with open(path, encoding="utf-8") as handle:
            for raw in handle:
                line = raw.rstrip("\r\n")
                if "pod" in line or "containerd" in line or "crio" in line:
                    return line
    except OSError as exc:
        raise CgroupLookupError(
            f"failed to open cgroup description file for pid {pid}: {exc}"
        ) from exc
    raise CgroupLookupError(f"could not find cgroup description entry for pid {pid}")


def _cgroup_id_of(path: str) -> int:
    # On cgroup v2 the cgroup id is the inode number of its directory.
    return os.stat(path).st_ino


class ContainerResolver:
    """Maps pids or cgroup ids to containers, caching what it learns."""

    def __init__(
        self,
        pod_lister: PodLister,
        with_cgroup_id: bool = False,
        cgroup_version: int = 2,
        cgroup_root: str = CGROUP_PATH,
        proc_path: str = PROC_PATH,
    ) -> None:
        self.pod_lister = pod_lister
        self.with_cgroup_id = with_cgroup_id
        self.cgroup_version = cgroup_version
        self.cgroup_root = cgroup_root
        self.proc_path = proc_path
        self.container_ids: dict[int, str] = {}
        self.container_infos: dict[str, ContainerInfo] = {}
        self.cgroup_paths: dict[int, str] = {}

    def refresh_pods(
        self, target_container_id: str = "", stop_when_found: bool = False
    ) -> list[Mapping[str, Any]]:
        """Fill the info cache from the pod list, optionally stopping at a target."""
        pods = list(self.pod_lister.list_pods())
        for pod in pods:
            metadata = pod.get("metadata") or {}
            for kind in _STATUS_KINDS_REFRESH:
                for status in _statuses(pod, kind):
                    raw_id = status.get("containerID", "")
                    container_id = parse_container_id_from_pod_status(raw_id)
                    self.container_infos[container_id] = ContainerInfo(
                        container_id=container_id,
                        container_name=status.get("name", ""),
                        pod_name=metadata.get("name", ""),
                        namespace=metadata.get("namespace", ""),
                    )
                    if stop_when_found and raw_id == target_container_id:
                        return pods
        return pods

    def _container_id(self, cgroup_id: int, pid: int) -> str:
        if self.with_cgroup_id:
            return self.container_id_from_cgroup_id(cgroup_id)
        return self.container_id_from_pid(pid)

    def container_info(self, cgroup_id: int, pid: int) -> ContainerInfo:
        """Return the container a process belongs to.

        Raises CgroupLookupError when no container id can be found; callers
        usually fall back to ContainerInfo.system().
        """
        container_id = self._container_id(cgroup_id, pid)
        if container_id in self.container_infos:
            return self.container_infos[container_id]

        try:
            self.refresh_pods(container_id, True)
        except Exception as exc:  # the lister is external; a failed refresh is not fatal
            log.debug("failed to list pods: %s", exc)
        if container_id in self.container_infos:
            return self.container_infos[container_id]

        info = ContainerInfo.system()
        self.container_infos[container_id] = info
        # A system process may carry a container id; register it under the
        # system name as well, since it is not a Kubernetes container.
        self.container_infos.setdefault(SYSTEM_PROCESS_NAME, info)
        return self.container_infos[SYSTEM_PROCESS_NAME]

    def add_container_id(self, key: int, container_id: str) -> None:
        """Cache a container id under a pid or cgroup id."""
        self.container_ids[key] = container_id

    def _resolve_path(self, key: int, path: str) -> str:
        try:
            container_id = extract_container_id_from_path(path, self.cgroup_version)
        except CgroupLookupError as exc:
            self.add_container_id(key, exc.container_id)
            raise
        self.add_container_id(key, container_id)
        return container_id

    def container_id_from_pid(self, pid: int) -> str:
        if pid in self.container_ids:
            return self.container_ids[pid]
        return self._resolve_path(pid, path_from_pid(self.proc_path, pid))

    def container_id_from_cgroup_id(self, cgroup_id: int) -> str:
        if cgroup_id in self.container_ids:
            return self.container_ids[cgroup_id]
        return self._resolve_path(cgroup_id, self.path_from_cgroup_id(cgroup_id))

    def path_from_cgroup_id(self, cgroup_id: int) -> str:
        """Return the cgroupfs directory of a cgroup id, or ``unknown``."""
        if cgroup_id in self.cgroup_paths:
            return self.cgroup_paths[cgroup_id]
        walk_errors: list[OSError] = []
        try:
            for dirpath, dirnames, _ in os.walk(self.cgroup_root, onerror=walk_errors.append):
                if walk_errors:
                    break
                dirnames.sort()
                self.cgroup_paths[_cgroup_id_of(dirpath)] = dirpath
        except OSError as exc:
            raise CgroupLookupError(f"failed to find cgroup id: {exc}") from exc
        if walk_errors:
            error = walk_errors[0]
            raise CgroupLookupError(f"failed to find cgroup id: {error}") from error
        return self.cgroup_paths.setdefault(cgroup_id, UNKNOWN_PATH)

    def get_alive_containers(self) -> set[str]:
        return alive_containers(self.pod_lister.list_pods())