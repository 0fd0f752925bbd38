import os

import pytest

from podcgroup.containers import (
    SYSTEM_PROCESS_NAME,
    UNKNOWN_PATH,
    CgroupLookupError,
    ContainerInfo,
    ContainerResolver,
    alive_containers,
    extract_container_id_from_path,
    parse_container_id_from_pod_status,
    path_from_pid,
)


def _pod(init=(), containers=(), ephemeral=(), name="", namespace=""):
    def statuses(ids):
        return [{"containerID": cid} for cid in ids]

    return {
        "metadata": {"name": name, "namespace": namespace},
        "status": {
            "initContainerStatuses": statuses(init),
            "containerStatuses": statuses(containers),
            "ephemeralContainerStatuses": statuses(ephemeral),
        },
    }


NORMAL_PODS = [
    _pod(init=["a1"], containers=["a2", "c1"], ephemeral=["a3"]),
    _pod(init=["b1", "c2"], containers=["b2"], ephemeral=["b3", "c3"]),
]


class FakeLister:
    def __init__(self, pods):
        self.pods = pods
        self.calls = 0

    def list_pods(self):
        self.calls += 1
        return self.pods


class FailingLister:
    def list_pods(self):
        raise ConnectionError("kubelet unreachable")


def test_alive_containers_normal_status():
    assert alive_containers(NORMAL_PODS) == {
        "a1", "a2", "a3", "b1", "b2", "b3", "c1", "c2", "c3",
    }


def test_alive_containers_strips_prefix():
    pods = [_pod(containers=["containerd://abc", "cri-o://def"])]
    assert alive_containers(pods) == {"abc", "def"}


def test_parse_container_id_from_pod_status():
    assert parse_container_id_from_pod_status("containerd://abc123") == "abc123"
    assert parse_container_id_from_pod_status("abc123") == "abc123"


def test_extract_conmon_on_cgroup_v2_is_rejected():
    with pytest.raises(CgroupLookupError) as info:
        extract_container_id_from_path("0::/kubepods.slice/crio-conmon-abc.scope", 2)
    assert info.value.container_id == ""


def test_extract_conmon_on_cgroup_v1_is_accepted():
    assert extract_container_id_from_path("1::/x/crio-conmon-abc.scope", 1) == "abc"


def test_path_from_pid(tmp_path):
    (tmp_path / "proc_42").write_text("0::/init.scope\n0::/kubepods/pod1/abc\n")
    template = str(tmp_path / "proc_{pid}")
    assert path_from_pid(template, 42) == "0::/kubepods/pod1/abc"


def test_path_from_pid_without_entry(tmp_path):
    (tmp_path / "proc_7").write_text("0::/init.scope\n")
    with pytest.raises(CgroupLookupError):
        path_from_pid(str(tmp_path / "proc_{pid}"), 7)


def test_path_from_pid_missing_file(tmp_path):
    with pytest.raises(CgroupLookupError):
        path_from_pid(str(tmp_path / "proc_{pid}"), 9)


def _resolver_with_proc(tmp_path, pods, line, pid=42):
    (tmp_path / f"proc_{pid}").write_text(line + "\n")
    return ContainerResolver(
        FakeLister(pods),
        with_cgroup_id=False,
        cgroup_version=2,
        cgroup_root=str(tmp_path),
        proc_path=str(tmp_path / "proc_{pid}"),
    )


def test_container_info_from_pid(tmp_path):
    pods = [
        {
            "metadata": {"name": "web", "namespace": "default"},
            "status": {
                "containerStatuses": [
                    {"containerID": "containerd://abc123", "name": "app"}
                ]
            },
        }
    ]
    resolver = _resolver_with_proc(
        tmp_path, pods, "0::/kubepods.slice/cri-containerd-abc123.scope"
    )
    assert resolver.container_info(0, 42) == ContainerInfo("abc123", "app", "web", "default")


def test_container_info_unknown_container_is_system(tmp_path):
    resolver = _resolver_with_proc(
        tmp_path, [], "0::/kubepods.slice/cri-containerd-zzz.scope"
    )
    info = resolver.container_info(0, 42)
    assert info == ContainerInfo.system()
    assert resolver.container_infos["zzz"] == ContainerInfo.system()
    assert resolver.container_infos[SYSTEM_PROCESS_NAME] == ContainerInfo.system()


def test_container_info_survives_lister_failure(tmp_path):
    (tmp_path / "proc_5").write_text("0::/kubepods.slice/cri-containerd-q1.scope\n")
    resolver = ContainerResolver(
        FailingLister(), False, 2, str(tmp_path), str(tmp_path / "proc_{pid}")
    )
    assert resolver.container_info(0, 5).pod_name == SYSTEM_PROCESS_NAME


def test_container_info_raises_when_no_path(tmp_path):
    resolver = ContainerResolver(
        FakeLister([]), False, 2, str(tmp_path), str(tmp_path / "proc_{pid}")
    )
    with pytest.raises(CgroupLookupError):
        resolver.container_info(0, 1)


def test_container_info_uses_cache(tmp_path):
    lister = FakeLister([_pod(containers=["containerd://c9"], name="p")])
    resolver = ContainerResolver(lister, False, 2, str(tmp_path), str(tmp_path / "p{pid}"))
    resolver.add_container_id(3, "c9")
    first = resolver.container_info(0, 3)
    second = resolver.container_info(0, 3)
    assert first.pod_name == "p"
    assert second is first
    assert lister.calls == 1


def test_add_container_id_short_circuits_lookup(tmp_path):
    resolver = ContainerResolver(
        FakeLister([]), False, 2, str(tmp_path), str(tmp_path / "none_{pid}")
    )
    resolver.add_container_id(11, "cached-id")
    assert resolver.container_id_from_pid(11) == "cached-id"


def test_container_id_from_pid_caches_failure(tmp_path):
    resolver = _resolver_with_proc(
        tmp_path, [], "0::/kubepods.slice/crio-conmon-abc.scope", pid=8
    )
    with pytest.raises(CgroupLookupError):
        resolver.container_id_from_pid(8)
    assert resolver.container_ids[8] == ""


def test_path_from_cgroup_id(tmp_path):
    scope = tmp_path / "kubepods.slice" / "cri-containerd-xyz.scope"
    scope.mkdir(parents=True)
    cgroup_id = os.stat(scope).st_ino
    resolver = ContainerResolver(FakeLister([]), True, 2, str(tmp_path), "")
    assert resolver.path_from_cgroup_id(cgroup_id) == str(scope)
    assert resolver.container_id_from_cgroup_id(cgroup_id) == "xyz"


def test_path_from_unknown_cgroup_id(tmp_path):
    resolver = ContainerResolver(FakeLister([]), True, 2, str(tmp_path), "")
    assert resolver.path_from_cgroup_id(-1) == UNKNOWN_PATH
    assert resolver.cgroup_paths[-1] == UNKNOWN_PATH


def test_path_from_cgroup_id_missing_root(tmp_path):
    resolver = ContainerResolver(FakeLister([]), True, 2, str(tmp_path / "absent"), "")
    with pytest.raises(CgroupLookupError):
        resolver.path_from_cgroup_id(1)


def test_refresh_pods_stops_when_found():
    pods = [_pod(containers=["a", "b", "c"], name="pod", namespace="ns")]
    resolver = ContainerResolver(FakeLister(pods), False, 2, "", "")
    returned = resolver.refresh_pods("b", True)
    assert returned == pods
    assert set(resolver.container_infos) == {"a", "b"}


def test_refresh_pods_all():
    resolver = ContainerResolver(FakeLister(NORMAL_PODS), False, 2, "", "")
    resolver.refresh_pods()
    assert set(resolver.container_infos) == {
        "a1", "a2", "a3", "b1", "b2", "b3", "c1", "c2", "c3",
    }


def test_get_alive_containers():
    resolver = ContainerResolver(FakeLister(NORMAL_PODS), False, 2, "", "")
    assert resolver.get_alive_containers() == {
        "a1", "a2", "a3", "b1", "b2", "b3", "c1", "c2", "c3",
    }


def test_get_alive_containers_propagates_lister_error():
    resolver = ContainerResolver(FailingLister(), False, 2, "", "")
    with pytest.raises(ConnectionError):
        resolver.get_alive_containers()