# podcgroup

Read per-container resource statistics from the Linux cgroup filesystem and
work out which Kubernetes pod and container a process belongs to.

## Install

```
pip install podcgroup
```

For the test suite:

```
pip install "podcgroup[test]"
pytest
```

## Modules

### `podcgroup.pathhandler`

Small readers for cgroup files and helpers for walking a cgroup tree.

- `read_uint64(file_name)`: one unsigned integer from a file.
- `read_kv(file_name)`: `key value` lines; lines whose value is not an
  unsigned integer are skipped.
- `read_line_k_equal_to_v(file_name)`: `key=value` fields summed over all
  lines, skipping device-mapper lines (first field containing `253:`).
- `search_by_container_id(top_folder, container_id)` and
  `search_by_suffix(top_folder, suffix)`: the first path, in lexical walk
  order, whose name contains the id or whose path ends with the suffix;
  `""` when nothing matches.

### `podcgroup.statreader`

- `MemoryStatReader(path)`, `CPUStatReader(path)` and `IOStatReader(path)`
  each have a `read()` method returning the raw values found in one cgroup
  directory. Missing or unreadable files are left out of the result.
  `CPUStatReader` uses `cpu.stat` when it holds `user_usec`, and the
  `cpuacct.*` files otherwise.
- `convert_to_standard(stats)` maps raw values onto standard names:
  `cgroupfs_memory_usage_bytes`, `cgroupfs_kernel_memory_usage_bytes`,
  `cgroupfs_tcp_memory_usage_bytes`, `cgroupfs_cpu_usage_us`,
  `cgroupfs_system_cpu_usage_us`, `cgroupfs_user_cpu_usage_us`,
  `cgroupfs_ioread_bytes` and `cgroupfs_iowrite_bytes`. Nanosecond
  `cpuacct.*` values are converted to microseconds with
  `nano_to_micro_converter`; other values pass through `default_converter`.

### `podcgroup.containers`

- `ContainerResolver(pod_lister, with_cgroup_id=False, cgroup_version=2,
  cgroup_root="/sys/fs/cgroup", proc_path="/proc/{pid}/cgroup")` maps a pid
  (or, with `with_cgroup_id=True`, a cgroup id) to a `ContainerInfo` with
  `container_id`, `container_name`, `pod_name` and `namespace`. Results are
  cached. `container_info(cgroup_id, pid)` refreshes from the pod lister when
  an id is not yet known and falls back to `ContainerInfo.system()` for
  processes outside Kubernetes containers.
- The pod lister is any object with a `list_pods()` method returning pods as
  mappings in the Kubernetes JSON shape:

  ```python
  {
      "metadata": {"name": "web", "namespace": "default"},
      "status": {
          "containerStatuses": [
              {"name": "app", "containerID": "containerd://abc123"}
          ],
          "initContainerStatuses": [],
          "ephemeralContainerStatuses": [],
      },
  }
  ```

- `extract_container_id_from_path(path, cgroup_version)`,
  `parse_container_id_from_pod_status(container_id)`,
  `path_from_pid(search_path, pid)` and `alive_containers(pods)` can be
  used on their own. `ContainerResolver.get_alive_containers()` applies
  `alive_containers` to the current pod list.
- Failed lookups raise `CgroupLookupError`, a `LookupError`.

### `podcgroup.slicehandler`

- `SliceHandler.discover(base_path="/sys/fs/cgroup")` picks CPU, memory and
  IO top paths: the `kubepods.slice` or `system.slice` under `base_path`, or
  under its `cpu`, `memory` and `blkio` directories, or those directories
  themselves.
- `try_init_stat_readers(container_id)` registers readers for a container,
  `stats(container_id)` merges their raw values, `standard_stats` converts
  them, `find_example_container_id()` takes the id from the first `.scope`
  entry under the CPU top path, and `available_metrics()` lists the
  standard names readable for that example container.
- `has_cgroup_export_metric(available_metrics)` tells whether the CPU,
  system CPU, user CPU and memory metrics are all available.

### `podcgroup.iostat`

- `read_io_stat(path)` sums read and write bytes over the disks of an
  `io.stat` file, skipping device-mapper disks (major 253), and returns an
  `IOStat(read_bytes, write_bytes, disks)`.
- `read_all_cgroup_io_stat(cgroup_root)` reads the root `io.stat`.
- `read_cgroup_io_stat(resolver, cgroup_id, pid)` reads the `io.stat` of the
  crio, docker or containerd cgroup a process is in.

## Example

```python
from podcgroup.slicehandler import SliceHandler
from podcgroup.iostat import read_io_stat

handler = SliceHandler.discover("/sys/fs/cgroup")
container_id = handler.find_example_container_id()
handler.try_init_stat_readers(container_id)
print(handler.standard_stats(container_id))

io = read_io_stat("/sys/fs/cgroup/io.stat")
print(io.read_bytes, io.write_bytes, io.disks)
```

## Errors

Missing or unreadable files raise `OSError`; file contents that
`read_uint64` cannot parse raise `ValueError`; failed container lookups
raise `CgroupLookupError`.

## What it does not do

This is a library only. It has no command-line program, serves no metrics
endpoint and stores nothing. It does not talk to the kubelet or the
Kubernetes API: pod lists come from the pod lister you pass in. It does not
measure energy or read hardware counters.