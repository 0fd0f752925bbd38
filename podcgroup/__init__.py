"""Cgroup statistics readers and pid/cgroup-to-container resolution for Kubernetes nodes."""

__version__ = "0.1.0"

__all__ = ["pathhandler", "statreader", "containers", "slicehandler", "iostat"]