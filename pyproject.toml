[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "podcgroup"
version = "0.1.0"
description = "Read cgroup statistics and map processes to Kubernetes pod containers"
requires-python = ">=3.10"
dependencies = []
keywords = ["cgroup", "kubernetes", "containers", "monitoring", "linux"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["podcgroup"]

[tool.pytest.ini_options]
addopts = "-ra"
