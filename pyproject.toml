[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "etcdop"
version = "0.1.0"
description = "Membership, health, quorum, endpoint discovery, static pod environment and status condition logic for operating etcd clusters"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["etcd", "operator", "cluster", "quorum", "health", "membership"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["etcdop"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
