[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emitterd"
version = "0.1.0"
description = "Replicated last-write-wins state, cluster events and configuration for a publish/subscribe broker"
requires-python = ">=3.10"
dependencies = []
keywords = ["crdt", "lww", "pubsub", "cluster", "replication", "configuration"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
emitterd-version = "emitterd.version:main"

[tool.hatch.build.targets.wheel]
packages = ["emitterd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
