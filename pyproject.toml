[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "evabci"
version = "0.1.0"
description = "In-memory attester network, chain migration manager and pseudo-staking state machines for sequencer-driven chains"
requires-python = ">=3.10"
dependencies = []
keywords = ["blockchain", "attestation", "sequencer", "migration", "staking", "consensus"]
classifiers = [
    "Development Status :: 3 - Alpha",
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

[tool.hatch.build.targets.wheel]
packages = ["evabci"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
