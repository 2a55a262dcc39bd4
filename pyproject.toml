[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bladeop"
version = "1.6.0"
description = "Chaos experiment operator core: experiment resources, reconciliation, pod mutation and file-system fault injection"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "chaos-engineering",
    "fault-injection",
    "kubernetes",
    "operator",
    "reconciler",
    "admission-webhook",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bladeop"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
