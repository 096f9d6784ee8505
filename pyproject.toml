[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "powervs-csi"
version = "0.1.0"
description = "Helpers for a Power Virtual Server block storage CSI driver: command-line options, cloud model, provider-ID metadata, node update reconciliation and Linux multipath device handling"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "csi",
    "kubernetes",
    "block-storage",
    "multipath",
    "device-mapper",
    "powervs",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["powervs_csi"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
