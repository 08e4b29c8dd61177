[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "iccert"
version = "0.1.0"
description = "Hash trees, certificates, delegation chains and HTTP response certification for Internet Computer canisters"
requires-python = ">=3.10"
dependencies = [
    "cbor2",
]
keywords = [
    "internet-computer",
    "hash-tree",
    "certificate",
    "certification",
    "cbor",
    "delegation",
]
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
    "Topic :: Security :: Cryptography",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["iccert"]

[tool.hatch.build.targets.sdist]
include = [
    "iccert",
    "tests",
]

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
