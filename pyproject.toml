[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sevkit"
version = "6.2.1"
description = "Launch sessions, VM save areas and binary helpers for AMD SEV guests"
requires-python = ">=3.10"
keywords = ["amd", "sev", "attestation", "vmsa", "confidential-computing"]
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
    "Topic :: Security :: Cryptography",
    "Typing :: Typed",
]
dependencies = [
    "cryptography",
    "platformdirs",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sevkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
