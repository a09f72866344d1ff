[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "duffle"
version = "0.1.0"
description = "Local workspace, credential-set management and command drivers for Cloud Native Application Bundles"
requires-python = ">=3.10"
keywords = ["cnab", "bundle", "credentials", "installer", "cli"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
duffle = "duffle.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["duffle"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
