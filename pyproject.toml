[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "migsim"
version = "0.1.0"
description = "Trace-driven simulator for page migration policies across tiered memory"
requires-python = ">=3.10"
dependencies = []
keywords = ["tiered memory", "page migration", "simulation", "autonuma", "memory trace", "min-cost flow"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
migsim = "migsim.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["migsim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
