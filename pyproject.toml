[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "decimalniner"
version = "0.1.0"
description = "Tracks AI traffic and its flight phases through the X-Plane Web API"
requires-python = ">=3.10"
keywords = ["x-plane", "flight-simulator", "atc", "websocket", "traffic", "dataref"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Simulation",
]
dependencies = [
    "aiohttp>=3.8",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
    "pytest-asyncio>=0.21",
]

[project.scripts]
decimalniner = "decimalniner.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["decimalniner"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
