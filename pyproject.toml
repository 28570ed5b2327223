[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tnet"
version = "0.1.0"
description = "Linked byte buffers, a timing wheel, write-postponing heuristics and WebSocket framing for event-driven networking."
requires-python = ">=3.10"
dependencies = []
keywords = ["networking", "buffer", "websocket", "timer", "time-wheel"]
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
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tnet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
