[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcplink"
version = "0.1.0"
description = "A Model Context Protocol client with a pluggable transport and a subprocess stdio transport"
requires-python = ">=3.10"
dependencies = []
keywords = ["mcp", "model-context-protocol", "json-rpc", "client", "stdio"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mcplink"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
