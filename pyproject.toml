[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcrelay"
version = "0.1.0"
description = "Building blocks for relaying memcached binary-protocol requests over asyncio"
requires-python = ">=3.10"
dependencies = []
keywords = ["memcached", "memcache", "proxy", "binary-protocol", "asyncio", "sharding"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Framework :: AsyncIO",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["mcrelay"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
