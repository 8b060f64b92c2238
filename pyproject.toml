[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rpcplugins"
version = "0.1.0"
description = "Server plugins and helpers for RPC servers: aliases, IP access lists, rate limiting, metrics, service registries, buffer pools, compression and request contexts."
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = [
    "rpc",
    "plugins",
    "rate-limiting",
    "token-bucket",
    "service-registry",
    "metrics",
    "gzip",
]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["rpcplugins"]

[tool.pytest.ini_options]
addopts = "-ra"
