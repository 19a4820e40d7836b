[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stackduck"
version = "0.1.0"
description = "A persistent job queue kept in SQLite, with Redis and in-memory queueing."
requires-python = ">=3.10"
keywords = ["job queue", "task queue", "redis", "sqlite", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "aiosqlite>=0.19",
    "redis>=5.0",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
stackduck = "stackduck.app:main"

[tool.hatch.build.targets.wheel]
packages = ["stackduck"]

[tool.pytest.ini_options]
addopts = "-ra"
