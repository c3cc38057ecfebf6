[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cokit"
version = "0.1.0"
description = "Coroutine primitives: tasks, events, mutexes, semaphores, thread pools and an I/O scheduler."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "coroutine",
    "async",
    "scheduler",
    "thread-pool",
    "mutex",
    "semaphore",
    "event-loop",
    "udp",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cokit"]

[tool.pytest.ini_options]
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
