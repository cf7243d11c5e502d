[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scutil"
version = "2.0.0"
description = "Small systems utilities: clocks, string buffers, worker threads, sockets, pipes and an event poller"
requires-python = ">=3.10"
dependencies = []
keywords = ["socket", "poll", "epoll", "kqueue", "pipe", "thread", "clock", "string"]
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
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["scutil"]

[tool.pytest.ini_options]
addopts = "-ra"
