[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "notifier"
version = "0.1.0"
description = "Durable outbound HTTP notification service with SQLite queueing, retries and exponential backoff"
requires-python = ">=3.10"
keywords = ["webhook", "notification", "retry", "backoff", "http", "queue", "sqlite", "flask"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "flask",
    "werkzeug",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
notifier = "notifier.server:main"

[tool.hatch.build.targets.wheel]
packages = ["notifier"]

[tool.pytest.ini_options]
addopts = "-ra"
