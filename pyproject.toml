[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mfaguard"
version = "0.1.0"
description = "Redis-backed rate limiting for one-time-password checks and a sharded MongoDB key-value store for multi-factor authentication services"
requires-python = ">=3.10"
dependencies = [
    "redis",
    "pymongo",
]
keywords = ["mfa", "2fa", "otp", "rate-limiting", "redis", "mongodb"]
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
    "Topic :: Security",
    "Topic :: Database :: Front-Ends",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["mfaguard"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
