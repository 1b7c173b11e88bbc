[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scorecard"
version = "0.1.0"
description = "Repository URL handling, check results, batch sharding, cached and rate-limited HTTP transports, and a git cache service for scoring open source repositories."
requires-python = ">=3.10"
keywords = ["security", "scorecard", "github", "supply-chain", "open-source"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: Software Development :: Quality Assurance",
]
dependencies = [
    "pyyaml",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
scorecard-validate = "scorecard.validate:main"
scorecard-gitcache = "scorecard.server:main"
scorecard-update = "scorecard.update:main"

[tool.hatch.build.targets.wheel]
packages = ["scorecard"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
