[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "geras"
version = "0.1.0"
description = "Embedded Metric Format builders, batchers and CloudWatch Logs flushers for Lambda workloads"
requires-python = ">=3.10"
dependencies = []
keywords = ["cloudwatch", "emf", "embedded-metric-format", "lambda", "batching", "cloudtrail", "metrics"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["geras"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
