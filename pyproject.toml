[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "snackstore"
version = "0.1.0"
description = "JSON HTTP API for a snack store: products, sales, loyalty points, redemptions and reports"
requires-python = ">=3.10"
keywords = ["flask", "api", "store", "loyalty", "points", "sqlalchemy", "redis", "rate-limit"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Office/Business :: Financial :: Point-Of-Sale",
]
dependencies = [
    "flask",
    "sqlalchemy",
    "redis",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
snackstore = "snackstore.server:main"

[tool.hatch.build.targets.wheel]
packages = ["snackstore"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
