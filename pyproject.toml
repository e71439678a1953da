[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bccx86"
version = "0.1.0"
description = "x86 and x86-64 NASM back end for a small C compiler: IR, register selection, builtins and assembly generation"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "compiler",
    "x86",
    "x86-64",
    "nasm",
    "assembly",
    "code generation",
    "intermediate representation",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
    "Topic :: Software Development :: Code Generators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bccx86"]

[tool.hatch.build.targets.sdist]
include = ["bccx86", "tests", "pyproject.toml"]

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
