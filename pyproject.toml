[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bplus"
version = "0.1.0"
description = "Code generation for the B+ language: turns a B+ syntax tree into LLVM IR text and drives clang to compile, link and run it"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "llvm", "ir", "codegen", "b-plus"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bplus"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
