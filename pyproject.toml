[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kiln"
version = "0.4.0"
description = "Manifest model, profile resolution, dependency handling and formatting helpers for SystemVerilog projects."
requires-python = ">=3.11"
dependencies = [
    "tomlkit",
    "semver",
]
keywords = ["systemverilog", "verilog", "hdl", "build", "manifest", "rtl"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
    "Topic :: Scientific/Engineering :: Electronic Design Automation (EDA)",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kiln"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
