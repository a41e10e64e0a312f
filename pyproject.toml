[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "microed"
version = "0.1.0"
description = "Settings, colorschemes, runtime files, plugin management and shell helpers for a terminal text editor"
requires-python = ">=3.10"
dependencies = []
keywords = ["editor", "terminal", "colorscheme", "plugins", "settings", "semver"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Editors",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["microed"]

[tool.pytest.ini_options]
addopts = "-ra"
