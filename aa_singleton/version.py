"""
Version of the aa-singleton package.

Installed metadata wins; a source checkout falls back to the version in its
``pyproject.toml``.
"""
import importlib.metadata
import pathlib

import tomli

DISTRIBUTION = "aa-singleton"
FALLBACK_VERSION = "0.3.0"
PYPROJECT = pathlib.Path(__file__).parent.parent / "pyproject.toml"


def source_tree_version(pyproject: pathlib.Path = PYPROJECT) -> str:
    """``project.version`` from ``pyproject``, or ``FALLBACK_VERSION`` if it can't be read."""
    try:
        with pyproject.open("rb") as f:
            return tomli.load(f)["project"]["version"]
    except (FileNotFoundError, KeyError, tomli.TOMLDecodeError):
        return FALLBACK_VERSION


def get_version() -> str:
    try:
        return importlib.metadata.version(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return source_tree_version()


__version__ = get_version()
