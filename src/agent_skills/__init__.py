"""agent-skills: vendor API skills for coding agents."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agent-skills")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
