"""
Single source of the package version.

Hatch reads ``__version__`` from this file at build time
(``[tool.hatch.version]`` in pyproject.toml).
"""

__version__ = "0.1.0"
