"""Locate the staffdb configuration for a working directory.

Settings live either in a dedicated ``staffdb.toml`` or in the
``[tool.staffdb]`` table of a project's ``pyproject.toml``, so a host
application can keep its store settings next to its packaging metadata.
``STAFFDB_CONFIG`` names a file explicitly and disables the search.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "staffdb.toml"
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TABLE = ("tool", "staffdb")
CONFIG_ENV_VAR = "STAFFDB_CONFIG"


def declares_staffdb_table(pyproject: Path) -> bool:
    """True if *pyproject* has a ``[tool.staffdb]`` table (or a sub-table of it)."""
    for line in pyproject.read_text(encoding="utf-8").splitlines():
        header = line.strip()
        if header.startswith("[tool.staffdb]") or header.startswith("[tool.staffdb."):
            return True
    return False


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file governing *start* (default: cwd), or None.

    In each directory from *start* upwards, ``staffdb.toml`` wins over a
    ``pyproject.toml`` carrying ``[tool.staffdb]``; the nearest directory
    with either one wins overall.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        explicit = Path(env_path)
        return explicit if explicit.is_file() else None

    directory = (start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        dedicated = candidate_dir / CONFIG_FILENAME
        if dedicated.is_file():
            return dedicated
        pyproject = candidate_dir / PYPROJECT_FILENAME
        if pyproject.is_file() and declares_staffdb_table(pyproject):
            return pyproject
    return None
