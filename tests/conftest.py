# tests/conftest.py
"""
Pytest configuration and shared fixtures for the bucketferry tests.

The in-memory fakes used by the unit tests live in `fakes.py`; the
Docker-backed fixtures for the end-to-end tests live in `e2e/conftest.py`.
"""

from pathlib import Path
from typing import Callable, Dict

import pytest


@pytest.fixture(scope="function")
def local_tree() -> Callable[[Path, Dict[str, bytes]], Path]:
    """
    Provide a factory that writes a directory tree of files.

    Returns:
        A factory accepting a base path and a mapping of relative paths to
        contents, returning the base path.
    """

    def _creator(base_path: Path, files: Dict[str, bytes]) -> Path:
        base_path.mkdir(parents=True, exist_ok=True)
        for relative_path, data in files.items():
            p: Path = base_path / relative_path
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(data)
        return base_path

    return _creator
