"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``aniki``
# sits at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def make_title(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper creating ``<root>/<folder>/<files>`` video trees."""

    def _make(folder: str, *files: str, root: Path | None = None) -> Path:
        base = root if root is not None else tmp_path / "library"
        directory = base / folder
        directory.mkdir(parents=True, exist_ok=True)
        for name in files:
            path = directory / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"")
        return directory

    return _make
