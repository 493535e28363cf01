"""Pytest configuration and fixtures."""

import io
import sys
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parent.parent / "python" / "uniq.py"


@pytest.fixture
def script_path() -> Path:
    """Path of the runnable uniq script."""
    return SCRIPT


@pytest.fixture
def feed_stdin(monkeypatch):
    """Replace standard input with the given bytes."""

    def _feed(data: bytes) -> None:
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(data)))

    return _feed


@pytest.fixture
def write_input(tmp_path: Path):
    """Create an input file holding the given bytes."""

    def _write(data: bytes, name: str = "input.txt") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write
