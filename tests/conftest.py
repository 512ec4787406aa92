"""
Test Configuration
==================

Pytest fixtures shared by the c3d_stream tests.
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from synthetic_c3d import SyntheticC3D, basic_analog, basic_points, standard_parameters


@pytest.fixture
def basic_c3d() -> SyntheticC3D:
    """Intel int16 file: 3 frames, points HEAD/LSHO, analog FZ/EMG with 2 samples per frame."""
    return SyntheticC3D(
        point_words=basic_points(),
        analog_words=basic_analog(),
        parameters=standard_parameters(),
    )


@pytest.fixture
def basic_bytes(basic_c3d: SyntheticC3D) -> bytes:
    return basic_c3d.build()


@pytest.fixture
def basic_stream(basic_bytes: bytes) -> io.BytesIO:
    return io.BytesIO(basic_bytes)


@pytest.fixture
def write_c3d(tmp_path: Path):
    """Write a `SyntheticC3D` (or raw bytes) to a temporary .c3d file and return its path."""

    def _write(spec, name: str = "trial.c3d") -> Path:
        path = tmp_path / name
        path.write_bytes(spec if isinstance(spec, (bytes, bytearray)) else spec.build())
        return path

    return _write
