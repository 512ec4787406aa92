from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pandas as pd
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def c3d_export(monkeypatch):
    monkeypatch.syspath_prepend(str(REPO_ROOT / "scripts"))
    return importlib.import_module("c3d_export")


def _run(module, monkeypatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["c3d_export.py", "--config", str(REPO_ROOT / "config.yaml"), *argv])
    module.main()


@pytest.mark.parametrize("backend", ["polars", "pandas"])
def test_exports_points_and_analog_csv(c3d_export, monkeypatch, capsys, tmp_path, write_c3d, basic_c3d, backend):
    path = write_c3d(basic_c3d)
    out_dir = tmp_path / "out"

    _run(c3d_export, monkeypatch, str(path), "--out_dir", str(out_dir), "--backend", backend)

    points = pd.read_csv(out_dir / "trial_points.csv", encoding="utf-8-sig")
    analog = pd.read_csv(out_dir / "trial_analog.csv", encoding="utf-8-sig")
    assert list(points.columns) == ["frame", "label", "x", "y", "z", "residual", "camera_mask"]
    assert len(points) == 6
    assert list(analog.columns) == ["frame", "subsample", "FZ", "EMG"]
    assert len(analog) == 6
    out = capsys.readouterr().out
    assert out.count("[OK] Saved:") == 2
    assert "Processed files: 1" in out


def test_directory_mode_averages_and_skips_bad_files(c3d_export, monkeypatch, capsys, tmp_path, write_c3d, basic_c3d):
    write_c3d(basic_c3d, name="good.c3d")
    write_c3d(b"\x00" * 600, name="bad.c3d")
    out_dir = tmp_path / "out"

    _run(c3d_export, monkeypatch, "--c3d_dir", str(tmp_path), "--out_dir", str(out_dir), "--analog_average")

    analog = pd.read_csv(out_dir / "good_analog.csv", encoding="utf-8-sig")
    assert list(analog.columns) == ["frame", "FZ", "EMG"]
    assert len(analog) == 3
    out = capsys.readouterr().out
    assert "[SKIP]" in out and "bad.c3d" in out
    assert "Processed files: 1" in out
    assert "Skipped files: 1" in out


def test_summary_prints_labels(c3d_export, monkeypatch, capsys, write_c3d, basic_c3d):
    path = write_c3d(basic_c3d)
    _run(c3d_export, monkeypatch, str(path), "--summary")

    out = capsys.readouterr().out
    assert "point labels: HEAD, LSHO" in out
    assert "analog labels: FZ, EMG" in out
    assert "frames: 1..3" in out


def test_no_inputs_exits(c3d_export, monkeypatch):
    with pytest.raises(SystemExit):
        _run(c3d_export, monkeypatch)
