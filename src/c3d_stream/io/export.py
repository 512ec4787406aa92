"""Whole-file readers and table exports built on the streaming reader.

These materialize every frame in memory; use `C3DAdapter.reader()` directly
for large files.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
import pandas as pd
import polars as pl

from ..adapter import C3DAdapter
from ..config import ReaderConfig


BACKENDS = ("pandas", "polars")


@dataclass(frozen=True, eq=False)
class C3DPoints:
    """Marker trajectories of a whole file."""

    labels: List[str]  # labels with any "Subject:" prefix removed
    labels_raw: List[str]  # labels as stored in POINT:LABELS
    points: np.ndarray  # (n_frames, n_points, 3) float64, POINT:UNITS
    residuals: np.ndarray  # (n_frames, n_points) float64, NaN => invalid
    camera_masks: np.ndarray  # (n_frames, n_points) uint8
    units: str
    rate_hz: float
    first_frame: int
    last_frame: int

    @property
    def n_frames(self) -> int:
        return int(self.points.shape[0])


@dataclass(frozen=True, eq=False)
class C3DAnalog:
    """Analog channels of a whole file.

    Notes
    -----
    - Analog channels are often sampled faster than points. With
      ``average=True`` the sub-samples of each point frame are averaged and
      `values` has one row per point frame.
    - Otherwise `values` has one row per analog sample.
    """

    labels: List[str]
    rate_hz: float
    samples_per_frame: int
    averaged: bool
    first_frame: int
    values: np.ndarray  # (n_rows, n_channels)


def _strip_subject(label: str) -> str:
    return label.rsplit(":", 1)[-1].strip()


def _point_labels(adapter: C3DAdapter) -> List[str]:
    n = adapter.header.point_count
    labels = list(adapter.point_labels() or [])[:n]
    labels += [f"P{i + 1}" for i in range(len(labels), n)]
    return labels


def _analog_labels(adapter: C3DAdapter) -> List[str]:
    n = adapter.header.analog_channel_count
    labels = list(adapter.analog_labels() or [])[:n]
    labels += [f"CH{i + 1}" for i in range(len(labels), n)]
    return labels


def read_c3d_points(path: str | Path, config: Optional[ReaderConfig] = None) -> C3DPoints:
    """Read every frame's marker trajectories from a C3D file."""

    with C3DAdapter.open(path, config) as adapter:
        header = adapter.header
        labels_raw = _point_labels(adapter)
        units_param = adapter.get("POINT:UNITS")
        units = units_param.string_value if units_param is not None and not units_param.is_numeric else ""

        xyz, res, cams = [], [], []
        for frame in adapter.reader():
            xyz.append(frame.points)
            res.append(frame.residuals)
            cams.append(frame.camera_masks)

    n_points = header.point_count
    return C3DPoints(
        labels=[_strip_subject(lab) for lab in labels_raw],
        labels_raw=labels_raw,
        points=np.stack(xyz) if xyz else np.empty((0, n_points, 3), dtype=np.float64),
        residuals=np.stack(res) if res else np.empty((0, n_points), dtype=np.float64),
        camera_masks=np.stack(cams) if cams else np.empty((0, n_points), dtype=np.uint8),
        units=units,
        rate_hz=float(header.frame_rate),
        first_frame=int(header.first_frame),
        last_frame=int(header.last_frame),
    )


def read_c3d_analog(
    path: str | Path,
    *,
    average: bool = False,
    config: Optional[ReaderConfig] = None,
) -> C3DAnalog:
    """Read scaled analog channels from a C3D file."""

    with C3DAdapter.open(path, config) as adapter:
        header = adapter.header
        labels = _analog_labels(adapter)
        rows = []
        for frame in adapter.reader():
            if frame.analog is None:
                break
            if average:
                rows.append(frame.analog.mean(axis=1)[None, :])
            else:
                rows.append(frame.analog.T)

    n_channels = len(labels)
    values = np.vstack(rows) if rows else np.empty((0, n_channels), dtype=np.float64)
    return C3DAnalog(
        labels=labels,
        rate_hz=float(header.frame_rate) if average else header.analog_rate,
        samples_per_frame=int(header.analog_per_frame),
        averaged=bool(average),
        first_frame=int(header.first_frame),
        values=values,
    )


def _to_backend(columns: dict, backend: str) -> Any:
    if backend == "pandas":
        return pd.DataFrame(columns)
    if backend == "polars":
        return pl.DataFrame(columns)
    raise ValueError(f"Unsupported backend {backend!r}; expected one of {BACKENDS}")


def points_to_dataframe(points: C3DPoints, *, backend: str = "pandas") -> Any:
    """Long-format table: one row per (frame, marker)."""

    n_frames, n_points = points.points.shape[:2]
    frames = np.repeat(np.arange(n_frames) + points.first_frame, n_points)
    columns = {
        "frame": frames.astype(np.int64),
        "label": np.tile(np.asarray(points.labels, dtype=object), n_frames).tolist(),
        "x": points.points[:, :, 0].reshape(-1),
        "y": points.points[:, :, 1].reshape(-1),
        "z": points.points[:, :, 2].reshape(-1),
        "residual": points.residuals.reshape(-1),
        "camera_mask": points.camera_masks.reshape(-1).astype(np.int64),
    }
    return _to_backend(columns, backend)


def analog_to_dataframe(analog: C3DAnalog, *, backend: str = "pandas") -> Any:
    """Wide table: one column per channel, plus frame (and sub-sample) indices."""

    n_rows = analog.values.shape[0]
    if analog.averaged or analog.samples_per_frame <= 0:
        frame = np.arange(n_rows) + analog.first_frame
        columns = {"frame": frame.astype(np.int64)}
    else:
        idx = np.arange(n_rows)
        columns = {
            "frame": (idx // analog.samples_per_frame + analog.first_frame).astype(np.int64),
            "subsample": (idx % analog.samples_per_frame).astype(np.int64),
        }
    for i, label in enumerate(analog.labels):
        name = label
        k = 2
        while name in columns:
            name = f"{label}_{k}"
            k += 1
        columns[name] = analog.values[:, i]
    return _to_backend(columns, backend)


__all__ = [
    "BACKENDS",
    "C3DAnalog",
    "C3DPoints",
    "analog_to_dataframe",
    "points_to_dataframe",
    "read_c3d_analog",
    "read_c3d_points",
]
