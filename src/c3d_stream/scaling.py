"""Point and analog scaling.

Classic C3D conversion to physical units:

- points (int16 files):  value * |POINT scale|; float files are already physical
- analog:                (raw - ANALOG:OFFSET[i]) * ANALOG:SCALE[i] * ANALOG:GEN_SCALE

Missing dictionary entries fall back to identity scale and zero offset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .io.header import Header
from .io.parameters import ParameterDictionary

logger = logging.getLogger(__name__)


def point_scale(header: Header) -> float:
    """Multiplier applied to x/y/z words."""

    if header.is_float:
        return 1.0
    return abs(float(header.scale_factor))


def residual_scale(header: Header) -> float:
    """Multiplier applied to the residual byte of the fourth point word."""

    return abs(float(header.scale_factor))


@dataclass(frozen=True, eq=False)
class AnalogScaling:
    """Per-channel analog conversion.

    individual:
      True when ANALOG:SCALE provided one factor per channel; False when the
      single ANALOG:GEN_SCALE applies to every channel.
    """

    scale: np.ndarray  # (n_channels,)
    offset: np.ndarray  # (n_channels,)
    individual: bool

    @property
    def channel_count(self) -> int:
        return int(self.scale.shape[0])

    def apply(self, raw: np.ndarray) -> np.ndarray:
        """Scale raw words shaped (n_channels, ...) into physical units."""

        raw = np.asarray(raw, dtype=np.float64)
        if raw.shape[0] != self.channel_count:
            raise ValueError(f"Expected {self.channel_count} analog channels, got shape={raw.shape!r}")
        extra = (1,) * (raw.ndim - 1)
        return (raw - self.offset.reshape((-1,) + extra)) * self.scale.reshape((-1,) + extra)


def _per_channel(values: np.ndarray | None, n: int, fill: float) -> np.ndarray:
    out = np.full(n, fill, dtype=np.float64)
    if values is not None:
        k = min(n, values.size)
        out[:k] = values[:k]
    return out


def analog_scaling(parameters: ParameterDictionary, channel_count: int) -> AnalogScaling:
    """Derive (scale, offset) for each analog channel from the dictionary."""

    n = max(0, int(channel_count))
    scales = parameters.numeric("ANALOG:SCALE")
    offsets = parameters.numeric("ANALOG:OFFSET")
    gen = parameters.numeric("ANALOG:GEN_SCALE")

    gen_scale = float(gen[0]) if gen is not None and gen.size else 1.0
    individual = scales is not None and scales.size >= n and n > 0
    if individual:
        scale = scales[:n] * gen_scale
    else:
        if scales is not None and n > 0:
            logger.debug("ANALOG:SCALE has %d entries for %d channels; using GEN_SCALE only", scales.size, n)
        scale = np.full(n, gen_scale, dtype=np.float64)

    offset = _per_channel(offsets, n, 0.0)

    logger.debug("analog offsets: %s", offset.tolist())
    logger.debug("analog scale factors: %s", scale.tolist())
    logger.debug("analog general scale factor: %s", gen_scale)
    return AnalogScaling(scale=np.asarray(scale, dtype=np.float64), offset=offset, individual=bool(individual))


__all__ = [
    "AnalogScaling",
    "analog_scaling",
    "point_scale",
    "residual_scale",
]
