"""Decoding of the fourth point word (residual + camera-observation mask).

Layout of the 16-bit word::

    bit 15      sign: set => point invalid (the usual sentinel is -1)
    bits 8..14  camera mask: bit 8+i set => camera i+1 observed the point
    bits 0..7   residual byte, multiplied by |POINT scale|; 0 => not computed
"""

from __future__ import annotations

from typing import FrozenSet, Optional, Tuple

import numpy as np


INVALID_WORD = -1
MAX_CAMERAS = 7


def cameras_from_mask(mask: int) -> FrozenSet[int]:
    """Camera numbers (1-based) whose bit is set in a 7-bit mask."""

    mask = int(mask)
    return frozenset(i + 1 for i in range(MAX_CAMERAS) if mask & (1 << i))


def decode_residual_word(word: int, scale: float) -> Tuple[Optional[float], FrozenSet[int]]:
    """Decode one fourth word into ``(residual, cameras)``.

    An invalid point (negative word, e.g. -1) yields ``(None, frozenset())``.
    """

    word = int(word)
    if word < 0:
        return None, frozenset()
    residual = float(word & 0xFF) * abs(float(scale))
    return residual, cameras_from_mask((word >> 8) & 0x7F)


def decode_residual_words(words: np.ndarray, scale: float) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorised form of `decode_residual_word`.

    Parameters
    ----------
    words:
        Integer words, shape (n_points,).
    scale:
        Point scale factor (its magnitude is used).

    Returns
    -------
    residuals:
        float64 (n_points,), NaN where the point is invalid.
    camera_masks:
        uint8 (n_points,), 0 where the point is invalid.
    """

    w = np.asarray(words, dtype=np.int32)
    valid = w >= 0
    residuals = np.full(w.shape, np.nan, dtype=np.float64)
    residuals[valid] = (w[valid] & 0xFF).astype(np.float64) * abs(float(scale))
    masks = np.zeros(w.shape, dtype=np.uint8)
    masks[valid] = ((w[valid] >> 8) & 0x7F).astype(np.uint8)
    return residuals, masks


def float_words_to_int(values: np.ndarray) -> np.ndarray:
    """Fourth values of float-encoded files carry the same word as a float number."""

    v = np.asarray(values, dtype=np.float64)
    out = np.full(v.shape, INVALID_WORD, dtype=np.int32)
    # Bit 15 set (or any negative value) marks an invalid point.
    ok = np.isfinite(v) & (v > -0.5) & (v < 0x8000 - 0.5)
    out[ok] = np.rint(v[ok]).astype(np.int32)
    return out


__all__ = [
    "INVALID_WORD",
    "MAX_CAMERAS",
    "cameras_from_mask",
    "decode_residual_word",
    "decode_residual_words",
    "float_words_to_int",
]
