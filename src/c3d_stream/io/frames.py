from __future__ import annotations

import enum
import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Dict, FrozenSet, List, Optional, Sequence

import numpy as np

from ..config import ReaderConfig
from ..errors import TruncatedStream, UnderlyingIoFailure
from ..residuals import cameras_from_mask, decode_residual_words, float_words_to_int
from ..scaling import AnalogScaling, analog_scaling, point_scale, residual_scale
from .header import BLOCK_SIZE, Header
from .parameters import ParameterDictionary
from .processor import ProcessorFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PointSample:
    x: float
    y: float
    z: float
    residual: Optional[float]  # None => point invalid / not tracked
    cameras: FrozenSet[int]  # 1-based camera numbers


@dataclass(frozen=True, eq=False)
class AnalogSample:
    label: str
    values: np.ndarray  # (samples_per_frame,)


@dataclass(frozen=True, eq=False)
class Frame:
    """One decoded frame of point (and optional analog) data."""

    index: int
    points: np.ndarray  # (n_points, 3) float64, physical units
    residuals: np.ndarray  # (n_points,) float64, NaN => invalid
    camera_masks: np.ndarray  # (n_points,) uint8, bit i => camera i+1
    analog: Optional[np.ndarray] = None  # (n_channels, samples_per_frame) float64

    @property
    def valid(self) -> np.ndarray:
        return np.isfinite(self.residuals)

    def point_samples(self) -> List[PointSample]:
        out = []
        for (x, y, z), res, mask in zip(self.points, self.residuals, self.camera_masks):
            ok = bool(np.isfinite(res))
            out.append(
                PointSample(
                    x=float(x),
                    y=float(y),
                    z=float(z),
                    residual=float(res) if ok else None,
                    cameras=cameras_from_mask(int(mask)) if ok else frozenset(),
                )
            )
        return out

    def analog_samples(self, labels: Optional[Sequence[str]] = None) -> List[AnalogSample]:
        """Per-channel analog values; channels without a label are named ``CH<n>``."""

        if self.analog is None:
            return []
        labels = list(labels or [])
        out = []
        for i, values in enumerate(self.analog):
            label = labels[i] if i < len(labels) and labels[i] else f"CH{i + 1}"
            out.append(AnalogSample(label=label, values=values))
        return out

    def analog_by_label(self, labels: Optional[Sequence[str]] = None) -> Dict[str, np.ndarray]:
        return {s.label: s.values for s in self.analog_samples(labels)}


class IteratorState(enum.Enum):
    POSITIONED = "positioned"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


def _analog_unsigned(parameters: ParameterDictionary, config: ReaderConfig) -> bool:
    if config.analog_format is not None:
        return config.analog_format == "UNSIGNED"
    param = parameters.get("ANALOG:FORMAT")
    if param is None or param.is_numeric:
        return False
    return param.string_value.upper() == "UNSIGNED"


class FrameIterator:
    """Pull-based reader over the C3D data section.

    Each ``next()`` reads exactly one frame. Iteration ends (EXHAUSTED) after
    the header's last frame or when the source ends on a frame boundary.
    A frame cut short raises `TruncatedStream` once and leaves the iterator
    FAILED; terminal iterators only raise ``StopIteration``.
    """

    def __init__(
        self,
        source: BinaryIO,
        header: Header,
        parameters: ParameterDictionary,
        processor: ProcessorFormat,
        config: Optional[ReaderConfig] = None,
    ):
        self._source = source
        self._header = header
        self._parameters = parameters
        self._processor = processor
        self._config = config or ReaderConfig()

        self._n_points = header.point_count
        self._n_channels = header.analog_channel_count
        self._n_sub = header.analog_per_frame
        self._word = header.word_size
        self._point_bytes = 4 * self._n_points * self._word
        self._analog_bytes = self._n_channels * self._n_sub * self._word

        self._point_scale = point_scale(header)
        self._residual_scale = residual_scale(header)
        self._analog_unsigned = _analog_unsigned(parameters, self._config) and not header.is_float
        self._analog_scaling: Optional[AnalogScaling] = (
            analog_scaling(parameters, self._n_channels) if self._n_channels > 0 else None
        )

        used = parameters.get("ANALOG:USED")
        if used is not None and used.is_numeric and used.values.size and used.int_value != self._n_channels:
            logger.warning(
                "ANALOG:USED=%d disagrees with header channel count %d; using the header",
                used.int_value,
                self._n_channels,
            )

        self._next_index = header.first_frame
        self._frames_read = 0
        self._state = IteratorState.POSITIONED
        self._seek(header.data_offset)

    # -- state -----------------------------------------------------------

    @property
    def state(self) -> IteratorState:
        return self._state

    @property
    def frames_read(self) -> int:
        return self._frames_read

    @property
    def next_index(self) -> int:
        return self._next_index

    @property
    def frame_bytes(self) -> int:
        return self._point_bytes + self._analog_bytes

    # -- io --------------------------------------------------------------

    def _fail(self, exc: Exception) -> None:
        self._state = IteratorState.FAILED
        raise exc

    def _seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        try:
            return self._source.seek(offset, whence)
        except OSError as exc:
            self._state = IteratorState.FAILED
            raise UnderlyingIoFailure(f"seek to {offset} failed: {exc}") from exc

    def _read(self, n: int) -> bytes:
        chunks = []
        remaining = n
        try:
            while remaining > 0:
                chunk = self._source.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
        except OSError as exc:
            self._state = IteratorState.FAILED
            raise UnderlyingIoFailure(f"read of {n} bytes failed: {exc}") from exc
        return b"".join(chunks)

    def _check_trailing(self) -> None:
        pos = self._seek(0, io.SEEK_CUR)
        end = self._seek(0, io.SEEK_END)
        self._seek(pos)
        if end - pos >= BLOCK_SIZE:
            logger.warning("%d bytes remain after the last declared frame %d", end - pos, self._header.last_frame)

    # -- decoding --------------------------------------------------------

    def _decode_points(self, raw: bytes):
        proc = self._processor
        if self._header.is_float:
            words = proc.float32_array(raw).reshape(self._n_points, 4)
            xyz = words[:, :3].astype(np.float64)
            fourth = float_words_to_int(words[:, 3])
        else:
            words = proc.int16_array(raw).reshape(self._n_points, 4)
            xyz = words[:, :3].astype(np.float64) * self._point_scale
            fourth = words[:, 3]
        residuals, masks = decode_residual_words(fourth, self._residual_scale)
        return xyz, residuals, masks

    def _decode_analog(self, raw: bytes) -> np.ndarray:
        proc = self._processor
        if self._header.is_float:
            values = proc.float32_array(raw)
        elif self._analog_unsigned:
            values = proc.uint16_array(raw)
        else:
            values = proc.int16_array(raw)
        # File order is sub-frame major: [s0c0, s0c1, ..., s1c0, ...]
        per_channel = values.reshape(self._n_sub, self._n_channels).T
        return self._analog_scaling.apply(per_channel)

    # -- iterator protocol -----------------------------------------------

    def __iter__(self) -> "FrameIterator":
        return self

    def __next__(self) -> Frame:
        if self._state is not IteratorState.POSITIONED:
            raise StopIteration

        if self._next_index > self._header.last_frame:
            if self._config.check_trailing_data:
                self._check_trailing()
            self._state = IteratorState.EXHAUSTED
            raise StopIteration

        want = self.frame_bytes
        raw = self._read(want)
        if want > 0 and not raw:
            self._state = IteratorState.EXHAUSTED
            logger.warning(
                "stream ended after %d of %d declared frames",
                self._frames_read,
                self._header.frame_count,
            )
            raise StopIteration
        if len(raw) < want:
            self._fail(
                TruncatedStream(
                    f"frame {self._next_index}: got {len(raw)} of {want} bytes "
                    f"(after {self._frames_read} complete frames)"
                )
            )

        xyz, residuals, masks = self._decode_points(raw[: self._point_bytes])
        analog = self._decode_analog(raw[self._point_bytes :]) if self._n_channels > 0 else None

        frame = Frame(index=self._next_index, points=xyz, residuals=residuals, camera_masks=masks, analog=analog)
        self._next_index += 1
        self._frames_read += 1
        return frame


__all__ = [
    "AnalogSample",
    "Frame",
    "FrameIterator",
    "IteratorState",
    "PointSample",
]
