from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from ..errors import BadFormatMarker, TruncatedStream
from .processor import ProcessorFormat

logger = logging.getLogger(__name__)


BLOCK_SIZE = 512
HEADER_KEY = 0x50
LONG_EVENT_LABELS_KEY = 0x3039
MAX_HEADER_EVENTS = 18


@dataclass(frozen=True)
class HeaderEvent:
    """One entry of the header event table (label is at most 4 characters)."""

    label: str
    time: float  # seconds
    displayed: bool


@dataclass(frozen=True)
class Header:
    """Decoded 512-byte C3D header block.

    Notes
    -----
    - `analog_count` is the total number of analog words per point frame
      (channels x `analog_per_frame`), as stored in the file.
    - `scale_factor` < 0 means points (and analog) are stored as float32 and
      are already in physical units.
    """

    parameter_block: int  # 1-based 512-byte block index
    point_count: int
    analog_count: int
    first_frame: int
    last_frame: int
    max_gap: int
    scale_factor: float
    data_block: int  # 1-based 512-byte block index
    analog_per_frame: int
    frame_rate: float
    long_event_labels: bool = False
    events: Tuple[HeaderEvent, ...] = ()

    @property
    def is_float(self) -> bool:
        return self.scale_factor <= 0.0

    @property
    def word_size(self) -> int:
        return 4 if self.is_float else 2

    @property
    def frame_count(self) -> int:
        return max(0, self.last_frame - self.first_frame + 1)

    @property
    def analog_channel_count(self) -> int:
        if self.analog_per_frame <= 0:
            return 0
        return self.analog_count // self.analog_per_frame

    @property
    def analog_rate(self) -> float:
        return float(self.frame_rate) * float(self.analog_per_frame)

    @property
    def parameter_offset(self) -> int:
        return (self.parameter_block - 1) * BLOCK_SIZE

    @property
    def data_offset(self) -> int:
        return (self.data_block - 1) * BLOCK_SIZE

    @property
    def frame_bytes(self) -> int:
        """Bytes occupied by one frame of point + analog words."""
        n_words = 4 * self.point_count + self.analog_channel_count * self.analog_per_frame
        return n_words * self.word_size


def check_key(block: bytes) -> int:
    """Validate the header key byte and return the parameter-block pointer."""

    if len(block) < 2:
        raise TruncatedStream(f"Header needs at least 2 bytes, got {len(block)}.")
    key = block[1]
    if key != HEADER_KEY:
        raise BadFormatMarker(key)
    return int(block[0])


def _decode_events(block: bytes, processor: ProcessorFormat) -> Tuple[bool, Tuple[HeaderEvent, ...]]:
    long_labels = processor.uint16(block, 298) == LONG_EVENT_LABELS_KEY
    n_events = min(processor.uint16(block, 300), MAX_HEADER_EVENTS)
    if n_events == 0:
        return long_labels, ()

    times = processor.float32_array(block[304 : 304 + 4 * MAX_HEADER_EVENTS])
    flags = block[376 : 376 + MAX_HEADER_EVENTS]
    events = []
    for i in range(n_events):
        raw_label = block[396 + 4 * i : 400 + 4 * i]
        events.append(
            HeaderEvent(
                label=raw_label.decode("latin-1").strip(" \x00"),
                time=float(times[i]),
                displayed=flags[i] > 0,
            )
        )
    return long_labels, tuple(events)


def decode_header(block: bytes, processor: ProcessorFormat) -> Header:
    """Decode the fixed header block with the resolved processor strategy."""

    if len(block) < BLOCK_SIZE:
        raise TruncatedStream(f"Header block is {len(block)} bytes, expected {BLOCK_SIZE}.")
    parameter_block = check_key(block)

    long_labels, events = _decode_events(block, processor)
    header = Header(
        parameter_block=parameter_block,
        point_count=processor.uint16(block, 2),
        analog_count=processor.uint16(block, 4),
        first_frame=processor.uint16(block, 6),
        last_frame=processor.uint16(block, 8),
        max_gap=processor.uint16(block, 10),
        scale_factor=processor.float32(block, 12),
        data_block=processor.uint16(block, 16),
        analog_per_frame=processor.uint16(block, 18),
        frame_rate=processor.float32(block, 20),
        long_event_labels=long_labels,
        events=events,
    )
    logger.info(
        "C3D header: points=%d analog_channels=%d frames=%d..%d rate=%.6g Hz scale=%.6g (%s) data_block=%d",
        header.point_count,
        header.analog_channel_count,
        header.first_frame,
        header.last_frame,
        header.frame_rate,
        header.scale_factor,
        "float" if header.is_float else "int16",
        header.data_block,
    )
    return header


__all__ = [
    "BLOCK_SIZE",
    "HEADER_KEY",
    "Header",
    "HeaderEvent",
    "check_key",
    "decode_header",
]
