"""Processor (byte-order / float-encoding) strategies.

The fourth byte of the first parameter block selects how every multi-byte
value in the file is stored:

- 84 (Intel): little-endian integers, IEEE floats
- 85 (DEC):   little-endian integers, VAX F-floats (word-swapped, exponent biased by 2)
- 86 (MIPS):  big-endian integers, IEEE floats

The strategy is resolved once per file and then passed to every decoder.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Dict

import numpy as np

from ..errors import TruncatedStream, UnsupportedProcessorType

logger = logging.getLogger(__name__)


PROCESSOR_INTEL = 84
PROCESSOR_DEC = 85
PROCESSOR_MIPS = 86


@dataclass(frozen=True)
class ProcessorFormat:
    """Byte-order strategy for one C3D file.

    Notes
    -----
    DEC files share the Intel integer layout; only float decoding differs.
    """

    code: int
    name: str
    byteorder: str  # struct/numpy prefix: "<" or ">"

    @property
    def is_dec(self) -> bool:
        return self.code == PROCESSOR_DEC

    def dtype(self, kind: str) -> np.dtype:
        """numpy dtype in this byte order, e.g. ``dtype("i2")``."""
        return np.dtype(self.byteorder + kind)

    # -- scalars ---------------------------------------------------------

    def _unpack(self, fmt: str, data: bytes, offset: int):
        size = struct.calcsize(fmt)
        if offset < 0 or offset + size > len(data):
            raise TruncatedStream(f"Need {size} bytes at offset {offset}, buffer has {len(data)}.")
        return struct.unpack_from(self.byteorder + fmt, data, offset)[0]

    def uint8(self, data: bytes, offset: int) -> int:
        return int(self._unpack("B", data, offset))

    def int8(self, data: bytes, offset: int) -> int:
        return int(self._unpack("b", data, offset))

    def uint16(self, data: bytes, offset: int) -> int:
        return int(self._unpack("H", data, offset))

    def int16(self, data: bytes, offset: int) -> int:
        return int(self._unpack("h", data, offset))

    def float32(self, data: bytes, offset: int) -> float:
        if offset < 0 or offset + 4 > len(data):
            raise TruncatedStream(f"Need 4 bytes at offset {offset}, buffer has {len(data)}.")
        return float(self.float32_array(data[offset : offset + 4])[0])

    # -- arrays ----------------------------------------------------------

    def int8_array(self, data: bytes) -> np.ndarray:
        return np.frombuffer(data, dtype=np.int8)

    def int16_array(self, data: bytes) -> np.ndarray:
        return np.frombuffer(data, dtype=self.dtype("i2"))

    def uint16_array(self, data: bytes) -> np.ndarray:
        return np.frombuffer(data, dtype=self.dtype("u2"))

    def float32_array(self, data: bytes) -> np.ndarray:
        """Decode packed 32-bit floats (IEEE or DEC) into a native float32 array."""
        if not self.is_dec:
            return np.frombuffer(data, dtype=self.dtype("f4")).astype(np.float32)
        return dec_to_ieee(data)


def dec_to_ieee(data: bytes) -> np.ndarray:
    """Convert DEC (VAX F) 32-bit floats to IEEE float32.

    A DEC float stores the high 16-bit word first. After swapping the words the
    bits read as sign, 8-bit exponent e and 23-bit fraction f, with value
    ``0.1f * 2**(e - 128)``, i.e. ``1.f * 2**(e - 129)``.

    Notes
    -----
    - e == 255 is an ordinary DEC value (up to ~1.7e38), not inf/NaN.
    - e == 0 is zero for any fraction; with the sign bit set it is a reserved
      operand and decodes to NaN.
    """

    raw = np.frombuffer(data, dtype=np.uint8)
    if raw.size % 4:
        raise TruncatedStream(f"DEC float buffer length {raw.size} is not a multiple of 4.")
    bits = raw.reshape(-1, 4)[:, [2, 3, 0, 1]].copy().view("<u4").reshape(-1)

    negative = (bits >> 31).astype(bool)
    exponent = ((bits >> 23) & 0xFF).astype(np.int32)
    mantissa = 1.0 + (bits & 0x7FFFFF).astype(np.float64) / float(1 << 23)
    values = np.ldexp(mantissa, exponent - 129)
    values[negative] *= -1.0
    values[exponent == 0] = 0.0
    values[(exponent == 0) & negative] = np.nan
    return values.astype(np.float32)


_FORMATS: Dict[int, ProcessorFormat] = {
    PROCESSOR_INTEL: ProcessorFormat(PROCESSOR_INTEL, "INTEL", "<"),
    PROCESSOR_DEC: ProcessorFormat(PROCESSOR_DEC, "DEC", "<"),
    PROCESSOR_MIPS: ProcessorFormat(PROCESSOR_MIPS, "MIPS", ">"),
}


def resolve_processor(code: int) -> ProcessorFormat:
    """Map the parameter-block processor byte to a `ProcessorFormat`."""

    try:
        fmt = _FORMATS[int(code)]
    except KeyError:
        raise UnsupportedProcessorType(code) from None
    logger.debug("resolved processor type %d (%s)", fmt.code, fmt.name)
    return fmt


__all__ = [
    "PROCESSOR_INTEL",
    "PROCESSOR_DEC",
    "PROCESSOR_MIPS",
    "ProcessorFormat",
    "dec_to_ieee",
    "resolve_processor",
]
