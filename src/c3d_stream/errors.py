"""Exception types raised while decoding C3D streams.

All decode failures derive from `C3DError`, which is a `ValueError` so callers
that already guard C3D reads with ``except ValueError`` keep working.
"""

from __future__ import annotations


class C3DError(ValueError):
    """Base class for every C3D decode failure."""


class BadFormatMarker(C3DError):
    """Header key byte is not 0x50."""

    def __init__(self, key: int) -> None:
        super().__init__(f"Not a C3D file (header key={key}, expected 80).")
        self.key = int(key)


class UnsupportedProcessorType(C3DError):
    """Processor byte of the parameter block is not Intel/DEC/MIPS."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Unsupported processor type {code} (expected 84=Intel, 85=DEC or 86=MIPS).")
        self.code = int(code)


class ParameterBlockCorrupt(C3DError):
    """Inconsistent header pointers, header analog geometry, or offsets, sizes
    and type tags in the group/parameter chain."""


class TruncatedStream(C3DError):
    """The byte source ended before a complete header, dictionary or frame was read."""


class UnderlyingIoFailure(C3DError, OSError):
    """The byte source raised while being read or seeked.

    The original exception is available as ``__cause__``.
    """


class NotConstructed(C3DError):
    """A staged adapter was used where a fully constructed one is required."""


__all__ = [
    "C3DError",
    "BadFormatMarker",
    "UnsupportedProcessorType",
    "ParameterBlockCorrupt",
    "TruncatedStream",
    "UnderlyingIoFailure",
    "NotConstructed",
]
