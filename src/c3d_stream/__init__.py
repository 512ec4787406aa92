"""Streaming, read-only decoder for C3D motion-capture files."""

from .adapter import AdapterState, C3DAdapter
from .config import ReaderConfig, load_reader_config
from .errors import (
    BadFormatMarker,
    C3DError,
    NotConstructed,
    ParameterBlockCorrupt,
    TruncatedStream,
    UnderlyingIoFailure,
    UnsupportedProcessorType,
)
from .io.export import C3DAnalog, C3DPoints, analog_to_dataframe, points_to_dataframe, read_c3d_analog, read_c3d_points
from .io.frames import Frame, FrameIterator, IteratorState
from .io.header import Header
from .io.parameters import ParamType, Parameter, ParameterDictionary

__all__ = [
    "AdapterState",
    "BadFormatMarker",
    "C3DAdapter",
    "C3DAnalog",
    "C3DError",
    "C3DPoints",
    "Frame",
    "FrameIterator",
    "Header",
    "IteratorState",
    "NotConstructed",
    "ParamType",
    "Parameter",
    "ParameterBlockCorrupt",
    "ParameterDictionary",
    "ReaderConfig",
    "TruncatedStream",
    "UnderlyingIoFailure",
    "UnsupportedProcessorType",
    "analog_to_dataframe",
    "load_reader_config",
    "points_to_dataframe",
    "read_c3d_analog",
    "read_c3d_points",
]
