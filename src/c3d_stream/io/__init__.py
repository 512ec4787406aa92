"""Low-level C3D decoding: processor formats, header, parameters and frames."""

from .frames import AnalogSample, Frame, FrameIterator, IteratorState, PointSample
from .header import Header, HeaderEvent, decode_header
from .parameters import Group, ParamType, Parameter, ParameterDictionary, decode_parameter_block
from .processor import ProcessorFormat, resolve_processor

__all__ = [
    "AnalogSample",
    "Frame",
    "FrameIterator",
    "Group",
    "Header",
    "HeaderEvent",
    "IteratorState",
    "ParamType",
    "Parameter",
    "ParameterDictionary",
    "PointSample",
    "ProcessorFormat",
    "decode_header",
    "decode_parameter_block",
    "resolve_processor",
]
