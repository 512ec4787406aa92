"""C3D parameter section: groups, typed parameters and the keyed dictionary.

Record layout (all records share the first four fields)::

    name_length : i8   |value| = name length, negative => locked
    group_id    : i8   < 0 => group record, > 0 => parameter of group |id|
    name        : name_length bytes
    next_offset : i16  offset of the next record, relative to this field (0 => last record)

Group payload::

    desc_length : u8, description bytes

Parameter payload::

    type        : i8   -1 char, 1 int8, 2 int16, 4 float32
    n_dims      : u8
    dims        : n_dims x u8
    values      : prod(dims) x |type| bytes (column-major)
    desc_length : u8, description bytes
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from ..config import ReaderConfig
from ..errors import ParameterBlockCorrupt, TruncatedStream
from .processor import ProcessorFormat

logger = logging.getLogger(__name__)


class ParamType(IntEnum):
    CHAR = -1
    INT8 = 1
    INT16 = 2
    FLOAT32 = 4

    @property
    def width(self) -> int:
        return abs(int(self))


@dataclass(frozen=True)
class Group:
    group_id: int  # 1..127
    name: str
    description: str = ""
    locked: bool = False


@dataclass(frozen=True, eq=False)
class Parameter:
    """One typed parameter value.

    `values` is the flat element array in file (column-major) order:
    int8/int16/float32 for numeric types, one byte per element (dtype S1) for CHAR.
    A parameter with no dimensions is a scalar holding exactly one element.
    """

    group_id: int
    name: str
    param_type: ParamType
    dimensions: Tuple[int, ...]
    data: bytes
    values: np.ndarray
    description: str = ""
    locked: bool = False
    group_name: str = ""
    encoding: str = "latin-1"

    @property
    def key(self) -> str:
        return f"{self.group_name}:{self.name}".upper()

    @property
    def is_scalar(self) -> bool:
        return len(self.dimensions) == 0

    @property
    def num_elements(self) -> int:
        return int(math.prod(self.dimensions)) if self.dimensions else 1

    @property
    def is_numeric(self) -> bool:
        return self.param_type is not ParamType.CHAR

    def array(self) -> np.ndarray:
        """Values reshaped to the declared dimensions (C order, i.e. reversed dims)."""
        if self.is_scalar:
            return self.values.reshape(())
        return self.values.reshape(self.dimensions[::-1])

    def _first(self):
        if self.values.size == 0:
            raise ValueError(f"Parameter {self.key} has no elements")
        return self.values[0]

    @property
    def int_value(self) -> int:
        if not self.is_numeric:
            raise TypeError(f"Parameter {self.key} is CHAR, not numeric")
        return int(self._first())

    @property
    def float_value(self) -> float:
        if not self.is_numeric:
            raise TypeError(f"Parameter {self.key} is CHAR, not numeric")
        return float(self._first())

    @property
    def string_value(self) -> str:
        return _text(self.data, self.encoding).replace("\x00", " ").strip()

    def string_array(self) -> List[str]:
        """Split a CHAR array into trimmed strings.

        The first dimension is the string length; the remaining dimensions
        give the number of strings.
        """

        if self.is_numeric:
            raise TypeError(f"Parameter {self.key} is {self.param_type.name}, not CHAR")
        if self.is_scalar or len(self.dimensions) == 1:
            return [self.string_value]
        width = self.dimensions[0]
        count = int(math.prod(self.dimensions[1:]))
        if width == 0:
            return [""] * count
        out = []
        for i in range(count):
            chunk = self.data[i * width : (i + 1) * width]
            out.append(_text(chunk, self.encoding).replace("\x00", " ").strip())
        return out


def _text(raw: bytes, encoding: str) -> str:
    """Decode stored text; bytes invalid in `encoding` become U+FFFD."""
    return bytes(raw).decode(encoding, errors="replace")


def split_key(key: str) -> Tuple[str, str]:
    """Normalize a ``GROUP:PARAM`` (or ``GROUP.PARAM``) key into upper-case parts."""

    text = str(key).strip().upper()
    for sep in (":", "."):
        if sep in text:
            group, _, param = text.partition(sep)
            return group.strip(), param.strip()
    raise KeyError(f"Parameter key must look like 'GROUP:PARAMETER', got {key!r}")


class ParameterDictionary(Mapping):
    """Read-only mapping ``"GROUP:PARAM"`` -> `Parameter` (case-insensitive)."""

    def __init__(self, groups: Dict[int, Group], params: Dict[str, Parameter]):
        self._groups = dict(groups)
        self._params = dict(params)
        self._groups_by_name = {g.name.upper(): g for g in self._groups.values()}

    def __getitem__(self, key: str) -> Parameter:
        group, param = split_key(key)
        return self._params[f"{group}:{param}"]

    def __contains__(self, key: object) -> bool:
        try:
            self[key]  # type: ignore[index]
        except KeyError:
            return False
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def __repr__(self) -> str:
        return f"ParameterDictionary(groups={len(self._groups)}, parameters={len(self._params)})"

    @property
    def groups(self) -> Tuple[Group, ...]:
        return tuple(self._groups.values())

    def group(self, name_or_id: str | int) -> Optional[Group]:
        if isinstance(name_or_id, int):
            return self._groups.get(name_or_id)
        return self._groups_by_name.get(str(name_or_id).strip().upper())

    def group_parameters(self, group_name: str) -> Dict[str, Parameter]:
        """Parameters of one group keyed by upper-case parameter name, in file order."""
        prefix = str(group_name).strip().upper() + ":"
        return {k[len(prefix) :]: p for k, p in self._params.items() if k.startswith(prefix)}

    def numeric(self, key: str) -> Optional[np.ndarray]:
        """Float64 copy of a numeric parameter, or None when absent or CHAR."""
        param = self.get(key)
        if param is None or not param.is_numeric:
            return None
        return param.values.astype(np.float64)


def _decode_values(raw: bytes, ptype: ParamType, processor: ProcessorFormat) -> np.ndarray:
    if ptype is ParamType.CHAR:
        # One element per stored byte, whatever the text codec.
        return np.frombuffer(raw, dtype="S1").copy()
    if ptype is ParamType.INT8:
        return processor.int8_array(raw).copy()
    if ptype is ParamType.INT16:
        return processor.int16_array(raw).astype(np.int16)
    return processor.float32_array(raw)


def _read_description(data: bytes, q: int, rec_end: int, encoding: str, where: str) -> str:
    if q >= rec_end:
        return ""
    desc_len = data[q]
    q += 1
    if q + desc_len > rec_end:
        raise ParameterBlockCorrupt(f"{where}: description ({desc_len} bytes) overruns its record")
    return _text(data[q : q + desc_len], encoding)


def _parse_parameter(
    data: bytes,
    q: int,
    rec_end: int,
    *,
    group_id: int,
    name: str,
    locked: bool,
    processor: ProcessorFormat,
    encoding: str,
) -> Parameter:
    where = f"parameter {name!r} (group {group_id})"
    if q + 2 > rec_end:
        raise ParameterBlockCorrupt(f"{where}: record too short for type/dimension fields")
    type_tag = processor.int8(data, q)
    try:
        ptype = ParamType(type_tag)
    except ValueError:
        raise ParameterBlockCorrupt(f"{where}: unknown type tag {type_tag}") from None
    n_dims = data[q + 1]
    q += 2
    if q + n_dims > rec_end:
        raise ParameterBlockCorrupt(f"{where}: {n_dims} dimensions overrun the record")
    dims = tuple(int(d) for d in data[q : q + n_dims])
    q += n_dims

    n_elem = int(math.prod(dims)) if dims else 1
    n_bytes = n_elem * ptype.width
    if q + n_bytes > rec_end:
        raise ParameterBlockCorrupt(f"{where}: {n_bytes} value bytes overrun the record (dims={list(dims)})")
    raw = bytes(data[q : q + n_bytes])
    q += n_bytes

    return Parameter(
        group_id=group_id,
        name=name,
        param_type=ptype,
        dimensions=dims,
        data=raw,
        values=_decode_values(raw, ptype, processor),
        description=_read_description(data, q, rec_end, encoding, where),
        locked=locked,
        encoding=encoding,
    )


def decode_parameter_block(
    data: bytes,
    processor: ProcessorFormat,
    config: Optional[ReaderConfig] = None,
) -> ParameterDictionary:
    """Walk the group/parameter chain.

    Parameters
    ----------
    data:
        Parameter section bytes *after* the 4-byte block header.
    processor:
        Resolved byte-order strategy.
    """

    cfg = config or ReaderConfig()
    enc = cfg.encoding
    end = len(data)
    pos = 0

    groups: Dict[int, Group] = {}
    pending: List[Parameter] = []

    while pos + 2 <= end:
        name_len_raw = processor.int8(data, pos)
        group_id = processor.int8(data, pos + 1)
        if name_len_raw == 0 or group_id == 0:
            break

        name_len = abs(name_len_raw)
        locked = name_len_raw < 0
        offset_pos = pos + 2 + name_len
        if offset_pos + 2 > end:
            raise ParameterBlockCorrupt(f"record at byte {pos + 4} overruns the parameter block")
        name = _text(data[pos + 2 : offset_pos], enc).strip()

        try:
            next_offset = processor.int16(data, offset_pos)
        except TruncatedStream as exc:
            raise ParameterBlockCorrupt(str(exc)) from exc
        if next_offset < 0:
            raise ParameterBlockCorrupt(f"record {name!r}: next-record offset {next_offset} points backward")
        rec_end = offset_pos + next_offset if next_offset else end
        if rec_end > end:
            raise ParameterBlockCorrupt(
                f"record {name!r}: next-record offset {next_offset} points past the parameter block ({end} bytes)"
            )
        q = offset_pos + 2
        if next_offset and rec_end < q:
            raise ParameterBlockCorrupt(f"record {name!r}: next-record offset {next_offset} overlaps its own header")

        if group_id < 0:
            gid = -group_id
            if gid in groups:
                logger.debug("group id %d redeclared as %r", gid, name)
            groups[gid] = Group(
                group_id=gid,
                name=name,
                description=_read_description(data, q, rec_end, enc, f"group {name!r}"),
                locked=locked,
            )
        else:
            pending.append(
                _parse_parameter(
                    data,
                    q,
                    rec_end,
                    group_id=group_id,
                    name=name,
                    locked=locked,
                    processor=processor,
                    encoding=enc,
                )
            )

        if next_offset == 0:
            break
        pos = rec_end

    params: Dict[str, Parameter] = {}
    for param in pending:
        group = groups.get(param.group_id)
        if group is None:
            if cfg.strict_groups:
                raise ParameterBlockCorrupt(f"parameter {param.name!r} refers to undeclared group id {param.group_id}")
            logger.warning("dropping parameter %r: group id %d is never declared", param.name, param.group_id)
            continue
        resolved = replace(param, group_name=group.name)
        if resolved.key in params:
            logger.debug("duplicate parameter %s overwritten by a later record", resolved.key)
        params[resolved.key] = resolved

    logger.debug("decoded %d groups and %d parameters", len(groups), len(params))
    return ParameterDictionary(groups, params)


__all__ = [
    "Group",
    "ParamType",
    "Parameter",
    "ParameterDictionary",
    "decode_parameter_block",
    "split_key",
]
