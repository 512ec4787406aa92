"""Two-phase C3D reader facade.

Example
-------
    with open(path, "rb") as f:
        adapter = C3DAdapter.new(f).construct()
        labels = adapter.point_labels()
        for frame in adapter.reader():
            ...
"""

from __future__ import annotations

import enum
import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional

from .config import ReaderConfig
from .errors import NotConstructed, ParameterBlockCorrupt, TruncatedStream, UnderlyingIoFailure
from .io.frames import FrameIterator
from .io.header import BLOCK_SIZE, Header, check_key, decode_header
from .io.parameters import Parameter, ParameterDictionary, decode_parameter_block
from .io.processor import ProcessorFormat, resolve_processor

logger = logging.getLogger(__name__)


_LABELS_RE = re.compile(r"^LABELS(\d*)$")


class AdapterState(enum.Enum):
    STAGED = "staged"
    CONSTRUCTED = "constructed"


class C3DAdapter:
    """Facade over header, parameter dictionary and frame streaming.

    Use `C3DAdapter.new` to stage (cheap format checks) and `construct` to
    decode the header and parameter dictionary.
    """

    def __init__(
        self,
        source: BinaryIO,
        *,
        header_block: bytes,
        parameter_block_header: bytes,
        processor: ProcessorFormat,
        config: ReaderConfig,
    ):
        self._source = source
        self._header_block = header_block
        self._parameter_block_header = parameter_block_header
        self._processor = processor
        self._config = config
        self._state = AdapterState.STAGED
        self._header: Optional[Header] = None
        self._parameters: Optional[ParameterDictionary] = None

    # -- construction ----------------------------------------------------

    @staticmethod
    def _read_at(source: BinaryIO, offset: int, n: int) -> bytes:
        try:
            source.seek(offset)
            chunks = []
            remaining = n
            while remaining > 0:
                chunk = source.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
        except OSError as exc:
            raise UnderlyingIoFailure(f"reading {n} bytes at offset {offset} failed: {exc}") from exc
        return b"".join(chunks)

    @classmethod
    def new(cls, source: BinaryIO, config: Optional[ReaderConfig] = None) -> "C3DAdapter":
        """Stage a source: validate the header key and resolve the processor type."""

        cfg = config or ReaderConfig()
        header_block = cls._read_at(source, 0, BLOCK_SIZE)
        if len(header_block) < BLOCK_SIZE:
            raise TruncatedStream(f"Header block is {len(header_block)} bytes, expected {BLOCK_SIZE}.")
        parameter_block = check_key(header_block)
        if parameter_block < 1:
            raise ParameterBlockCorrupt("Header parameter-block pointer is 0.")

        parameter_offset = (parameter_block - 1) * BLOCK_SIZE
        block_header = cls._read_at(source, parameter_offset, 4)
        if len(block_header) < 4:
            raise ParameterBlockCorrupt(
                f"Parameter block {parameter_block} (byte {parameter_offset}) lies outside the stream."
            )
        processor = resolve_processor(block_header[3])
        return cls(
            source,
            header_block=header_block,
            parameter_block_header=block_header,
            processor=processor,
            config=cfg,
        )

    def construct(self) -> "C3DAdapter":
        """Decode header and parameter dictionary; returns ``self``."""

        if self._state is AdapterState.CONSTRUCTED:
            return self

        header = decode_header(self._header_block, self._processor)
        if header.data_block < 1:
            raise ParameterBlockCorrupt("Header data-block pointer is 0.")
        if header.analog_count and (header.analog_per_frame < 1 or header.analog_count % header.analog_per_frame):
            raise ParameterBlockCorrupt(
                f"Header analog word count {header.analog_count} is not a multiple of "
                f"{header.analog_per_frame} samples per frame."
            )

        n_blocks = self._parameter_block_header[2]
        if n_blocks == 0:
            n_blocks = header.data_block - header.parameter_block
            logger.debug("parameter block count is 0; assuming %d blocks up to the data section", n_blocks)
        if n_blocks <= 0:
            raise ParameterBlockCorrupt(
                f"Cannot size the parameter section (parameter block {header.parameter_block}, "
                f"data block {header.data_block})."
            )

        size = n_blocks * BLOCK_SIZE - 4
        data = self._read_at(self._source, header.parameter_offset + 4, size)
        if len(data) < size:
            raise TruncatedStream(f"Parameter section is {len(data)} bytes, header declares {size}.")

        parameters = decode_parameter_block(data, self._processor, self._config)

        self._header = header
        self._parameters = parameters
        self._state = AdapterState.CONSTRUCTED
        return self

    @classmethod
    @contextmanager
    def open(cls, path: str | Path, config: Optional[ReaderConfig] = None) -> Iterator["C3DAdapter"]:
        """Open a file, construct the adapter and close the file on exit."""

        with Path(path).open("rb") as handle:
            yield cls.new(handle, config).construct()

    # -- state -----------------------------------------------------------

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def processor(self) -> ProcessorFormat:
        return self._processor

    @property
    def config(self) -> ReaderConfig:
        return self._config

    def _require(self) -> None:
        if self._state is not AdapterState.CONSTRUCTED:
            raise NotConstructed("Call construct() before using the decoded header or parameters.")

    @property
    def header(self) -> Header:
        self._require()
        return self._header  # type: ignore[return-value]

    @property
    def parameters(self) -> ParameterDictionary:
        self._require()
        return self._parameters  # type: ignore[return-value]

    # -- lookup ----------------------------------------------------------

    def get(self, key: str) -> Optional[Parameter]:
        """Parameter for ``GROUP:PARAM`` (case-insensitive), or None."""
        return self.parameters.get(key)

    def __getitem__(self, key: str) -> Parameter:
        return self.parameters[key]

    def __contains__(self, key: object) -> bool:
        return key in self.parameters

    def _labels(self, group: str) -> Optional[List[str]]:
        params = self.parameters.group_parameters(group)
        if "LABELS" not in params:
            return None
        # LABELS, LABELS2, LABELS3, ... hold continuation labels beyond 255 entries.
        names = sorted(
            (int(m.group(1) or 1), name)
            for name in params
            for m in [_LABELS_RE.match(name)]
            if m is not None
        )
        labels: List[str] = []
        for _, name in names:
            param = params[name]
            if param.is_numeric:
                logger.warning("%s:%s is not a CHAR array; skipped", group, name)
                continue
            labels.extend(param.string_array())
        return labels

    def point_labels(self) -> Optional[List[str]]:
        return self._labels("POINT")

    def analog_labels(self) -> Optional[List[str]]:
        return self._labels("ANALOG")

    # -- streaming -------------------------------------------------------

    def reader(self) -> FrameIterator:
        """New frame iterator positioned at the start of the data section."""
        self._require()
        return FrameIterator(self._source, self._header, self._parameters, self._processor, self._config)

    def __repr__(self) -> str:
        return f"C3DAdapter(state={self._state.value}, processor={self._processor.name})"


__all__ = [
    "AdapterState",
    "C3DAdapter",
]
