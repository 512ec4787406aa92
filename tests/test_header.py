from __future__ import annotations

import pytest

from c3d_stream.errors import BadFormatMarker, TruncatedStream
from c3d_stream.io.header import BLOCK_SIZE, check_key, decode_header
from c3d_stream.io.processor import resolve_processor
from synthetic_c3d import DEC, INTEL, MIPS, SyntheticC3D, basic_analog, basic_points


@pytest.mark.parametrize("code", [INTEL, DEC, MIPS])
def test_decode_header_fields(code):
    spec = SyntheticC3D(point_words=basic_points(4, 3), analog_words=basic_analog(4, 5, 2), processor=code)
    block = spec.header_block(data_block=3)
    header = decode_header(block, resolve_processor(code))

    assert header.parameter_block == 2
    assert header.point_count == 3
    assert header.analog_count == 10
    assert header.analog_per_frame == 5
    assert header.analog_channel_count == 2
    assert (header.first_frame, header.last_frame) == (1, 4)
    assert header.frame_count == 4
    assert header.scale_factor == pytest.approx(0.1)
    assert header.frame_rate == pytest.approx(100.0)
    assert header.analog_rate == pytest.approx(500.0)
    assert header.data_offset == 2 * BLOCK_SIZE
    assert not header.is_float
    assert header.frame_bytes == (4 * 3 + 10) * 2


def test_negative_scale_means_float_words():
    spec = SyntheticC3D(point_words=basic_points(), scale=-0.1)
    header = decode_header(spec.header_block(data_block=3), resolve_processor(INTEL))
    assert header.is_float
    assert header.word_size == 4
    assert header.frame_bytes == 4 * 2 * 4


def test_header_events():
    spec = SyntheticC3D(
        point_words=basic_points(),
        events=[("RHS", 0.5, True), ("LTO", 1.25, False)],
    )
    header = decode_header(spec.header_block(data_block=3), resolve_processor(INTEL))

    assert header.long_event_labels
    assert [e.label for e in header.events] == ["RHS", "LTO"]
    assert [e.time for e in header.events] == pytest.approx([0.5, 1.25])
    assert [e.displayed for e in header.events] == [True, False]


def test_no_events_by_default():
    spec = SyntheticC3D(point_words=basic_points())
    header = decode_header(spec.header_block(data_block=3), resolve_processor(INTEL))
    assert header.events == ()


def test_bad_key_byte():
    spec = SyntheticC3D(point_words=basic_points(), key=0x51)
    with pytest.raises(BadFormatMarker) as info:
        check_key(spec.header_block(data_block=3))
    assert info.value.key == 0x51
    assert isinstance(info.value, ValueError)


def test_short_header_block():
    block = SyntheticC3D(point_words=basic_points()).header_block(data_block=3)
    with pytest.raises(TruncatedStream):
        decode_header(block[:100], resolve_processor(INTEL))
