from __future__ import annotations

import io
import logging

import numpy as np
import pytest

from c3d_stream.adapter import C3DAdapter
from c3d_stream.config import ReaderConfig
from c3d_stream.errors import TruncatedStream, UnderlyingIoFailure
from c3d_stream.io.frames import IteratorState
from synthetic_c3d import (
    DEC,
    INTEL,
    MIPS,
    ParamSpec,
    SyntheticC3D,
    basic_analog,
    basic_points,
    char_param,
    float_param,
    int_param,
    residual_word,
    standard_parameters,
)


def _frames(spec: SyntheticC3D, config=None):
    adapter = C3DAdapter.new(io.BytesIO(spec.build()), config).construct()
    return list(adapter.reader())


def _float_c3d(**kw) -> SyntheticC3D:
    words = basic_points().astype(np.float64)
    words[:, :, :3] *= 0.1
    return SyntheticC3D(
        point_words=words,
        analog_words=basic_analog().astype(np.float64),
        parameters=standard_parameters(scale=-0.1),
        scale=-0.1,
        **kw,
    )


def test_iterates_every_declared_frame(basic_c3d):
    frames = _frames(basic_c3d)

    assert [f.index for f in frames] == [1, 2, 3]
    np.testing.assert_allclose(frames[2].points[1], [20.1, -2.1, 100.2], rtol=1e-6)
    np.testing.assert_allclose(frames[0].residuals, [0.5, 0.5], rtol=1e-6)
    np.testing.assert_array_equal(frames[0].camera_masks, [0b101, 0b101])
    assert frames[0].valid.all()


def test_analog_is_scaled_per_channel(basic_c3d):
    frame = _frames(basic_c3d)[1]

    # raw = 100*frame + 10*sub + channel; channel 0: x2, channel 1: (raw - 10) * 0.5
    assert frame.analog.shape == (2, 2)
    np.testing.assert_allclose(frame.analog[0], [200.0, 220.0])
    np.testing.assert_allclose(frame.analog[1], [45.5, 50.5])


def test_analog_two_channel_scale_and_offset():
    analog = np.zeros((1, 1, 2), dtype=np.int64)
    analog[0, 0] = [100, 20]
    spec = SyntheticC3D(point_words=basic_points(1), analog_words=analog, parameters=standard_parameters())
    np.testing.assert_allclose(_frames(spec)[0].analog[:, 0], [200.0, 5.0])


@pytest.mark.parametrize("code", [INTEL, DEC, MIPS])
def test_int_and_float_encodings_agree(code, basic_c3d):
    int_frames = _frames(SyntheticC3D(**{**basic_c3d.__dict__, "processor": code}))
    float_frames = _frames(_float_c3d(processor=code))

    assert len(int_frames) == len(float_frames) == 3
    for a, b in zip(int_frames, float_frames):
        np.testing.assert_allclose(a.points, b.points, rtol=1e-5)
        np.testing.assert_allclose(a.residuals, b.residuals, rtol=1e-5)
        np.testing.assert_array_equal(a.camera_masks, b.camera_masks)
        np.testing.assert_allclose(a.analog, b.analog, rtol=1e-5)


def test_invalid_residual_word_marks_point_unavailable(basic_c3d):
    words = basic_c3d.point_words.copy()
    words[1, 0, 3] = -1
    frame = _frames(SyntheticC3D(**{**basic_c3d.__dict__, "point_words": words}))[1]

    samples = frame.point_samples()
    assert samples[0].residual is None
    assert samples[0].cameras == frozenset()
    assert samples[1].residual == pytest.approx(0.5)
    assert samples[1].cameras == frozenset({1, 3})
    np.testing.assert_array_equal(frame.valid, [False, True])


def test_truncated_frame_yields_complete_frames_then_error(basic_c3d):
    spec = SyntheticC3D(**{**basic_c3d.__dict__, "truncate": 5})
    adapter = C3DAdapter.new(io.BytesIO(spec.build())).construct()
    reader = adapter.reader()

    assert next(reader).index == 1
    assert next(reader).index == 2
    with pytest.raises(TruncatedStream):
        next(reader)
    assert reader.state is IteratorState.FAILED
    with pytest.raises(StopIteration):
        next(reader)


def test_frame_count_is_min_of_declared_and_present(basic_c3d, caplog):
    more_declared = SyntheticC3D(**{**basic_c3d.__dict__, "last_frame": 10})
    with caplog.at_level(logging.WARNING, logger="c3d_stream"):
        assert len(_frames(more_declared)) == 3
    assert "stream ended after 3 of 10 declared frames" in caplog.text

    fewer_declared = SyntheticC3D(**{**basic_c3d.__dict__, "last_frame": 2})
    assert [f.index for f in _frames(fewer_declared)] == [1, 2]


def test_trailing_data_warning(basic_c3d, caplog):
    spec = SyntheticC3D(**{**basic_c3d.__dict__, "last_frame": 2, "trailing": b"\x00" * 1024})
    with caplog.at_level(logging.WARNING, logger="c3d_stream"):
        _frames(spec)
    assert "remain after the last declared frame" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="c3d_stream"):
        _frames(spec, ReaderConfig(check_trailing_data=False))
    assert "remain after" not in caplog.text


def test_exhausted_iterator_stays_exhausted(basic_c3d):
    reader = C3DAdapter.new(io.BytesIO(basic_c3d.build())).construct().reader()
    assert len(list(reader)) == 3
    assert reader.state is IteratorState.EXHAUSTED
    assert reader.frames_read == 3
    assert list(reader) == []


def test_each_reader_restarts_at_first_frame(basic_c3d):
    adapter = C3DAdapter.new(io.BytesIO(basic_c3d.build())).construct()
    assert len(list(adapter.reader())) == 3
    assert [f.index for f in adapter.reader()] == [1, 2, 3]


def test_unsigned_analog_format():
    analog = np.full((2, 1, 1), 40000, dtype=np.int64)
    params = [
        int_param("POINT", "USED", 2),
        int_param("ANALOG", "USED", 1),
        char_param("ANALOG", "FORMAT", "UNSIGNED"),
        int_param("ANALOG", "OFFSET", [32768 - 65536]),
    ]
    spec = SyntheticC3D(point_words=basic_points(2), analog_words=analog, parameters=params, analog_kind="u2")

    frames = _frames(spec)
    # OFFSET is stored as a signed int16 (-32768); unsigned 40000 - (-32768).
    np.testing.assert_allclose(frames[0].analog, [[40000.0 + 32768.0]])

    signed = _frames(spec, ReaderConfig(analog_format="SIGNED"))
    np.testing.assert_allclose(signed[0].analog, [[(40000 - 65536) + 32768.0]])


def test_analog_used_mismatch_warns(basic_c3d, caplog):
    params = [p for p in basic_c3d.parameters if p.name != "USED" or p.group != "ANALOG"]
    params.append(int_param("ANALOG", "USED", 5))
    spec = SyntheticC3D(**{**basic_c3d.__dict__, "parameters": params})
    with caplog.at_level(logging.WARNING, logger="c3d_stream"):
        frames = _frames(spec)
    assert frames[0].analog.shape == (2, 2)
    assert "ANALOG:USED=5" in caplog.text


def test_points_only_file_has_no_analog():
    spec = SyntheticC3D(point_words=basic_points(), parameters=standard_parameters(analog_labels=()))
    frame = _frames(spec)[0]
    assert frame.analog is None
    assert frame.analog_samples() == []


def test_analog_samples_fall_back_to_channel_names(basic_c3d):
    frame = _frames(basic_c3d)[0]
    samples = frame.analog_samples(["FZ"])
    assert [s.label for s in samples] == ["FZ", "CH2"]
    np.testing.assert_allclose(frame.analog_by_label(["FZ", "EMG"])["EMG"], frame.analog[1])


def test_float_scale_ignores_point_scale_magnitude():
    words = basic_points(1).astype(np.float64)
    words[0, 0, :3] = [1.5, -2.25, 3.0]
    spec = SyntheticC3D(point_words=words, parameters=[int_param("POINT", "USED", 2)], scale=-10.0)
    frame = _frames(spec)[0]
    np.testing.assert_allclose(frame.points[0], [1.5, -2.25, 3.0])
    # residual byte 5 times |scale|
    assert frame.residuals[0] == pytest.approx(50.0)


class _FailingStream(io.BytesIO):
    def __init__(self, data: bytes, fail_after: int):
        super().__init__(data)
        self.fail_after = fail_after

    def read(self, size=-1):
        if self.tell() >= self.fail_after:
            raise OSError("device unplugged")
        return super().read(size)


def test_io_failure_is_wrapped(basic_c3d):
    data = basic_c3d.build()
    stream = _FailingStream(data, fail_after=len(data))
    reader = C3DAdapter.new(stream).construct().reader()
    stream.fail_after = len(data) - reader.frame_bytes

    next(reader)
    next(reader)
    with pytest.raises(UnderlyingIoFailure) as info:
        next(reader)
    assert isinstance(info.value, OSError)
    assert isinstance(info.value.__cause__, OSError)
    assert reader.state is IteratorState.FAILED


def test_float_file_with_float_param():
    spec = _float_c3d()
    spec.parameters.append(float_param("POINT", "FRAMES", 3.0))
    frames = _frames(spec)
    assert len(frames) == 3
    np.testing.assert_allclose(frames[0].residuals, [0.5, 0.5], rtol=1e-6)
    assert frames[0].camera_masks[0] == residual_word(0, (1, 3)) >> 8


def test_empty_analog_used_does_not_block_reading(basic_c3d):
    params = [p for p in basic_c3d.parameters if not (p.group == "ANALOG" and p.name == "USED")]
    params.append(ParamSpec("ANALOG", "USED", 2, (0,), b""))
    frames = _frames(SyntheticC3D(**{**basic_c3d.__dict__, "parameters": params}))

    assert len(frames) == 3
    assert frames[0].analog.shape == (2, 2)
