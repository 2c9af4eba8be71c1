import numpy as np

from popntowav.mixdown import (INT32_MAX, accumulate, mixdown, normalize, offset_in_samples,
                               timeline_length)
from popntowav.msadpcm import DecodedKeysound
from popntowav.popnchart import PlayEvent


def stereo(values):
    return DecodedKeysound(np.array(values, dtype=np.int16), 44100, 2)


def test_offset_is_frame_aligned_and_interleaved():
    assert offset_in_samples(0) == 0
    assert offset_in_samples(10) == 882
    # 1 ms is 44.1 frames; the fraction is dropped before doubling
    assert offset_in_samples(1) == 88


def test_sizing_takes_the_latest_ending_event():
    keysounds = [stereo([1] * 200), stereo([1] * 10)]
    events = [PlayEvent(0, 0), PlayEvent(10, 1)]
    assert timeline_length(keysounds, events) == 892


def test_sizing_ignores_missing_keysounds():
    keysounds = [stereo([1] * 4)]
    assert timeline_length(keysounds, [PlayEvent(0, 0), PlayEvent(5000, 3)]) == 4


def test_empty_inputs_give_empty_buffer():
    for keysounds, events in (([], [PlayEvent(0, 0)]), ([stereo([5, 5])], [])):
        result = mixdown(keysounds, events)
        assert len(result.samples) == 0
        assert result.nbytes == 0
        assert result.peak == 0
        assert result.scale == 1


def test_overlapping_events_add():
    timeline = np.zeros(4, dtype=np.int32)
    keysounds = [stereo([100, -100, 30000, 30000])]
    peak = accumulate(timeline, keysounds, [PlayEvent(0, 0), PlayEvent(0, 0)])
    assert timeline.tolist() == [200, -200, 60000, 60000]
    assert peak == 60000


def test_event_order_does_not_matter():
    keysounds = [stereo([30000] * 8), stereo([-30000] * 8), stereo([12345, -5] * 4)]
    events = [PlayEvent(0, 0), PlayEvent(0, 1), PlayEvent(0, 0), PlayEvent(1, 2), PlayEvent(3, 0)]
    forward = mixdown(keysounds, events)
    backward = mixdown(keysounds, list(reversed(events)))
    assert np.array_equal(forward.samples, backward.samples)
    assert forward.peak == backward.peak


def test_non_overlapping_events_order_independent():
    keysounds = [stereo([10, 20]), stereo([-7, 7])]
    a = mixdown(keysounds, [PlayEvent(0, 0), PlayEvent(100, 1)])
    b = mixdown(keysounds, [PlayEvent(100, 1), PlayEvent(0, 0)])
    assert np.array_equal(a.samples, b.samples)


def test_normalization_scales_the_peak():
    keysounds = [stereo([1000, -3000, 500, 0])]
    result = mixdown(keysounds, [PlayEvent(0, 0)])
    assert result.peak == 3000
    assert result.scale == INT32_MAX // 3000
    assert result.samples[1] == -3000 * result.scale
    assert np.abs(result.samples.astype(np.int64)).max() <= INT32_MAX


def test_negative_full_scale_peak():
    result = mixdown([stereo([-32768, 1])], [PlayEvent(0, 0)])
    assert result.peak == 32768
    assert result.scale == 65535
    assert result.samples[0] == -32768 * 65535


def test_normalize_silent_buffer():
    timeline = np.zeros(6, dtype=np.int32)
    assert normalize(timeline, 0) == 1
    assert not timeline.any()


def test_missing_keysound_event_changes_nothing():
    keysounds = [stereo([5, 6, 7, 8])]
    with_missing = mixdown(keysounds, [PlayEvent(0, 0), PlayEvent(3, 9), PlayEvent(1, 0)])
    without = mixdown(keysounds, [PlayEvent(0, 0), PlayEvent(1, 0)])
    assert np.array_equal(with_missing.samples, without.samples)


def test_none_slots_are_skipped():
    result = mixdown([None, stereo([4, 4])], [PlayEvent(0, 0), PlayEvent(0, 1)])
    assert len(result.samples) == 2


def test_result_bytes_are_little_endian_int32():
    result = mixdown([stereo([1, -1])], [PlayEvent(0, 0)])
    raw = result.tobytes()
    assert len(raw) == 8
    assert np.frombuffer(raw, dtype='<i4').tolist() == [INT32_MAX, -INT32_MAX]
