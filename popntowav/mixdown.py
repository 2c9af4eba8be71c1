"""
Offset-based mixdown of keysounds into one timeline.

Keysounds are 16-bit, but summing them overflows 16 bits, so the timeline is an
int32 accumulator. Once everything is summed, the whole buffer is scaled by
floor(INT32_MAX / peak), which lifts the loudest sample to (nearly) full 32-bit
scale without clipping.

The scale factor assumes every contribution is 16-bit scale. Feeding already widened
(32-bit) data through here would mis-normalize.
"""

import numpy as np

from popntowav.resample import OUTPUT_RATE

OUTPUT_CHANNELS = 2
OUTPUT_BITS = 32
INT32_MAX = 2147483647


class MixdownResult:
    def __init__(self, samples, peak, scale, channels=OUTPUT_CHANNELS, rate=OUTPUT_RATE):
        self.samples = samples
        self.peak = peak
        self.scale = scale
        self.channels = channels
        self.rate = rate
        self.bits = OUTPUT_BITS

    @property
    def nbytes(self):
        return self.samples.nbytes

    @property
    def duration(self):
        return len(self.samples) / (self.channels * self.rate)

    def tobytes(self):
        return self.samples.astype('<i4', copy=False).tobytes()


def offset_in_samples(offset_ms, rate=OUTPUT_RATE, channels=OUTPUT_CHANNELS):
    """Frame-aligned interleaved index of a millisecond offset."""
    return (offset_ms * rate // 1000) * channels


def _resolve(keysounds, index):
    if 0 <= index < len(keysounds):
        return keysounds[index]
    return None


def timeline_length(keysounds, events, rate=OUTPUT_RATE, channels=OUTPUT_CHANNELS):
    """
    Sizing pass: number of int32 samples needed so that every event's keysound fits.
    Events pointing past the loaded keysounds are ignored.
    """
    length = 0
    for event in events:
        keysound = _resolve(keysounds, event.keysound_index)
        if keysound is None:
            continue
        end = offset_in_samples(event.offset_ms, rate, channels) + len(keysound.samples)
        if end > length:
            length = end
    return length


def accumulate(timeline, keysounds, events, rate=OUTPUT_RATE, channels=OUTPUT_CHANNELS):
    """
    Accumulation pass: adds every event's keysound into `timeline` in place and
    returns the peak absolute value of the result.
    """
    for event in events:
        keysound = _resolve(keysounds, event.keysound_index)
        if keysound is None:
            continue
        start = offset_in_samples(event.offset_ms, rate, channels)
        timeline[start:start + len(keysound.samples)] += keysound.samples

    if len(timeline) == 0:
        return 0
    # Peak of the finished sum (not of intermediate values) keeps it order independent.
    # 64-bit so abs(-2**31) cannot wrap.
    return int(np.abs(timeline.astype(np.int64)).max())


def normalize(timeline, peak):
    """Scales `timeline` in place; returns the integer factor used."""
    scale = INT32_MAX // peak if peak else 1
    timeline *= scale
    return scale


def mixdown(keysounds, events, rate=OUTPUT_RATE, channels=OUTPUT_CHANNELS):
    """
    Mixes `events` (PlayEvents, in any order) over `keysounds`, a sequence indexed like
    the archive whose entries are int16 interleaved PCM already at `rate`/`channels`
    (or None for a slot that failed to load).
    """
    events = list(events)
    timeline = np.zeros(timeline_length(keysounds, events, rate, channels), dtype=np.int32)
    peak = accumulate(timeline, keysounds, events, rate, channels)
    scale = normalize(timeline, peak)
    return MixdownResult(timeline, peak, scale, channels, rate)
