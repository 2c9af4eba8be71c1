from fractions import Fraction

import numpy as np
from scipy.signal import resample_poly

from popntowav.errors import ResampleError
from popntowav.msadpcm import DecodedKeysound

OUTPUT_RATE = 44100

# Kaiser beta for the polyphase FIR; 16 is the "best quality" end of the range
KAISER_BETA = 16.0


def resample_keysound(keysound, rate=OUTPUT_RATE):
    """
    Converts a DecodedKeysound to `rate` with a windowed-sinc polyphase filter.
    Returns the input untouched when the rates already match, otherwise a new
    DecodedKeysound; the input array is never written to.
    """
    if keysound.sample_rate == rate:
        return keysound
    if keysound.sample_rate <= 0:
        raise ResampleError(f"cannot resample from {keysound.sample_rate} Hz")
    if len(keysound.samples) == 0:
        return DecodedKeysound(keysound.samples.copy(), rate, keysound.channels)

    frac = Fraction(rate, keysound.sample_rate).limit_denominator(1000)
    frames = keysound.samples.reshape(-1, keysound.channels).astype(np.float64)
    try:
        out = resample_poly(frames, frac.numerator, frac.denominator, axis=0,
                            window=('kaiser', KAISER_BETA))
    except (ValueError, MemoryError) as exc:
        raise ResampleError(f"{keysound.sample_rate} Hz -> {rate} Hz failed: {exc}") from exc

    # Filter ringing can overshoot full scale
    out = np.clip(np.rint(out), -32768, 32767).astype(np.int16)
    return DecodedKeysound(out.reshape(-1), rate, keysound.channels)
