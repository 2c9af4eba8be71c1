import os
import wave

import numpy as np


def write_wav(output_path, samples, channels, bits, rate):
    """
    Writes interleaved signed PCM as a WAV file.
    An empty buffer gives a valid, silent, zero-length WAV.
    """
    if bits not in (16, 32):
        raise ValueError(f"Unsupported bit depth: {bits}")

    output_path = os.fspath(output_path)

    # WAV expects little-endian signed samples
    dtype = '<i2' if bits == 16 else '<i4'
    samples = np.asarray(samples).astype(dtype, copy=False)

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    with wave.open(output_path, 'wb') as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(bits // 8)
        wav_file.setframerate(rate)
        wav_file.writeframes(samples.tobytes())

    return output_path


def write_mixdown(output_path, result):
    return write_wav(output_path, result.samples, result.channels, result.bits, result.rate)
