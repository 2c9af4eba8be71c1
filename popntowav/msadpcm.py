"""
MS ADPCM keysound decoder.

Keysounds inside a 2dx archive are Microsoft ADPCM streams cut into fixed-size blocks.
Every block is self-contained: its header re-seeds the predictor and step size, so
blocks never share state.

Block header, per channel (stereo interleaves each field L then R):
    u8   coefficient index (into COEFFICIENTS)
    s16  initial step ("delta")
    s16  sample1 (most recent sample)
    s16  sample2 (sample before that)

After the header come packed 4-bit deltas, high nibble first. In stereo the high
nibble belongs to the left channel and the low nibble to the right.

Two header layouts turn up across archive eras, selected by the entry's format flag:
    PRIMED - sample2, sample1 are part of the output (stock MS ADPCM)
    BARE   - they only seed the predictor; output starts with the first nibble
"""

import enum

import numpy as np

from popntowav.errors import DecodeError


class BlockLayout(enum.Enum):
    PRIMED = "primed"
    BARE = "bare"

    @classmethod
    def from_flag(cls, format_flag):
        return cls.PRIMED if format_flag == 0 else cls.BARE


class DecodedKeysound:
    """Linear 16-bit PCM, interleaved when stereo."""

    def __init__(self, samples, sample_rate, channels):
        self.samples = samples
        self.sample_rate = sample_rate
        self.channels = channels

    @property
    def frames(self):
        return len(self.samples) // self.channels

    def to_stereo(self):
        if self.channels == 2:
            return self
        # Mono keysounds play centred: same sample on both sides
        return DecodedKeysound(np.repeat(self.samples, 2), self.sample_rate, 2)

    def __repr__(self):
        return f"DecodedKeysound(frames={self.frames}, rate={self.sample_rate}, channels={self.channels})"


class MsAdpcmDecoder:
    """
    Block decoder for Microsoft ADPCM.
    Same nibble arithmetic as the reference msadpcm.c: linear prediction from the
    two previous samples, scaled signed delta, multiplicative step adaptation.
    """

    COEFFICIENTS = [
        (256, 0), (512, -256), (0, 0), (192, 64),
        (240, 0), (460, -208), (392, -232)
    ]

    ADAPTATION_TABLE = [
        230, 230, 230, 230, 307, 409, 512, 614,
        768, 614, 512, 409, 307, 230, 230, 230
    ]

    MIN_STEP = 16
    HEADER_SIZE = 7  # per channel

    def __init__(self, channels, block_align, layout=BlockLayout.PRIMED):
        if channels not in (1, 2):
            raise DecodeError(f"unsupported channel count {channels}")
        if block_align < self.HEADER_SIZE * channels:
            raise DecodeError(f"block align {block_align} is smaller than a {channels}-channel block header")
        self.channels = channels
        self.block_align = block_align
        self.layout = layout

    @property
    def samples_per_block(self):
        """Frames produced by one block."""
        nibble_frames = (self.block_align - self.HEADER_SIZE * self.channels) * 2 // self.channels
        if self.layout is BlockLayout.PRIMED:
            return nibble_frames + 2
        return nibble_frames

    def decode(self, data):
        """
        Decodes a whole payload into an int16 numpy array (interleaved for stereo).
        Raises DecodeError unless the payload is a whole number of blocks.
        """
        if len(data) % self.block_align:
            raise DecodeError(
                f"payload of {len(data)} bytes is not a multiple of block align {self.block_align}")

        samples = []
        for start in range(0, len(data), self.block_align):
            self._decode_block(data[start:start + self.block_align], samples)
        return np.array(samples, dtype=np.int16)

    def _decode_block(self, block, samples):
        ch = self.channels
        predictors = []
        for c in range(ch):
            idx = block[c]
            if idx >= len(self.COEFFICIENTS):
                raise DecodeError(f"coefficient index {idx} out of range")
            predictors.append(self.COEFFICIENTS[idx])

        fields = np.frombuffer(bytes(block[ch:ch * self.HEADER_SIZE]), dtype='<i2').tolist()
        steps = fields[0:ch]
        s1 = fields[ch:2 * ch]
        s2 = fields[2 * ch:3 * ch]

        if self.layout is BlockLayout.PRIMED:
            samples.extend(s2)
            samples.extend(s1)

        pos = 0
        for byte in block[ch * self.HEADER_SIZE:]:
            for nibble in ((byte >> 4) & 0x0F, byte & 0x0F):
                # Stereo alternates L/R per nibble, mono stays on channel 0
                c = pos % ch
                pos += 1

                c1, c2 = predictors[c]
                predict = (s1[c] * c1 + s2[c] * c2) >> 8

                signed = nibble - 16 if nibble & 0x08 else nibble
                sample = predict + signed * steps[c]
                if sample > 32767: sample = 32767
                elif sample < -32768: sample = -32768

                samples.append(sample)
                s2[c] = s1[c]
                s1[c] = sample

                steps[c] = (self.ADAPTATION_TABLE[nibble] * steps[c]) >> 8
                if steps[c] < self.MIN_STEP: steps[c] = self.MIN_STEP


def decode_keysound(record):
    """Decodes one archive KeysoundRecord into PCM at its native rate."""
    decoder = MsAdpcmDecoder(record.channels, record.block_align, record.block_layout)
    samples = decoder.decode(record.compressed_data)
    return DecodedKeysound(samples, record.sample_rate, record.channels)
