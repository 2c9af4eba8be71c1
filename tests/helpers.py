"""Builders for synthetic 2dx archives, MS ADPCM blocks and charts."""

import struct


def adpcm_block(nibbles, coef=0, step=16, s1=0, s2=0):
    """One mono MS ADPCM block; `nibbles` is a list of 4-bit values (even length)."""
    header = struct.pack('<Bhhh', coef, step, s1, s2)
    body = bytes((nibbles[i] << 4) | nibbles[i + 1] for i in range(0, len(nibbles), 2))
    return header + body


def stereo_adpcm_block(nibble_pairs, coef=(0, 0), step=(16, 16), s1=(0, 0), s2=(0, 0)):
    """One stereo block; `nibble_pairs` is a list of (left, right) nibbles."""
    header = struct.pack('<BBhhhhhh', coef[0], coef[1], step[0], step[1], s1[0], s1[1], s2[0], s2[1])
    body = bytes((l << 4) | r for l, r in nibble_pairs)
    return header + body


def riff_wave(data, sample_rate=44100, channels=1, block_align=None, format_tag=2):
    if block_align is None:
        block_align = len(data) or 7 * channels
    samples_per_block = max(0, (block_align - 7 * channels) * 2 // channels + 2)
    fmt = struct.pack('<HHIIHHHHH', format_tag, channels, sample_rate,
                      sample_rate * block_align // max(samples_per_block, 1),
                      block_align, 4, 4, samples_per_block, 0)
    chunks = b'fmt ' + struct.pack('<I', len(fmt)) + fmt
    chunks += b'data' + struct.pack('<I', len(data)) + data
    if len(data) & 1:
        chunks += b'\x00'
    return b'RIFF' + struct.pack('<I', 4 + len(chunks)) + b'WAVE' + chunks


def twodx_entry(wav, format_flag=0, track_id=0, attenuation=0, loop_point=0):
    header = b'2DX9' + struct.pack('<IIHHHHI', 0x18, len(wav), 0, track_id, format_flag, attenuation, loop_point)
    return header + wav


def twodx_archive(entries, name=b'testsong', flags=0):
    count = len(entries)
    header_size = 0x48 + 4 * count
    offsets = []
    pos = header_size
    for entry in entries:
        offsets.append(pos)
        pos += len(entry)
    header = name.ljust(16, b'\x00')[:16]
    header += struct.pack('<III', header_size, count, flags)
    header += b'\x00' * 44
    header += b''.join(struct.pack('<I', off) for off in offsets)
    return header + b''.join(entries)


def chart_record(offset_ms, kind, value, flags=0x45):
    return struct.pack('<IBBH', offset_ms, flags, kind, value)


def chart(records, metadata=None):
    """metadata=None builds a legacy chart; bytes builds an extended one."""
    body = b''.join(records)
    if metadata is None:
        return body
    return struct.pack('<I', 4 + len(metadata)) + metadata + body


def two_keysound_song(late_bg=True):
    """
    Two mono keysounds, 100 frames at 44100 Hz and 50 frames at 22050 Hz,
    played at 0 ms and 10 ms. Returns (archive bytes, chart bytes).
    """
    first = adpcm_block([0] * 98, s1=1000, s2=1000)
    second = adpcm_block([0] * 48, s1=-500, s2=-500)
    archive = twodx_archive([
        twodx_entry(riff_wave(first, sample_rate=44100)),
        twodx_entry(riff_wave(second, sample_rate=22050)),
    ], name=b'song', flags=1 if late_bg else 0)
    records = [chart_record(0, 0x03, 0), chart_record(10, 0x03, 1)]
    return archive, chart(records, metadata=None if late_bg else b'')
