"""
2dx sample archive parser.

A 2dx file is the keysound container shipped inside a pop'n music ifs package.
Everything is little-endian.

    0x00  name[16]      null padded
    0x10  u32           header size (end of the offset table)
    0x14  u32           keysound count
    0x18  u32           archive flags, bit 0 = late background
    0x1C  reserved[44]
    0x48  u32[count]    absolute offset of each keysound entry

Each entry starts with a "2DX9" header:

    +0x00  "2DX9"
    +0x04  u32  header size
    +0x08  u32  payload size
    +0x0C  u16  unknown
    +0x0E  u16  track id
    +0x10  u16  format flag (selects the ADPCM block layout)
    +0x12  u16  attenuation
    +0x14  u32  loop point

and the payload is a complete RIFF/WAVE file holding MS ADPCM data.
"""

import collections

from popntowav.common.binary import cstring, read_u16_le, read_u32_le
from popntowav.errors import FormatError
from popntowav.msadpcm import BlockLayout
from popntowav.popnchart import ChartLayout

NAME_SIZE = 16
TABLE_START = 0x48
FLAG_LATE_BG = 0x01

ENTRY_MAGIC = b'2DX9'
ENTRY_HEADER_MIN = 0x18

WAVE_FORMAT_MSADPCM = 2


class KeysoundRecord(collections.namedtuple('KeysoundRecord', [
        'index', 'compressed_data', 'sample_rate', 'channels', 'block_align',
        'format_flag', 'track_id', 'attenuation', 'loop_point'])):
    __slots__ = ()

    @property
    def block_layout(self):
        return BlockLayout.from_flag(self.format_flag)


class Archive:
    def __init__(self, name, keysounds, flags=0):
        self.name = name
        self.keysounds = tuple(keysounds)
        self.flags = flags

    @property
    def late_bg(self):
        return bool(self.flags & FLAG_LATE_BG)

    @property
    def chart_layout(self):
        # Late-background archives ship with charts that have no leading metadata block
        return ChartLayout.LEGACY if self.late_bg else ChartLayout.EXTENDED

    @property
    def display_name(self):
        return self.name.decode('ascii', errors='replace')

    def __len__(self):
        return len(self.keysounds)

    def __repr__(self):
        return f"Archive(name={self.name!r}, keysounds={len(self.keysounds)}, late_bg={self.late_bg})"


class TwoDxParser:
    def __init__(self, data):
        self.data = data

    def parse(self):
        data = self.data
        if len(data) < TABLE_START:
            raise FormatError(f"archive is {len(data)} bytes, shorter than its {TABLE_START}-byte header")

        name = cstring(bytes(data[0:NAME_SIZE]))
        header_size = read_u32_le(data, 0x10)
        count = read_u32_le(data, 0x14)
        flags = read_u32_le(data, 0x18)

        table_end = TABLE_START + 4 * count
        if header_size < table_end or header_size > len(data):
            raise FormatError(
                f"header size {hex(header_size)} inconsistent with {count} entries "
                f"(table ends at {hex(table_end)}, file is {hex(len(data))})")

        keysounds = []
        for i in range(count):
            entry_off = read_u32_le(data, TABLE_START + 4 * i)
            keysounds.append(self._parse_entry(i, entry_off))

        return Archive(name, keysounds, flags)

    def _parse_entry(self, index, offset):
        data = self.data
        if offset + ENTRY_HEADER_MIN > len(data):
            raise FormatError(f"keysound {index}: entry at {hex(offset)} runs past end of archive")
        if data[offset:offset + 4] != ENTRY_MAGIC:
            raise FormatError(f"keysound {index}: bad magic {bytes(data[offset:offset + 4])!r} at {hex(offset)}")

        header_size = read_u32_le(data, offset + 0x04)
        payload_size = read_u32_le(data, offset + 0x08)
        track_id = read_u16_le(data, offset + 0x0E)
        format_flag = read_u16_le(data, offset + 0x10)
        attenuation = read_u16_le(data, offset + 0x12)
        loop_point = read_u32_le(data, offset + 0x14)

        payload_start = offset + header_size
        payload_end = payload_start + payload_size
        if header_size < ENTRY_HEADER_MIN or payload_end > len(data):
            raise FormatError(
                f"keysound {index}: payload {hex(payload_start)}-{hex(payload_end)} "
                f"outside archive of {hex(len(data))} bytes")

        wav = parse_riff_wave(data[payload_start:payload_end], index)
        return KeysoundRecord(
            index=index,
            compressed_data=wav['data'],
            sample_rate=wav['sample_rate'],
            channels=wav['channels'],
            block_align=wav['block_align'],
            format_flag=format_flag,
            track_id=track_id,
            attenuation=attenuation,
            loop_point=loop_point,
        )


def parse_riff_wave(payload, index=0):
    """
    Walks the RIFF chunks of an embedded WAV and returns its fmt fields plus the raw
    'data' chunk. Only MS ADPCM payloads are accepted.
    """
    if len(payload) < 12 or payload[0:4] != b'RIFF' or payload[8:12] != b'WAVE':
        raise FormatError(f"keysound {index}: payload is not a RIFF/WAVE file")

    fmt = None
    body = None
    pos = 12
    while pos + 8 <= len(payload):
        tag = bytes(payload[pos:pos + 4])
        size = read_u32_le(payload, pos + 4)
        start = pos + 8
        if start + size > len(payload):
            raise FormatError(f"keysound {index}: chunk {tag!r} runs past end of payload")

        if tag == b'fmt ':
            if size < 16:
                raise FormatError(f"keysound {index}: fmt chunk too short ({size} bytes)")
            fmt = {
                'format_tag': read_u16_le(payload, start),
                'channels': read_u16_le(payload, start + 2),
                'sample_rate': read_u32_le(payload, start + 4),
                'block_align': read_u16_le(payload, start + 12),
            }
        elif tag == b'data':
            body = bytes(payload[start:start + size])

        # RIFF chunks are padded to even length
        pos = start + size + (size & 1)

    if fmt is None or body is None:
        raise FormatError(f"keysound {index}: missing {'fmt ' if fmt is None else 'data'} chunk")
    if fmt['format_tag'] != WAVE_FORMAT_MSADPCM:
        raise FormatError(f"keysound {index}: unsupported wave format tag {fmt['format_tag']}")

    fmt['data'] = body
    return fmt


def parse_archive(data):
    return TwoDxParser(data).parse()
