"""
pop'n music chart (.bin) parser.

A chart is a flat list of 8-byte little-endian event records:

    +0  u32  offset in milliseconds
    +4  u8   flags (unused here)
    +5  u8   event kind
    +6  u16  value

Newer charts put a metadata block in front of the records; its length is the u32 at
byte 0. Which layout a chart uses is not recorded in the chart itself, it comes from
the archive it ships with.

Only events that make a sound are kept. Note events do not name a keysound, they play
whatever was last assigned to their lane by a sample event, so lane assignments are
tracked while walking the file.
"""

import collections
import enum
import struct

from popntowav.errors import FormatError

RECORD_SIZE = 8

EVENT_NOTE = 0x01
EVENT_SAMPLE = 0x02
EVENT_BG = 0x03
EVENT_BPM = 0x04
EVENT_METER = 0x05
EVENT_BGM_START = 0x07
EVENT_JUDGE = 0x08
EVENT_MEASURE = 0x0A

KEYSOUND_MASK = 0x0FFF

PlayEvent = collections.namedtuple('PlayEvent', ['offset_ms', 'keysound_index'])


class ChartLayout(enum.Enum):
    LEGACY = "legacy"      # records start at byte 0
    EXTENDED = "extended"  # leading metadata block, length at byte 0


class PopnChart:
    def __init__(self, data, layout=ChartLayout.EXTENDED):
        self.data = data
        self.layout = layout
        self.offset = 0
        self.play_events = []
        self.lane_keysounds = {}
        self.skipped = collections.Counter()

    def _read_u8(self):
        val = self.data[self.offset]
        self.offset += 1
        return val

    def _read_u16(self):
        val = struct.unpack_from('<H', self.data, self.offset)[0]
        self.offset += 2
        return val

    def _read_u32(self):
        val = struct.unpack_from('<I', self.data, self.offset)[0]
        self.offset += 4
        return val

    def stream_start(self):
        if self.layout is ChartLayout.LEGACY:
            return 0
        if len(self.data) < 4:
            raise FormatError(f"chart of {len(self.data)} bytes has no room for its metadata length")
        start = struct.unpack_from('<I', self.data, 0)[0]
        if start < 4 or start > len(self.data):
            raise FormatError(f"event stream offset {hex(start)} outside chart of {hex(len(self.data))} bytes")
        return start

    def parse(self):
        start = self.stream_start()
        remaining = len(self.data) - start
        if remaining % RECORD_SIZE:
            raise FormatError(
                f"truncated record: {remaining} bytes of events is not a multiple of {RECORD_SIZE}")

        self.offset = start
        self.play_events = []
        self.lane_keysounds = {}
        self.skipped = collections.Counter()

        while self.offset < len(self.data):
            offset_ms = self._read_u32()
            self._read_u8()  # flags
            kind = self._read_u8()
            value = self._read_u16()

            if kind == EVENT_NOTE:
                lane = value & 0xFF
                keysound = self.lane_keysounds.get(lane)
                if keysound is None:
                    self.skipped['unassigned_note'] += 1
                    continue
                self.play_events.append(PlayEvent(offset_ms, keysound))

            elif kind == EVENT_SAMPLE:
                self.lane_keysounds[value >> 12] = value & KEYSOUND_MASK

            elif kind in (EVENT_BG, EVENT_BGM_START):
                self.play_events.append(PlayEvent(offset_ms, value & KEYSOUND_MASK))

            else:
                # Tempo, meter, judge, measure lines... timing/visual only
                self.skipped[kind] += 1

        return self.play_events


def parse_chart(data, layout):
    """Returns the chart's PlayEvents in file order."""
    return PopnChart(data, layout).parse()
