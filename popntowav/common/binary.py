import struct

from popntowav.errors import FormatError


def read_u16_le(data, offset=0):
    _check(data, offset, 2)
    return struct.unpack_from('<H', data, offset)[0]

def read_u32_le(data, offset=0):
    _check(data, offset, 4)
    return struct.unpack_from('<I', data, offset)[0]

def cstring(field):
    """
    Logical contents of a fixed-width, null-padded byte field:
    everything before the first zero byte (the whole field if there is none).
    """
    end = field.find(b'\x00')
    if end < 0:
        return bytes(field)
    return bytes(field[:end])

def _check(data, offset, size):
    if offset < 0 or offset + size > len(data):
        raise FormatError(f"read of {size} bytes at {hex(offset)} runs past end of data ({hex(len(data))})")
