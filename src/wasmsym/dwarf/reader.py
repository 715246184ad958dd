"""
Bounds-checked cursor over module and DWARF section bytes.

All multi-byte values are little-endian, which is what WebAssembly producers
emit. Every read checks the remaining length first and raises
UnexpectedEndOfData instead of returning short data.
"""

import struct

from wasmsym.dwarf.exceptions import DwarfFormatError, MalformedVarint, UnexpectedEndOfData

_U16 = struct.Struct('<H')
_U32 = struct.Struct('<I')
_U64 = struct.Struct('<Q')
_S8 = struct.Struct('<b')
_S16 = struct.Struct('<h')
_S32 = struct.Struct('<i')
_S64 = struct.Struct('<q')


class ByteReader:
    """Cursor over a byte slice.

    Positions are absolute offsets into ``data`` so that offsets reported in
    errors match the section offsets a DWARF dump tool would show. ``end``
    bounds the readable window; a sub-reader narrows it to one unit.
    """

    def __init__(self, data: bytes, offset: int = 0, end: int | None = None,
                 section: str = '<data>'):
        self.data = data
        self.pos = offset
        self.end = len(data) if end is None else min(end, len(data))
        self.section = section

    @property
    def remaining(self) -> int:
        return max(0, self.end - self.pos)

    def at_end(self) -> bool:
        return self.pos >= self.end

    def _require(self, size: int):
        if size < 0 or self.pos + size > self.end:
            raise UnexpectedEndOfData(self.section, self.pos, size)

    def seek(self, offset: int):
        """Move to an absolute offset.

        Seeking exactly to the end is allowed; reading from there is not.
        """
        if offset < 0 or offset > self.end:
            raise UnexpectedEndOfData(self.section, offset, 0)
        self.pos = offset

    def skip(self, size: int):
        self._require(size)
        self.pos += size

    def sub_reader(self, length: int) -> 'ByteReader':
        """Return a reader over the next ``length`` bytes and skip past them."""
        self._require(length)
        sub = ByteReader(self.data, self.pos, self.pos + length, self.section)
        self.pos += length
        return sub

    def peek_u8(self) -> int:
        self._require(1)
        return self.data[self.pos]

    def read_bytes(self, size: int) -> bytes:
        self._require(size)
        value = bytes(self.data[self.pos:self.pos + size])
        self.pos += size
        return value

    def _unpack(self, fmt: struct.Struct) -> int:
        self._require(fmt.size)
        (value,) = fmt.unpack_from(self.data, self.pos)
        self.pos += fmt.size
        return value

    def u8(self) -> int:
        self._require(1)
        value = self.data[self.pos]
        self.pos += 1
        return value

    def u16(self) -> int:
        return self._unpack(_U16)

    def u24(self) -> int:
        self._require(3)
        value = int.from_bytes(self.data[self.pos:self.pos + 3], 'little')
        self.pos += 3
        return value

    def u32(self) -> int:
        return self._unpack(_U32)

    def u64(self) -> int:
        return self._unpack(_U64)

    def s8(self) -> int:
        return self._unpack(_S8)

    def s16(self) -> int:
        return self._unpack(_S16)

    def s32(self) -> int:
        return self._unpack(_S32)

    def s64(self) -> int:
        return self._unpack(_S64)

    def uint(self, size: int) -> int:
        """Read an unsigned integer of 1, 2, 4 or 8 bytes."""
        if size == 1:
            return self.u8()
        if size == 2:
            return self.u16()
        if size == 4:
            return self.u32()
        if size == 8:
            return self.u64()
        raise ValueError(f"Unsupported integer width: {size}")

    def uleb128(self, bits: int = 64) -> int:
        """Read an unsigned LEB128 value that must fit in ``bits`` bits."""
        start = self.pos
        result = 0
        shift = 0
        while True:
            if shift >= bits:
                raise MalformedVarint(self.section, start, bits)
            byte = self.u8()
            result |= (byte & 0x7f) << shift
            shift += 7
            if not byte & 0x80:
                break
        if result >> bits:
            raise MalformedVarint(self.section, start, bits)
        return result

    def sleb128(self, bits: int = 64) -> int:
        """Read a signed LEB128 value that must fit in ``bits`` bits."""
        start = self.pos
        result = 0
        shift = 0
        while True:
            if shift >= bits:
                raise MalformedVarint(self.section, start, bits)
            byte = self.u8()
            result |= (byte & 0x7f) << shift
            shift += 7
            if not byte & 0x80:
                break
        if byte & 0x40:
            result -= 1 << shift
        if not -(1 << (bits - 1)) <= result < (1 << (bits - 1)):
            raise MalformedVarint(self.section, start, bits)
        return result

    def cstring(self) -> str:
        """Read a null-terminated UTF-8 string."""
        terminator = self.data.find(b'\x00', self.pos, self.end)
        if terminator == -1:
            raise UnexpectedEndOfData(self.section, self.pos, self.end - self.pos + 1)
        value = bytes(self.data[self.pos:terminator]).decode('utf-8', errors='replace')
        self.pos = terminator + 1
        return value

    def address(self, size: int) -> int:
        return self.uint(size)

    def offset(self, offset_size: int) -> int:
        """Read a section offset (4 bytes in 32-bit DWARF, 8 in 64-bit)."""
        return self.uint(offset_size)

    def initial_length(self) -> tuple[int, int]:
        """Read a unit's initial length field.

        Returns:
            Tuple of (unit length, offset size in bytes)
        """
        length = self.u32()
        if length == 0xffffffff:
            return self.u64(), 8
        if length >= 0xfffffff0:
            raise DwarfFormatError(
                f"Reserved initial length 0x{length:x} in {self.section} "
                f"at offset 0x{self.pos - 4:x}"
            )
        return length, 4

