"""
Record envelope codec.

Every object body in the store, delta or snapshot, is one FileRecord wrapped
in a small self-describing binary envelope (big-endian):

    magic   4 bytes   b"RPR1"
    version u8        1
    flags   u8        bit 0: content is zstd-compressed
    nlen    u16       length of the UTF-8 name
    name    nlen bytes
    clen    u64       length of the stored content
    content clen bytes

The envelope carries the name so a record can be recovered from its body
alone, independent of the key it was stored under.
"""
from __future__ import annotations

import struct

import zstandard as zstd

from .errors import CorruptRecord, InvalidKey
from .records import FileRecord

__all__ = ["MAGIC", "VERSION", "FLAG_ZSTD", "encode_record", "decode_record"]

MAGIC = b"RPR1"
VERSION = 1
FLAG_ZSTD = 0x01
_KNOWN_FLAGS = FLAG_ZSTD

_HEADER = struct.Struct(">4sBBH")
_CLEN = struct.Struct(">Q")

# Fixed level so the same record always encodes to the same bytes
_ZSTD_LEVEL = 3


def encode_record(record: FileRecord, *, compress: bool = False) -> bytes:
    """
    Serialize a record into an envelope.

    Args:
        record: Record to encode
        compress: zstd-compress the content

    Returns:
        Envelope bytes
    """
    name = record.name.encode("utf-8")
    if len(name) > 0xFFFF:
        raise InvalidKey(f"record name too long ({len(name)} bytes)")

    flags = 0
    content = record.content
    if compress:
        content = zstd.ZstdCompressor(level=_ZSTD_LEVEL).compress(content)
        flags |= FLAG_ZSTD

    return b"".join((
        _HEADER.pack(MAGIC, VERSION, flags, len(name)),
        name,
        _CLEN.pack(len(content)),
        content,
    ))


def decode_record(data: bytes) -> FileRecord:
    """
    Parse an envelope back into a record.

    Args:
        data: Envelope bytes as fetched from the store

    Returns:
        Decoded record with byte-exact content

    Raises:
        CorruptRecord: If the bytes are not a well-formed envelope
    """
    view = memoryview(data)
    if len(view) < _HEADER.size:
        raise CorruptRecord(f"truncated header: {len(view)} bytes")

    magic, version, flags, nlen = _HEADER.unpack_from(view, 0)
    if magic != MAGIC:
        raise CorruptRecord(f"bad magic: {bytes(magic)!r}")
    if version != VERSION:
        raise CorruptRecord(f"unsupported envelope version: {version}")
    if flags & ~_KNOWN_FLAGS:
        raise CorruptRecord(f"unknown flags: {flags:#04x}")

    offset = _HEADER.size
    if len(view) < offset + nlen + _CLEN.size:
        raise CorruptRecord("truncated name or length prefix")

    try:
        name = bytes(view[offset:offset + nlen]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptRecord(f"name is not valid UTF-8: {e}") from e
    offset += nlen

    (clen,) = _CLEN.unpack_from(view, offset)
    offset += _CLEN.size
    if len(view) - offset < clen:
        raise CorruptRecord(f"truncated body: expected {clen} bytes, got {len(view) - offset}")
    if len(view) - offset > clen:
        raise CorruptRecord(f"{len(view) - offset - clen} trailing bytes after body")

    content = bytes(view[offset:offset + clen])
    if flags & FLAG_ZSTD:
        try:
            content = zstd.ZstdDecompressor().decompress(content)
        except zstd.ZstdError as e:
            raise CorruptRecord(f"zstd payload does not decompress: {e}") from e

    try:
        return FileRecord(name=name, content=content)
    except InvalidKey as e:
        raise CorruptRecord(f"invalid record name in envelope: {e}") from e
