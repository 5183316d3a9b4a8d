"""The memcache binary protocol: framing, routing and multi-get helpers."""

from __future__ import annotations

import enum
import struct
from collections.abc import Iterable
from typing import Any

from .request import Request

HEADER_LEN = 24
MAX_SENT_BUFFER_SIZE = 1024 * 1024

REQUEST_MAGIC = 0x80
RESPONSE_MAGIC = 0x81
OP_CODE_NOOP = 0x0A

_TABLE_SIZE = 128

# Index of the command class (get, gets, store, meta) for every op code.
_COMMAND_IDX = bytes([0, 2, 2, 2, 2, 2, 2, 3, 3, 1, 1, 3, 0, 1]) + bytes(
    _TABLE_SIZE - 14
)

# The noreply op code that corresponds to every op code.
_NOREPLY_MAPPING = (
    bytes(
        [
            0x09, 0x11, 0x12, 0x13, 0x14, 0x15, 0x16, 0x17,
            0x18, 0x09, 0x0A, 0x0B, 0x0D, 0x0D, 0x19, 0x1A,
            0x10, 0x11, 0x12, 0x13, 0x14, 0x15, 0x16, 0x17,
            0x18, 0x19, 0x1A, 0x1B, 0x1C, 0x1D, 0x1E, 0x1F,
            0x20, 0x21, 0x22, 0x23, 0x24, 0x25, 0x26, 0x27,
            0x28, 0x29, 0x2A, 0x2B, 0x2C, 0x2D, 0x2E, 0x2F,
            0x30, 0x32, 0x32, 0x34, 0x34, 0x36, 0x36, 0x38,
            0x38, 0x3A, 0x3A, 0x3C, 0x3C, 0x3D, 0x3E, 0x3F,
        ]
    )
    + bytes(range(0x41, 0x48))
    + bytes(_TABLE_SIZE - 71)
)

# getq (0x09) and getkq (0x0d) make up the body of a multi-get.
_MULTI_GETS = frozenset({0x09, 0x0D})

_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")


class ProtocolError(ValueError):
    """Raised for data that is not valid memcache binary protocol."""


class MetaType(enum.Enum):
    VERSION = "version"


class Operation(enum.IntEnum):
    GET = 0
    GETS = 1
    STORE = 2
    META = 3
    OTHER = 4

    @classmethod
    def from_route(cls, op: int) -> Operation:
        """Map a route index to its operation; unknown indexes are OTHER."""
        try:
            return cls(op) if op < cls.OTHER else cls.OTHER
        except ValueError:
            return cls.OTHER

    def label(self) -> str:
        """Name used when reporting metrics for this operation."""
        return _OP_LABELS[self]


_OP_LABELS = {
    Operation.GET: "get",
    Operation.GETS: "mget",
    Operation.STORE: "store",
    Operation.META: "meta",
    Operation.OTHER: "other",
}


def _raw(data: Any) -> bytes:
    if isinstance(data, Request):
        return data.data
    return bytes(data)


def _lookup(table: bytes, op_code: int) -> int:
    if not 0 <= op_code < len(table):
        raise ProtocolError(f"unknown op code {op_code:#x}")
    return table[op_code]


def body_len(header: bytes) -> int:
    """Total body length stored in a packet header."""
    if len(header) < 12:
        raise ProtocolError("header too short to hold the body length")
    return _U32.unpack_from(header, 8)[0]


def protocol_from_name(name: str) -> MemcacheBinary | None:
    """Return the protocol registered under ``name``, or None."""
    if name in ("mc", "memcache", "memcached"):
        return MemcacheBinary()
    return None


class MemcacheBinary:
    """Parser and helpers for the memcache binary protocol."""

    @staticmethod
    def _is_multi_get(op_code: int) -> bool:
        return op_code in _MULTI_GETS

    def _probe_request(self, req: bytes) -> tuple[bool, int]:
        read = 0
        while read + HEADER_LEN <= len(req):
            total = body_len(req[read:]) + HEADER_LEN
            if read + total > len(req):
                return False, len(req)
            op_code = req[read + 1]
            read += total
            # Quiet gets belong to a multi-get that goes on until a closing packet.
            if not self._is_multi_get(op_code):
                return True, read
        return False, len(req)

    def parse_request(self, req: Any) -> tuple[bool, int]:
        """Return whether ``req`` holds a complete request, and where it ends."""
        data = _raw(req)
        if not data or data[0] != REQUEST_MAGIC:
            raise ProtocolError(
                "not a valid protocol, the magic number must be 0x80 on mc binary protocol"
            )
        if len(data) < HEADER_LEN:
            return False, len(data)
        return self._probe_request(data)

    def copy_noreply(self, req: Request) -> Request:
        """Return a version of ``req`` whose op code asks for no reply."""
        if req.noreply:
            return req
        data = req.data
        if len(data) < HEADER_LEN:
            raise ProtocolError("request shorter than a header")
        mapped = _lookup(_NOREPLY_MAPPING, data[1])
        if data[1] == mapped:
            return req.with_noreply()
        patched = bytearray(data)
        patched[1] = mapped
        return Request(bytes(patched), req.id, noreply=True)

    def op_route(self, req: Any) -> int:
        """Route index of a complete request: 0 get, 1 gets, 2 store, 3 meta."""
        data = _raw(req)
        if len(data) < 2:
            raise ProtocolError("request too short to hold an op code")
        return _lookup(_COMMAND_IDX, data[1])

    def operation(self, req: Any) -> Operation:
        return Operation.from_route(self.op_route(req))

    def meta_type(self, req: Any) -> MetaType:
        return MetaType.VERSION

    def key(self, req: Any) -> bytes:
        """The key carried by a request."""
        data = _raw(req)
        if len(data) < HEADER_LEN:
            raise ProtocolError("request shorter than a header")
        offset = data[4] + HEADER_LEN
        key_len = _U16.unpack_from(data, 2)[0]
        if offset + key_len > len(data):
            raise ProtocolError("key runs past the end of the request")
        return data[offset : offset + key_len]

    def trim_eof(self, response: Any) -> int:
        """Length of the end marker that closes a multi-get response."""
        return HEADER_LEN

    def response_found(self, response: Any) -> bool:
        """True when the response status reports success."""
        data = _raw(response)
        if len(data) < HEADER_LEN:
            raise ProtocolError("response shorter than a header")
        return data[6] == 0 and data[7] == 0

    def parse_response(self, response: Any) -> tuple[bool, int]:
        """Return whether a complete response is present, and its length."""
        data = _raw(response)
        avail = len(data)
        read = 0
        while True:
            if avail < read + HEADER_LEN:
                return False, avail
            length = _U32.unpack_from(data, read + 8)[0] + HEADER_LEN
            if self._is_multi_get(data[read + 1]):
                read += length
                continue
            end = read + length
            return avail >= end, end

    def scan_response_keys(self, response: Any) -> list[str]:
        """Keys found in a multi-get response, up to its closing noop."""
        data = _raw(response)
        avail = len(data)
        keys: list[str] = []
        read = 0
        while avail >= read + HEADER_LEN:
            if data[read + 1] == OP_CODE_NOOP:
                break
            length = _U32.unpack_from(data, read + 8)[0] + HEADER_LEN
            key_len = _U16.unpack_from(data, read + 2)[0]
            start = read + HEADER_LEN + data[read + 4]
            keys.append(data[start : start + key_len].decode("utf-8", errors="replace"))
            read += length
            if read == avail:
                break
        return keys

    def rebuild_get_multi_request(self, current: Any, found_keys: Iterable[str]) -> bytes:
        """Drop the commands for keys already found; empty when all were found."""
        origin = _raw(current)
        found = set(found_keys)
        rebuilt = bytearray()
        read = 0
        while True:
            if read + HEADER_LEN > len(origin):
                raise ProtocolError("multi-get request does not end with a noop")
            if origin[read + 1] == OP_CODE_NOOP:
                if not rebuilt:
                    return b""
                rebuilt += origin[read : read + HEADER_LEN]
                return bytes(rebuilt)
            length = _U32.unpack_from(origin, read + 8)[0] + HEADER_LEN
            key_len = _U16.unpack_from(origin, read + 2)[0]
            start = read + HEADER_LEN + origin[read + 4]
            try:
                key = origin[start : start + key_len].decode("utf-8")
            except UnicodeDecodeError:
                key = ""
            if key not in found:
                rebuilt += origin[read : read + length]
            read += length

    def tail_size_for_multi_get(self) -> int:
        return HEADER_LEN