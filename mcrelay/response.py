"""Responses read from backends, and the reader that streams them to a client."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Protocol

from .request import RequestId

log = logging.getLogger(__name__)

OnDone = Callable[["ResponseData"], None]


class _EofParser(Protocol):
    def trim_eof(self, response: Any) -> int: ...


@dataclass
class ResponseData:
    """One response as received from a backend."""

    data: bytes
    rid: RequestId
    seq: int


class _Item:
    """A response part whose unread bytes shrink as it is consumed."""

    __slots__ = ("response", "payload", "_on_done")

    def __init__(self, response: ResponseData, on_done: OnDone | None) -> None:
        self.response = response
        self.payload = bytes(response.data)
        self._on_done = on_done

    @property
    def available(self) -> int:
        return len(self.payload)

    def take(self) -> bytes:
        payload, self.payload = self.payload, b""
        return payload

    def release(self) -> None:
        callback, self._on_done = self._on_done, None
        if callback is not None:
            callback(self.response)


def _release_all(items: list[_Item]) -> None:
    for item in items:
        item.release()


class Response:
    """A response made of one or more backend parts.

    ``on_done`` is called with each part's data once the part is released,
    so the backend can reuse its slot.
    """

    def __init__(self, data: ResponseData, on_done: OnDone | None = None) -> None:
        self._items = [_Item(data, on_done)]

    def append(self, other: Response) -> None:
        """Move the parts of ``other`` to the end of this response."""
        self._items.extend(other._items)
        other._items = []

    def cut_tail(self, tail_size: int) -> bool:
        """Remove the end marker from the last part; False if that is impossible."""
        if not self._items:
            log.debug("no tail to cut")
            return False
        last = self._items[-1]
        last_len = last.available
        if last_len > tail_size:
            last.payload = last.payload[: last_len - tail_size]
            log.debug("cut tail/%d from len/%d", tail_size, last_len)
        elif last_len < tail_size:
            log.debug("found malformed response when cut tail with size/%d", tail_size)
            return False
        else:
            # The last part held nothing but the marker.
            self._items.pop().release()
            log.debug("cut an empty resp")
        return True

    def into_reader(self, parser: _EofParser) -> ResponseReader:
        """Hand the parts over to a reader that yields the bytes to send."""
        items, self._items = self._items, []
        return ResponseReader(items, parser)

    def close(self) -> None:
        """Release every part still held."""
        items, self._items = self._items, []
        _release_all(items)

    def __enter__(self) -> Response:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        return sum(item.available for item in self._items)

    def __bytes__(self) -> bytes:
        """Unread bytes of the last part, which carries the status."""
        if not self._items:
            raise ValueError("response holds no parts")
        return self._items[-1].payload


class ResponseReader(Iterator[bytes]):
    """Yields the parts of a response, without the end markers between them."""

    def __init__(self, items: list[_Item], parser: _EofParser) -> None:
        self._items = items
        self._parser = parser
        self._idx = 0

    def available(self) -> int:
        """Bytes left to read."""
        return sum(item.available for item in self._items[self._idx :])

    def __iter__(self) -> ResponseReader:
        return self

    def __next__(self) -> bytes:
        last = len(self._items) - 1
        while self._idx <= last:
            item = self._items[self._idx]
            eof = self._parser.trim_eof(item.payload)
            avail = item.available
            if avail > 0:
                if self._idx < last:
                    if avail > eof:
                        data = item.take()
                        return data[: len(data) - eof] if eof else data
                else:
                    return item.take()
            self._idx += 1
        self.close()
        raise StopIteration

    def close(self) -> None:
        """Release every part held by the reader."""
        items, self._items = self._items, []
        self._idx = 0
        _release_all(items)