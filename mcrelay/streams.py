"""Interfaces shared by every stream that carries requests to backends."""

from __future__ import annotations

import abc

from .request import Request
from .response import Response

MAX_CONNECTIONS = 256


class AsyncReadAll(abc.ABC):
    """A stream that returns one complete response at a time."""

    @abc.abstractmethod
    async def read(self) -> Response:
        """Return the next complete response, or raise an OSError."""


class AsyncWriteAll(abc.ABC):
    """A stream that accepts one complete request at a time.

    A write either sends the whole request or raises; it never sends part of it.
    """

    @abc.abstractmethod
    async def write(self, request: Request) -> None:
        """Send ``request`` whole, or raise an OSError."""


class Notify(abc.ABC):
    """Receives a signal when a stream goes away."""

    @abc.abstractmethod
    def notify(self) -> None:
        """Signal that the stream has ended."""


class NotConnected(AsyncReadAll, AsyncWriteAll):
    """A stand-in for a backend that has no connection: every call fails."""

    async def write(self, request: Request) -> None:
        raise ConnectionError("write to an unconnected stream")

    async def read(self) -> Response:
        raise ConnectionError("read from an unconnected stream")