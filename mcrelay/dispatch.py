"""Streams that pick which backends a request goes to."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from .protocol import MetaType, Operation
from .request import Request
from .response import Response
from .streams import AsyncReadAll, AsyncWriteAll

log = logging.getLogger(__name__)

_NOT_INITED = "not connected, maybe topology not inited"


class MetaStream(AsyncReadAll, AsyncWriteAll):
    """Answers meta requests, such as version, from a single backend."""

    def __init__(self, parser: Any, instances: Sequence[Any]) -> None:
        self._parser = parser
        self._instances = list(instances)
        self._idx = 0

    async def write(self, request: Request) -> None:
        meta = self._parser.meta_type(request)
        if meta is MetaType.VERSION:
            # One backend is enough to answer.
            for idx, instance in enumerate(self._instances):
                await instance.write(request)
                self._idx = idx
                return
        raise OSError("all meta instance failed")

    async def read(self) -> Response:
        if not self._instances:
            raise ConnectionError(_NOT_INITED)
        return await self._instances[self._idx].read()


class AsyncMultiGetSharding(AsyncReadAll, AsyncWriteAll):
    """Sends a multi-get to every shard and merges what comes back.

    The write succeeds when at least one shard accepts the request.
    """

    def __init__(self, shards: Sequence[Any], parser: Any) -> None:
        self._shards = list(shards)
        self._parser = parser
        self._writes = [False] * len(self._shards)

    async def write(self, request: Request) -> None:
        success = False
        last_err: OSError | None = None
        for idx, shard in enumerate(self._shards):
            self._writes[idx] = False
            try:
                await shard.write(request)
            except OSError as exc:
                last_err = exc
            else:
                success = True
            self._writes[idx] = True
        if success:
            return
        raise last_err if last_err is not None else OSError("no request sent.")

    async def read(self) -> Response:
        last_err: OSError | None = None
        response: Response | None = None
        for written, shard in zip(self._writes, self._shards):
            if not written:
                continue
            try:
                item = await shard.read()
            except OSError as exc:
                last_err = exc
                continue
            if response is None:
                response = item
            else:
                response.append(item)
        if response is not None:
            return response
        raise last_err if last_err is not None else OSError("all poll read failed in layer")


class AsyncOperation(AsyncReadAll, AsyncWriteAll):
    """A stream chosen for one kind of operation: get, gets, store or meta."""

    _KINDS = frozenset({Operation.GET, Operation.GETS, Operation.STORE, Operation.META})

    def __init__(self, operation: Operation, stream: Any) -> None:
        if operation not in self._KINDS:
            raise ValueError(f"no stream kind for operation {operation!r}")
        self.operation = operation
        self.stream = stream

    async def write(self, request: Request) -> None:
        await self.stream.write(request)

    async def read(self) -> Response:
        return await self.stream.read()


class AsyncRoute(AsyncReadAll, AsyncWriteAll):
    """Sends each ping-pong request to the backend its operation routes to."""

    def __init__(self, backends: Sequence[Any], router: Any) -> None:
        self._backends = list(backends)
        self._router = router
        self._idx = 0

    async def write(self, request: Request) -> None:
        idx = self._router.op_route(request)
        if not 0 <= idx < len(self._backends):
            raise IndexError(f"no backend for route {idx}")
        self._idx = idx
        await self._backends[idx].write(request)

    async def read(self) -> Response:
        if not self._backends:
            raise ConnectionError(_NOT_INITED)
        return await self._backends[self._idx].read()


class AsyncSharding(AsyncReadAll, AsyncWriteAll):
    """Sends each request to the shard chosen by hashing its key."""

    def __init__(
        self, shards: Sequence[Any], hasher: Callable[[bytes], int], parser: Any
    ) -> None:
        self._shards = list(shards)
        self._hasher = hasher
        self._parser = parser
        self._idx = 0

    async def write(self, request: Request) -> None:
        if not self._shards:
            raise ConnectionError(_NOT_INITED)
        key = self._parser.key(request)
        self._idx = self._hasher(key) % len(self._shards)
        await self._shards[self._idx].write(request)

    async def read(self) -> Response:
        if not self._shards:
            raise ConnectionError(_NOT_INITED)
        return await self._shards[self._idx].read()