"""Streams that spread one request over several layers of backends."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .request import Request
from .response import Response
from .streams import AsyncReadAll, AsyncWriteAll

log = logging.getLogger(__name__)

# A rebuilt multi-get buffer larger than this is dropped rather than reused.
REQUEST_BUFF_MAX_LEN = 5000


class _LayerWriter:
    """Writes the current request to the first layer, from the current one on, that takes it."""

    _layers: list[Any]
    _idx: int
    _request: Request

    _write_error = "cannot write req to all resources"

    def _reset(self) -> None:
        self._idx = 0

    async def _write_current(self) -> None:
        while self._idx < len(self._layers):
            try:
                await self._layers[self._idx].write(self._request)
                return
            except OSError as exc:
                log.warning("write req failed: %r", exc)
                self._idx += 1
        self._reset()
        raise ConnectionError(self._write_error)


class AsyncGetSync(_LayerWriter, AsyncReadAll, AsyncWriteAll):
    """Reads through the layers in order until one of them has the key."""

    def __init__(self, layers: Sequence[Any], parser: Any) -> None:
        self._layers = list(layers)
        self._parser = parser
        self._idx = 0
        self._request = Request()
        self._empty: Response | None = None

    def _keep_empty(self, response: Response | None) -> None:
        if self._empty is not None:
            self._empty.close()
        self._empty = response

    def _reset(self) -> None:
        self._idx = 0

    async def write(self, request: Request) -> None:
        self._request = request
        await self._write_current()

    async def read(self) -> Response:
        try:
            while self._idx < len(self._layers):
                try:
                    item = await self._layers[self._idx].read()
                except OSError as exc:
                    log.debug("get_sync: read found err: %r", exc)
                else:
                    if self._parser.response_found(item):
                        self._keep_empty(None)
                        return item
                    self._keep_empty(item)
                if self._idx + 1 >= len(self._layers):
                    break
                self._idx += 1
                await self._write_current()
        except BaseException:
            self._keep_empty(None)
            raise
        finally:
            self._reset()
        empty, self._empty = self._empty, None
        if empty is None:
            raise OSError("not found key")
        return empty


class AsyncMultiGet(_LayerWriter, AsyncReadAll, AsyncWriteAll):
    """Sends a multi-get through the layers, asking each one only for keys still missing."""

    _write_error = "cannot write multi-reqs to all resources"

    def __init__(self, layers: Sequence[Any], parser: Any) -> None:
        self._layers = list(layers)
        self._parser = parser
        self._idx = 0
        self._request = Request()
        self._response: Response | None = None

    def _reset(self) -> None:
        self._idx = 0
        if self._response is not None:
            self._response.close()
        self._response = None

    async def write(self, request: Request) -> None:
        self._request = request
        await self._write_current()

    async def read(self) -> Response:
        last_err: OSError | None = None
        while self._idx < len(self._layers):
            found_keys: list[str] = []
            try:
                item = await self._layers[self._idx].read()
            except OSError as exc:
                log.warning("get-multi found err: %r", exc)
                last_err = exc
            else:
                found_keys = self._parser.scan_response_keys(item)
                if self._response is None:
                    self._response = item
                else:
                    self._response.append(item)

            self._idx += 1
            if self._idx >= len(self._layers):
                break

            if found_keys:
                rebuilt = self._parser.rebuild_get_multi_request(self._request, found_keys)
                if not rebuilt:
                    break
                self._request = Request(rebuilt, self._request.id)
                log.debug("rebuild req for get-multi: %r", rebuilt)

            try:
                await self._write_current()
            except OSError as exc:
                log.warning("found err when resend layer request: %r", exc)
                last_err = exc
                break

        response, self._response = self._response, None
        self._reset()
        if response is not None:
            return response
        raise last_err if last_err is not None else OSError("all poll read failed")


class AsyncSetSync(AsyncReadAll, AsyncWriteAll):
    """Writes to the master and copies the write, without reply, to every follower.

    A failed master write fails the request; follower failures are ignored.
    """

    def __init__(self, master: Any, followers: Sequence[Any], parser: Any) -> None:
        self._master = master
        self._followers = list(followers)
        self._parser = parser
        self._master_done = False
        self._noreply: Request | None = None

    async def write(self, request: Request) -> None:
        if not self._master_done:
            await self._master.write(request)
            self._master_done = True
            if self._followers:
                self._noreply = self._parser.copy_noreply(request)
        if self._followers and self._noreply is not None:
            for idx, follower in enumerate(self._followers):
                try:
                    await follower.write(self._noreply)
                except OSError as exc:
                    log.warning("write follower failed idx:%d err:%r", idx, exc)

    async def read(self) -> Response:
        has_response = self._noreply is None or not self._noreply.noreply
        if has_response:
            for follower in self._followers:
                try:
                    (await follower.read()).close()
                except OSError as exc:
                    log.error("set_sync: poll followers failed. %r", exc)
        response = await self._master.read()
        self._master_done = False
        return response