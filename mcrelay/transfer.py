"""Ping-pong copying between a client connection and a backend agent."""

from __future__ import annotations

import logging
from typing import Any

from .metric import IoMetric
from .request import MAX_REQUEST_SIZE, Request, RequestId

log = logging.getLogger(__name__)

INITIAL_CAPACITY = 2048


class RequestTooLarge(ValueError):
    """Raised when a client request grows past the maximum request size."""


class Receiver:
    """Reads client bytes until one complete request can be handed to the agent."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self._cap = INITIAL_CAPACITY

    def _parsed_end(self, parser: Any) -> int | None:
        if not self._buf:
            return None
        done, end = parser.parse_request(self._buf)
        return end if done else None

    def _grow(self) -> None:
        if self._cap >= MAX_REQUEST_SIZE:
            raise RequestTooLarge("max request size limited: 1mb")
        self._cap = min(self._cap * 2, MAX_REQUEST_SIZE)

    async def copy_one(
        self,
        reader: Any,
        agent: Any,
        parser: Any,
        rid: RequestId,
        metric: IoMetric,
    ) -> None:
        """Forward the next request to ``agent``.

        At end of input nothing is forwarded and ``metric.req_bytes`` is 0.
        """
        end = self._parsed_end(parser)
        if end is not None:
            # A pipelined request was already buffered.
            metric.req_received(0)
        while end is None:
            if len(self._buf) >= self._cap:
                self._grow()
            chunk = await reader.read(self._cap - len(self._buf))
            if not chunk:
                if self._buf:
                    log.warning("io-receiver: eof, but %d bytes left.", len(self._buf))
                metric.reset()
                return
            log.debug("io-receiver: %d bytes received. %r", len(chunk), rid)
            self._buf += chunk
            metric.req_received(len(chunk))
            end = self._parsed_end(parser)

        request = Request(bytes(self._buf[:end]), rid)
        metric.req_done(parser.operation(request), len(request))
        await agent.write(request)
        del self._buf[:end]


class Sender:
    """Reads one response from the agent and writes it to the client."""

    async def copy_one(
        self,
        agent: Any,
        writer: Any,
        parser: Any,
        rid: RequestId,
        metric: IoMetric,
    ) -> None:
        """Copy the next response to ``writer``, releasing it before waiting on the client."""
        log.debug("io-sender: poll response from agent. %r", rid)
        response = await agent.read()
        metric.response_ready()
        reader = response.into_reader(parser)
        try:
            chunks = list(reader)
        finally:
            reader.close()
        for chunk in chunks:
            writer.write(chunk)
            metric.response_sent(len(chunk))
        await writer.drain()


async def copy_bidirectional(
    agent: Any,
    reader: Any,
    writer: Any,
    parser: Any,
    session_id: int,
    metric_id: int,
) -> tuple[int, int]:
    """Relay requests from ``reader`` to ``agent`` and responses back to ``writer``.

    Runs one request at a time until the client closes its side.
    """
    log.debug("a new connection received.")
    receiver = Receiver()
    sender = Sender()
    rid = RequestId(session_id, 0)
    metric = IoMetric(metric_id)
    while True:
        await receiver.copy_one(reader, agent, parser, rid, metric)
        if metric.req_bytes == 0:
            log.debug("io-transfer: no request %r", rid)
            break
        await sender.copy_one(agent, writer, parser, rid, metric)
        metric.response_done()
        log.debug(
            "io-transfer: %s service:%d duration:%.6f tx:%d rx:%d",
            metric.op.label(),
            metric.metric_id,
            metric.duration(),
            metric.resp_bytes,
            metric.req_bytes,
        )
        rid.incr()
        metric.reset()
    return 0, 0