"""Timing and size figures gathered for each request a client connection carries."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .protocol import Operation


@dataclass
class IoMetric:
    """Counters and timestamps of one request/response round trip.

    Timestamps come from ``clock``, in seconds.
    """

    metric_id: int = 0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)
    op: Operation = Operation.OTHER
    req_recv_num: int = 0
    req_bytes: int = 0
    resp_sent_num: int = 0
    resp_bytes: int = 0
    req_receive: float = field(init=False)
    req_done_at: float = field(init=False)
    resp_ready: float = field(init=False)
    resp_done: float = field(init=False)

    def __post_init__(self) -> None:
        now = self.clock()
        self.req_receive = now
        self.req_done_at = now
        self.resp_ready = now
        self.resp_done = now

    def reset(self) -> None:
        """Clear the counters; timestamps are overwritten on the next round trip."""
        self.req_recv_num = 0
        self.req_bytes = 0
        self.resp_sent_num = 0
        self.resp_bytes = 0

    def req_received(self, n: int) -> None:
        """Record one read of ``n`` bytes from the client."""
        if self.req_recv_num == 0:
            self.req_receive = self.clock()
        self.req_recv_num += 1

    def req_done(self, op: Operation, n: int) -> None:
        """Record that a complete request of ``n`` bytes was parsed."""
        self.req_done_at = self.clock()
        self.op = op
        self.req_bytes = n

    def response_ready(self) -> None:
        """Record that a response is ready to be sent."""
        if self.resp_sent_num == 0:
            self.resp_ready = self.clock()
        self.resp_sent_num += 1

    def response_sent(self, n: int) -> None:
        """Record that ``n`` bytes of the response went to the client."""
        self.resp_sent_num += 1
        self.resp_bytes += n

    def response_done(self) -> None:
        """Record that the whole response was sent."""
        self.resp_done = self.clock()
        # response_ready counted one send too many.
        self.resp_sent_num -= 1

    def duration(self) -> float:
        """Seconds from the first request byte to the end of the response."""
        return self.resp_done - self.req_receive