"""Requests handed from a client connection to the backend streams."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

MAX_REQUEST_SIZE = 1024 * 1024


@dataclass
class RequestId:
    """Identifies a request by the client session and a running sequence number."""

    session_id: int = 0
    seq: int = 0

    def incr(self) -> None:
        """Advance to the next request of the same session."""
        self.seq += 1


@dataclass(frozen=True)
class Request:
    """One complete request in wire format, with its id and noreply flag."""

    data: bytes = b""
    id: RequestId = field(default_factory=RequestId)
    noreply: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        # The id is a value: later changes to the caller's id must not leak in.
        object.__setattr__(self, "id", replace(self.id))

    def with_noreply(self) -> Request:
        """Return a copy of this request that expects no reply."""
        return replace(self, noreply=True)

    def __len__(self) -> int:
        return len(self.data)