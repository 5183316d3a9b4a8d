# mcrelay

Building blocks for a memcached binary-protocol proxy, written on `asyncio`.
The package has no third-party dependencies.

## What is in it

- **`mcrelay.protocol`**: `MemcacheBinary` parses the memcached binary protocol.
  - `parse_request` reports whether a buffer holds a complete request and where
    it ends. A multi-get made of quiet gets runs until its closing packet.
  - `op_route` and `operation` classify a request as `Operation.GET`, `GETS`,
    `STORE`, `META` or `OTHER`. `Operation.label()` returns the metric name
    (`"get"`, `"mget"`, `"store"`, `"meta"`, `"other"`).
  - `key` extracts a request's key.
  - `copy_noreply` returns a copy of a request with its op code changed to the
    quiet variant.
  - `parse_response` and `response_found` examine backend answers.
  - `scan_response_keys` lists the keys a multi-get response returned.
  - `rebuild_get_multi_request` drops the commands for keys that were already
    found. It returns `b""` when every key was found.

  `protocol_from_name("mc")` returns a parser, and so do `"memcache"` and
  `"memcached"`. Any other name gives `None`. Malformed data raises
  `ProtocolError`, a subclass of `ValueError`. This includes a request whose
  first byte is not the request magic `0x80`.
- **`mcrelay.request`**: `Request` is an immutable request with its bytes, a
  `RequestId` (session id and sequence number) and a noreply flag.
  `MAX_REQUEST_SIZE` is 1 MiB.
- **`mcrelay.response`**: `Response` holds one or more backend answers.
  - `append` merges another response into this one.
  - `cut_tail` removes an end marker from the last part.
  - `into_reader` returns a `ResponseReader`, which yields the bytes to send and
    drops the end markers between parts.

  Each part can carry a callback that runs when the part is released. Release
  happens through `close()`, the context manager, or when the reader is used up.
- **`mcrelay.streams`**: defines the stream interfaces `AsyncReadAll`
  (`async read()` returns one whole `Response`) and `AsyncWriteAll`
  (`async write(request)` sends a whole request or raises), plus `Notify`.
  `NotConnected` is a placeholder stream whose `read` and `write` both raise
  `ConnectionError`.
- **`mcrelay.layered`**: read-through and write-through layers.
  - `AsyncGetSync` tries each layer in turn until one reports a hit. If none
    does, it returns the last miss.
  - `AsyncMultiGet` sends a multi-get down the layers. Each later layer is asked
    only for the keys that are still missing, and the answers are merged.
  - `AsyncSetSync` writes to a master and copies the write, as noreply, to
    followers. A follower failure is logged and ignored.
- **`mcrelay.dispatch`**: choosing a backend.
  - `AsyncRoute` sends a request to the backend at its route index.
  - `AsyncOperation` wraps the stream used for one operation kind.
  - `AsyncSharding` picks a shard with `hasher(key) % len(shards)`. You supply
    the hasher callable.
  - `AsyncMultiGetSharding` sends to every shard and merges the answers. The
    write succeeds if at least one shard accepts it.
  - `MetaStream` answers meta requests such as version from the first backend
    that accepts the write.
- **`mcrelay.transfer`**: `copy_bidirectional(agent, reader, writer, parser,
  session_id, metric_id)` runs the ping-pong loop for one client connection,
  over an `asyncio.StreamReader` and `asyncio.StreamWriter`. It reads a whole
  request, passes it to the agent, writes the response back, and stops when
  the client closes.
  - `Receiver` does the request side. It raises `RequestTooLarge` when a
    request would grow past 1 MiB.
  - `Sender` does the response side.
- **`mcrelay.metric`**: `IoMetric` records timings and byte counts for each
  round trip. `copy_bidirectional` logs these figures at debug level.

## Install

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
import asyncio
from mcrelay.protocol import protocol_from_name
from mcrelay.layered import AsyncGetSync
from mcrelay.transfer import copy_bidirectional

parser = protocol_from_name("memcached")

async def handle(reader, writer, layers):
    agent = AsyncGetSync(layers, parser)
    await copy_bidirectional(agent, reader, writer, parser, session_id=1, metric_id=0)
```

Here `layers` is a list of objects with `async write(request)` and
`async read()` methods.

## What it does not do

mcrelay provides components only. It has:

- no command-line program;
- no listening server;
- no configuration or topology loading;
- no built-in key hash functions;
- no code that opens or reconnects connections to memcached backends.

To build a proxy you supply your own backend streams that implement
`AsyncReadAll`/`AsyncWriteAll`, combine them with the classes above, and
call `copy_bidirectional` from your own `asyncio` server.