import struct

import pytest

from mcrelay.dispatch import (
    AsyncMultiGetSharding,
    AsyncOperation,
    AsyncRoute,
    AsyncSharding,
    MetaStream,
)
from mcrelay.protocol import MemcacheBinary, Operation
from mcrelay.request import Request, RequestId
from mcrelay.response import Response, ResponseData
from mcrelay.streams import AsyncReadAll, AsyncWriteAll, NotConnected


def packet(op, key=b"", magic=0x80, status=0):
    header = struct.pack(
        ">BBHBBHIIQ", magic, op, len(key), 0, 0, status, len(key), 0, 0
    )
    return header + key


class FakeBackend(AsyncReadAll, AsyncWriteAll):
    def __init__(self, reply=b"", fail_write=False, fail_read=False):
        self.reply = reply
        self.fail_write = fail_write
        self.fail_read = fail_read
        self.writes = []
        self.reads = 0

    async def write(self, request):
        if self.fail_write:
            raise ConnectionError("write failed")
        self.writes.append(request)

    async def read(self):
        self.reads += 1
        if self.fail_read:
            raise ConnectionError("read failed")
        return Response(ResponseData(self.reply, RequestId(), 0))


@pytest.mark.asyncio
async def test_meta_stream_uses_first_instance():
    first = FakeBackend(reply=packet(0x0B, magic=0x81))
    second = FakeBackend()
    stream = MetaStream(MemcacheBinary(), [first, second])
    req = Request(packet(0x0B))
    await stream.write(req)
    resp = await stream.read()
    assert first.writes == [req]
    assert second.writes == []
    assert bytes(resp) == packet(0x0B, magic=0x81)


@pytest.mark.asyncio
async def test_meta_stream_first_failure_propagates():
    stream = MetaStream(MemcacheBinary(), [NotConnected(), FakeBackend()])
    with pytest.raises(ConnectionError):
        await stream.write(Request(packet(0x0B)))


@pytest.mark.asyncio
async def test_meta_stream_without_instances():
    stream = MetaStream(MemcacheBinary(), [])
    with pytest.raises(OSError, match="all meta instance failed"):
        await stream.write(Request(packet(0x0B)))


@pytest.mark.asyncio
async def test_multi_get_sharding_merges_all_shards():
    a = FakeBackend(reply=packet(0x0D, b"a", magic=0x81))
    b = FakeBackend(reply=packet(0x0A, magic=0x81))
    stream = AsyncMultiGetSharding([a, b], MemcacheBinary())
    req = Request(packet(0x0D, b"a") + packet(0x0A))
    await stream.write(req)
    resp = await stream.read()
    assert a.writes == [req] and b.writes == [req]
    assert len(resp) == len(a.reply) + len(b.reply)


@pytest.mark.asyncio
async def test_multi_get_sharding_one_success_is_enough():
    good = FakeBackend(reply=packet(0x0A, magic=0x81))
    stream = AsyncMultiGetSharding([NotConnected(), good], MemcacheBinary())
    await stream.write(Request(packet(0x0A)))
    resp = await stream.read()
    assert bytes(resp) == good.reply


@pytest.mark.asyncio
async def test_multi_get_sharding_all_writes_fail():
    stream = AsyncMultiGetSharding([NotConnected(), NotConnected()], MemcacheBinary())
    with pytest.raises(ConnectionError, match="write to an unconnected stream"):
        await stream.write(Request(packet(0x0A)))


@pytest.mark.asyncio
async def test_multi_get_sharding_no_shards():
    stream = AsyncMultiGetSharding([], MemcacheBinary())
    with pytest.raises(OSError, match="no request sent."):
        await stream.write(Request(packet(0x0A)))


@pytest.mark.asyncio
async def test_multi_get_sharding_all_reads_fail():
    shard = FakeBackend(fail_read=True)
    stream = AsyncMultiGetSharding([shard], MemcacheBinary())
    await stream.write(Request(packet(0x0A)))
    with pytest.raises(ConnectionError, match="read failed"):
        await stream.read()


@pytest.mark.asyncio
async def test_operation_delegates_to_stream():
    inner = FakeBackend(reply=packet(0x00, magic=0x81))
    op = AsyncOperation(Operation.GET, inner)
    req = Request(packet(0x00, b"k"))
    await op.write(req)
    resp = await op.read()
    assert inner.writes == [req]
    assert bytes(resp) == inner.reply
    assert op.operation is Operation.GET


def test_operation_rejects_other():
    with pytest.raises(ValueError):
        AsyncOperation(Operation.OTHER, FakeBackend())


@pytest.mark.asyncio
async def test_route_by_operation():
    backends = [FakeBackend(reply=bytes([i]) * 24) for i in range(4)]
    route = AsyncRoute(backends, MemcacheBinary())
    get_req = Request(packet(0x00, b"k"))
    await route.write(get_req)
    resp = await route.read()
    assert backends[0].writes == [get_req]
    assert bytes(resp) == backends[0].reply

    set_req = Request(packet(0x01, b"k"))
    await route.write(set_req)
    resp = await route.read()
    assert backends[2].writes == [set_req]
    assert bytes(resp) == backends[2].reply


@pytest.mark.asyncio
async def test_route_missing_backend():
    route = AsyncRoute([FakeBackend()], MemcacheBinary())
    with pytest.raises(IndexError):
        await route.write(Request(packet(0x01, b"k")))


@pytest.mark.asyncio
async def test_sharding_hashes_key():
    seen = []

    def hasher(key):
        seen.append(key)
        return 1

    shards = [FakeBackend(reply=b"x" * 24), FakeBackend(reply=b"y" * 24)]
    sharding = AsyncSharding(shards, hasher, MemcacheBinary())
    req = Request(packet(0x00, b"foo"))
    await sharding.write(req)
    resp = await sharding.read()
    assert seen == [b"foo"]
    assert shards[1].writes == [req]
    assert shards[0].writes == []
    assert bytes(resp) == b"y" * 24


@pytest.mark.asyncio
async def test_sharding_wraps_hash_into_range():
    shards = [FakeBackend(), FakeBackend()]
    sharding = AsyncSharding(shards, lambda key: len(shards), MemcacheBinary())
    req = Request(packet(0x00, b"bar"))
    await sharding.write(req)
    assert shards[0].writes == [req]


@pytest.mark.asyncio
async def test_sharding_without_shards():
    sharding = AsyncSharding([], lambda key: 0, MemcacheBinary())
    with pytest.raises(ConnectionError, match="topology not inited"):
        await sharding.read()
    with pytest.raises(ConnectionError, match="topology not inited"):
        await sharding.write(Request(packet(0x00, b"k")))