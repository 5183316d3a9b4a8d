import pytest

from mcrelay.request import Request
from mcrelay.streams import (
    AsyncReadAll,
    AsyncWriteAll,
    NotConnected,
)


@pytest.mark.asyncio
async def test_not_connected_write_fails():
    stream = NotConnected()
    with pytest.raises(ConnectionError, match="write to an unconnected stream"):
        await stream.write(Request(b"\x80\x00"))


@pytest.mark.asyncio
async def test_not_connected_read_fails():
    stream = NotConnected()
    with pytest.raises(ConnectionError, match="read from an unconnected stream"):
        await stream.read()


@pytest.mark.asyncio
async def test_not_connected_errors_are_os_errors():
    stream = NotConnected()
    with pytest.raises(OSError):
        await stream.read()
    assert isinstance(stream, AsyncReadAll) and isinstance(stream, AsyncWriteAll)


@pytest.mark.asyncio
async def test_not_connected_fails_every_time():
    stream = NotConnected()
    messages = []
    for _ in range(2):
        with pytest.raises(ConnectionError) as info:
            await stream.write(Request(b"\x80\x01"))
        messages.append(str(info.value))
    assert messages[0] == messages[1]
    assert "unconnected" in messages[0]