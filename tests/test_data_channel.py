import asyncio

import pytest

from roomdrop.core.exceptions import ChannelError
from roomdrop.webrtc.data_channel import DataChannelManager, PeerChannel
from tests.fakes import FakeDataChannel


@pytest.mark.parametrize("options", [
    {"ordered": False},
    {"max_retransmits": 0},
    {"max_packet_life_time": 500},
])
async def test_unreliable_or_unordered_channels_are_rejected(options):
    with pytest.raises(ChannelError):
        PeerChannel("b", FakeDataChannel(**options))


async def test_send_requires_open_channel():
    channel = PeerChannel("b", FakeDataChannel())

    with pytest.raises(ChannelError):
        await channel.send(b"data")


async def test_send_waits_for_buffer_to_drain():
    raw = FakeDataChannel(ready_state="open")
    raw.buffer_growth = 100
    channel = PeerChannel("b", raw, buffered_amount_high=150)

    await channel.send(b"first")
    pending = asyncio.ensure_future(channel.send(b"second"))
    await asyncio.sleep(0)

    assert not pending.done()
    assert raw.sent == [b"first", b"second"]
    assert raw.bufferedAmountLowThreshold == 75

    raw.drain()
    await asyncio.wait_for(pending, timeout=1)


async def test_close_while_waiting_raises():
    raw = FakeDataChannel(ready_state="open")
    raw.buffer_growth = 1000
    channel = PeerChannel("b", raw, buffered_amount_high=10)

    pending = asyncio.ensure_future(channel.send(b"x"))
    await asyncio.sleep(0)
    raw.close()

    with pytest.raises(ChannelError):
        await asyncio.wait_for(pending, timeout=1)


async def test_manager_calls_close_handler_once():
    manager = DataChannelManager()
    raw = FakeDataChannel(ready_state="open")
    closed = []
    manager.add_channel(PeerChannel("b", raw), close_handler=lambda: closed.append("b"))

    raw.close()
    raw.close()

    assert closed == ["b"]
    assert manager.get_channel("b") is None
    assert manager.get_channel_count() == 0


async def test_manager_reports_channel_info():
    manager = DataChannelManager()
    manager.add_channel(PeerChannel("b", FakeDataChannel(ready_state="open")), close_handler=lambda: None)

    info = manager.get_channel_info("b")

    assert info["label"] == "file_transfer"
    assert info["ordered"] is True
    assert info["ready_state"] == "open"
    assert manager.get_channel_info("missing") is None


async def test_message_handler_errors_are_contained():
    manager = DataChannelManager()
    raw = FakeDataChannel(ready_state="open")
    manager.add_channel(PeerChannel("b", raw), close_handler=lambda: None)

    def explode(remote_id, message):
        raise RuntimeError("bad handler")

    manager.set_message_handler(explode)

    await raw.fire("message", "hello")
