from __future__ import annotations

import asyncio
import dataclasses

import pytest

from pydeltalink.config import LinkConfig
from pydeltalink.exceptions import TransportError
from pydeltalink.pipeline import encode
from pydeltalink.transport import DeltaLinkClient, UdpReceiver, UdpSender, _ReceiverProtocol

KEY = "12345678901234567890123456789012"
OTHER_KEY = "abcdefghijklmnopqrstuvwxyz123456"

RECORDS = [
    {
        "context": "vessels.urn:mrn:imo:mmsi:123456789",
        "updates": [
            {
                "timestamp": "2024-01-01T00:00:00.000Z",
                "values": [{"path": "propulsion.main.temperature", "value": 85.0}],
            }
        ],
    },
    {"context": "vessels.urn:mrn:imo:mmsi:987654321", "updates": []},
]


@pytest.mark.asyncio
async def test_handle_datagram_dispatches_each_record() -> None:
    received: list = []
    receiver = UdpReceiver(LinkConfig(secret_key=KEY), received.append)

    assert await receiver.handle_datagram(encode(RECORDS, KEY)) == 2
    assert received == RECORDS


@pytest.mark.asyncio
async def test_handle_datagram_drops_undecodable_payload(caplog) -> None:
    received: list = []
    receiver = UdpReceiver(LinkConfig(secret_key=KEY), received.append)

    with caplog.at_level("ERROR", logger="pydeltalink.transport"):
        assert await receiver.handle_datagram(b"garbage", ("10.0.0.1", 4446)) == 0

    assert received == []
    assert "Dropping datagram" in caplog.text


@pytest.mark.asyncio
async def test_send_before_start_raises() -> None:
    sender = UdpSender(LinkConfig(secret_key=KEY))
    with pytest.raises(TransportError, match="UDP socket not initialized"):
        await sender.send(RECORDS)


@pytest.mark.asyncio
async def test_loopback_send_and_receive() -> None:
    config = LinkConfig(secret_key=KEY, udp_address="127.0.0.1")
    got_all = asyncio.Event()
    received: list = []

    def on_record(record: dict) -> None:
        received.append(record)
        if len(received) == len(RECORDS):
            got_all.set()

    receiver = UdpReceiver(config, on_record, bind_address="127.0.0.1", port=0)
    await receiver.start()
    sender = UdpSender(dataclasses.replace(config, udp_port=receiver.port))
    await sender.start()
    try:
        sent = await sender.send(RECORDS)
        assert sent > 0
        await asyncio.wait_for(got_all.wait(), timeout=5)
    finally:
        sender.close()
        receiver.close()

    assert received == RECORDS


@pytest.mark.asyncio
async def test_receiver_with_other_key_drops_datagram() -> None:
    received: list = []
    receiver = UdpReceiver(LinkConfig(secret_key=OTHER_KEY), received.append)

    assert await receiver.handle_datagram(encode(RECORDS, KEY)) == 0

    assert received == []


@pytest.mark.asyncio
async def test_datagram_callback_schedules_decode() -> None:
    done = asyncio.Event()
    received: list = []

    def on_record(record: dict) -> None:
        received.append(record)
        if len(received) == len(RECORDS):
            done.set()

    receiver = UdpReceiver(LinkConfig(secret_key=KEY), on_record)
    protocol = _ReceiverProtocol(receiver)

    protocol.datagram_received(encode(RECORDS, KEY), ("127.0.0.1", 4446))
    assert received == []

    await asyncio.wait_for(done.wait(), timeout=5)
    assert received == RECORDS


@pytest.mark.asyncio
async def test_failing_record_handler_is_logged(caplog) -> None:
    def on_record(record: dict) -> None:
        raise RuntimeError("handler broke")

    receiver = UdpReceiver(LinkConfig(secret_key=KEY), on_record)
    protocol = _ReceiverProtocol(receiver)

    with caplog.at_level("ERROR", logger="pydeltalink.transport"):
        protocol.datagram_received(encode(RECORDS, KEY), ("127.0.0.1", 4446))
        await asyncio.gather(*receiver._pending, return_exceptions=True)
        await asyncio.sleep(0)

    assert "Record handler failed" in caplog.text


class _RecordingSender:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list = []
        self._fail = fail

    async def start(self) -> None:
        return None

    async def send(self, records: object) -> int:
        if self._fail:
            raise TransportError("link down")
        self.sent.append(records)
        return 1

    def close(self) -> None:
        return None


@pytest.mark.asyncio
async def test_client_flushes_buffered_deltas_over_udp() -> None:
    config = LinkConfig(secret_key=KEY, udp_address="127.0.0.1", delta_timer=20)
    got_all = asyncio.Event()
    received: list = []

    def on_record(record: dict) -> None:
        received.append(record)
        if len(received) == len(RECORDS):
            got_all.set()

    receiver = UdpReceiver(config, on_record, bind_address="127.0.0.1", port=0)
    await receiver.start()
    try:
        async with DeltaLinkClient(dataclasses.replace(config, udp_port=receiver.port)) as client:
            for record in RECORDS:
                assert client.push(record) is True
            await asyncio.wait_for(got_all.wait(), timeout=5)
            assert client.pending == 0
    finally:
        receiver.close()

    assert received == RECORDS


@pytest.mark.asyncio
async def test_client_flush_sends_one_batch() -> None:
    sender = _RecordingSender()
    client = DeltaLinkClient(LinkConfig(secret_key=KEY), sender=sender)  # type: ignore[arg-type]

    assert await client.flush() == 0
    for record in RECORDS:
        client.push(record)
    assert await client.flush() == 2

    assert sender.sent == [RECORDS]
    assert client.pending == 0


@pytest.mark.asyncio
async def test_client_sends_hello_messages() -> None:
    sender = _RecordingSender()
    config = LinkConfig(secret_key=KEY, mmsi="230000001", hello_interval=0.01, delta_timer=60_000)

    async with DeltaLinkClient(config, sender=sender) as client:  # type: ignore[arg-type]
        for _ in range(200):
            if sender.sent:
                break
            await asyncio.sleep(0.01)
        assert client.pending == 0

    hello = sender.sent[0][0]
    assert hello["context"] == "vessels.urn:mrn:imo:mmsi:230000001"
    assert hello["updates"][0]["values"][0]["path"] == "networking.modem.latencyTime"


@pytest.mark.asyncio
async def test_client_without_mmsi_sends_no_hello() -> None:
    sender = _RecordingSender()
    config = LinkConfig(secret_key=KEY, hello_interval=0.01, delta_timer=60_000)

    async with DeltaLinkClient(config, sender=sender):  # type: ignore[arg-type]
        await asyncio.sleep(0.05)

    assert sender.sent == []


@pytest.mark.asyncio
async def test_client_logs_failed_flush_and_keeps_running(caplog) -> None:
    sender = _RecordingSender(fail=True)
    config = LinkConfig(secret_key=KEY, delta_timer=10)

    with caplog.at_level("ERROR", logger="pydeltalink.transport"):
        async with DeltaLinkClient(config, sender=sender) as client:  # type: ignore[arg-type]
            client.push(RECORDS[0])
            await asyncio.sleep(0.05)
            client.push(RECORDS[1])
            await asyncio.sleep(0.05)

    assert caplog.text.count("Delta flush failed") == 2


@pytest.mark.asyncio
async def test_client_is_ready_without_test_address() -> None:
    client = DeltaLinkClient(LinkConfig(secret_key=KEY), sender=_RecordingSender())  # type: ignore[arg-type]
    assert client.ready is True
    assert await client.check_connection() is True


@pytest.mark.asyncio
async def test_client_connection_check_gates_push() -> None:
    async def accept(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(accept, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    config = LinkConfig(secret_key=KEY, test_address="127.0.0.1", test_port=port)
    client = DeltaLinkClient(config, sender=_RecordingSender())  # type: ignore[arg-type]

    assert client.ready is False
    assert client.push(RECORDS[0]) is False
    assert client.pending == 0

    assert await client.check_connection() is True
    assert client.push(RECORDS[0]) is True
    assert client.pending == 1

    server.close()
    await server.wait_closed()

    assert await client.check_connection() is False
    assert client.ready is False
    assert client.push(RECORDS[1]) is False
    assert client.pending == 1
