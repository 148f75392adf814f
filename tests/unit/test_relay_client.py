"""
Tests for the Nostr relay client against an in-memory websocket.
"""

import asyncio
import json

import pytest

from fitrelay.services.nostr import relay_client
from fitrelay.services.nostr.relay_client import (
    NostrRelayClient,
    RelayConnectionError,
    RelayError,
    RelayPool,
    RelaySubscription,
)

WIRE_EVENT = {
    "id": "evt-1",
    "pubkey": "alice",
    "created_at": 1_700_000_000,
    "kind": 1301,
    "tags": [["exercise", "run"], ["distance", "5", "km"], ["duration", "00:25:00"]],
    "content": "",
    "sig": "00",
}


class FakeWebSocket:
    def __init__(self):
        self.sent: list = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, message):
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def deliver(self, *frame):
        self.incoming.put_nowait(json.dumps(list(frame)))


@pytest.fixture
def fake_ws(monkeypatch):
    ws = FakeWebSocket()

    async def fake_connect(url, **kwargs):
        return ws

    monkeypatch.setattr(relay_client.websockets, "connect", fake_connect)
    return ws


@pytest.mark.asyncio
async def test_query_streams_events_until_eose(fake_ws):
    client = NostrRelayClient("wss://fake", connect_timeout=1)

    subscription = await client.query({"kinds": [1301], "authors": ["alice"], "limit": 50})

    req = fake_ws.sent[0]
    assert req[0] == "REQ"
    assert req[2] == {"kinds": [1301], "authors": ["alice"], "limit": 50}

    fake_ws.deliver("EVENT", subscription.id, WIRE_EVENT)
    fake_ws.deliver("EVENT", subscription.id, {"id": "broken"})
    fake_ws.deliver("EVENT", "someone-else", WIRE_EVENT)
    fake_ws.deliver("EOSE", subscription.id)

    events = [event async for event in subscription]

    assert [event.id for event in events] == ["evt-1"]
    assert events[0].first_tag("distance") == ("5", "km")

    await client.stop_query(subscription)
    await client.stop_query(subscription)
    assert fake_ws.sent[1:] == [["CLOSE", subscription.id]]

    await client.close()
    assert fake_ws.closed is True


@pytest.mark.asyncio
async def test_dropped_connection_fails_open_subscriptions(fake_ws):
    client = NostrRelayClient("wss://fake", connect_timeout=1)
    subscription = await client.query({"kinds": [1301]})

    fake_ws.incoming.put_nowait(None)

    with pytest.raises(RelayConnectionError):
        async for _ in subscription:
            pass

    assert client.connected is False
    assert fake_ws.closed is True
    await client.close()


@pytest.mark.asyncio
async def test_query_raises_when_relay_unreachable(monkeypatch):
    async def refuse(url, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(relay_client.websockets, "connect", refuse)
    client = NostrRelayClient("wss://down", connect_timeout=1)

    with pytest.raises(RelayConnectionError) as exc_info:
        await client.query({"kinds": [1301]})

    assert exc_info.value.relay_url == "wss://down"


@pytest.mark.asyncio
async def test_closed_frame_raises_from_iterator():
    client = NostrRelayClient("wss://fake", connect_timeout=1)
    subscription = RelaySubscription("sub-1", client.url)
    client._subscriptions[subscription.id] = subscription

    client.handle_message(json.dumps(["CLOSED", "sub-1", "rate-limited: slow down"]))

    with pytest.raises(RelayError, match="rate-limited"):
        await anext(subscription)


@pytest.mark.asyncio
async def test_handle_message_ignores_noise():
    client = NostrRelayClient("wss://fake", connect_timeout=1)
    subscription = RelaySubscription("sub-1", client.url)
    client._subscriptions[subscription.id] = subscription

    client.handle_message("not json")
    client.handle_message(json.dumps({"not": "a list"}))
    client.handle_message(json.dumps(["NOTICE", "restarting soon"]))
    client.handle_message(json.dumps(["EOSE"]))
    client.handle_message(json.dumps(["EOSE", ["not", "hashable"]]))
    client.handle_message(json.dumps(["EVENT", {"a": 1}, {}]))
    client.handle_message(json.dumps(["EVENT", "sub-1", WIRE_EVENT]))
    client.handle_message(json.dumps(["EOSE", "sub-1"]))

    events = [event async for event in subscription]
    assert [event.id for event in events] == ["evt-1"]
    assert subscription.received == 1


def test_relay_pool_builds_one_client_per_url():
    pool = RelayPool(["wss://a", "wss://b"])

    assert [client.url for client in pool.clients] == ["wss://a", "wss://b"]
    assert pool.clients is pool.clients


@pytest.mark.asyncio
async def test_malformed_subscription_id_keeps_connection_open(fake_ws):
    client = NostrRelayClient("wss://fake", connect_timeout=1)
    subscription = await client.query({"kinds": [1301]})

    fake_ws.deliver("EOSE", ["not", "hashable"])
    fake_ws.deliver("EVENT", {"a": 1}, {})
    fake_ws.deliver("EVENT", subscription.id, WIRE_EVENT)
    fake_ws.deliver("EOSE", subscription.id)

    events = [event async for event in subscription]

    assert [event.id for event in events] == ["evt-1"]
    assert client.connected is True
    assert fake_ws.closed is False
    await client.close()
