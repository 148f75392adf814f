# fitrelay/services/nostr/relay_client.py
"""
Low-level Nostr relay client for workout event discovery.
Speaks the NIP-01 REQ/EVENT/EOSE/CLOSE protocol over a single websocket per
relay and multiplexes concurrent subscriptions on it.
"""

import asyncio
import json
import secrets
from collections.abc import AsyncIterator
from typing import Any, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.domain.models import RawEvent
from fitrelay.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_END_OF_STORED_EVENTS = object()


class RelayError(Exception):
    """Custom exception for relay protocol and transport errors."""

    def __init__(
        self,
        message: str,
        relay_url: str | None = None,
        subscription_id: str | None = None,
    ):
        super().__init__(message)
        self.relay_url = relay_url
        self.subscription_id = subscription_id


class RelayConnectionError(RelayError):
    """Relay could not be reached or dropped the connection."""


class RelaySubscription:
    """
    Async iterator over the stored events of one REQ.

    Iteration ends at EOSE. A CLOSED frame or a dropped connection raises
    RelayError from the iterator.
    """

    def __init__(self, subscription_id: str, relay_url: str):
        self.id = subscription_id
        self.relay_url = relay_url
        self.received = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    def __aiter__(self) -> AsyncIterator[RawEvent]:
        return self

    async def __anext__(self) -> RawEvent:
        item = await self._queue.get()
        if item is _END_OF_STORED_EVENTS:
            raise StopAsyncIteration
        if isinstance(item, RelayError):
            raise item
        return item

    def push(self, event: RawEvent) -> None:
        self.received += 1
        self._queue.put_nowait(event)

    def finish(self) -> None:
        self._queue.put_nowait(_END_OF_STORED_EVENTS)

    def fail(self, error: RelayError) -> None:
        self._queue.put_nowait(error)


class RelayClient(Protocol):
    """Capability interface the event collector depends on."""

    url: str

    async def connect(self) -> bool: ...

    async def query(self, relay_filter: dict[str, Any]) -> AsyncIterator[RawEvent]: ...

    async def stop_query(self, subscription: Any) -> None: ...

    async def close(self) -> None: ...


class NostrRelayClient:
    """
    Websocket client for a single Nostr relay.

    Connection is lazy: the first query connects. A background reader task
    routes incoming frames to their subscription queues.
    """

    def __init__(self, url: str, connect_timeout: float | None = None):
        self.url = url
        self.connect_timeout = connect_timeout or settings.RELAY_CONNECT_TIMEOUT_SECONDS
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._subscriptions: dict[str, RelaySubscription] = {}
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def connect(self) -> bool:
        """Open the websocket if needed. Returns False when the relay is unreachable."""
        async with self._connect_lock:
            if self.connected:
                return True

            try:
                self._ws = await websockets.connect(
                    self.url, open_timeout=self.connect_timeout, max_size=2**22
                )
            except (OSError, TimeoutError, WebSocketException) as e:
                logger.warning("Relay connection failed", relay=self.url, error=str(e))
                self._ws = None
                return False

            self._reader = asyncio.create_task(self._read_loop(self._ws))
            logger.info("Relay connected", relay=self.url)
            return True

    async def query(self, relay_filter: dict[str, Any]) -> RelaySubscription:
        """
        Send a REQ and return its subscription.

        Raises:
            RelayConnectionError: If the relay is unreachable
        """
        if not await self.connect():
            raise RelayConnectionError("Relay unreachable", relay_url=self.url)

        subscription = RelaySubscription(f"fr-{secrets.token_hex(6)}", self.url)
        self._subscriptions[subscription.id] = subscription

        try:
            await self._ws.send(json.dumps(["REQ", subscription.id, relay_filter]))
        except ConnectionClosed as e:
            self._subscriptions.pop(subscription.id, None)
            raise RelayConnectionError(
                f"Connection closed while subscribing: {e}",
                relay_url=self.url,
                subscription_id=subscription.id,
            ) from e

        logger.debug("Relay subscription opened", relay=self.url, subscription_id=subscription.id)
        return subscription

    async def stop_query(self, subscription: RelaySubscription) -> None:
        """Tell the relay to stop a subscription. Safe to call more than once."""
        if self._subscriptions.pop(subscription.id, None) is None:
            return
        if not self.connected:
            return
        try:
            await self._ws.send(json.dumps(["CLOSE", subscription.id]))
        except ConnectionClosed:
            logger.debug("Relay closed before CLOSE was sent", relay=self.url)

    async def close(self) -> None:
        """Clean shutdown of the websocket and every open subscription."""
        ws, reader = self._ws, self._reader
        self._ws = None
        self._reader = None

        if ws is not None:
            try:
                await ws.close()
            except WebSocketException as e:
                logger.warning("Error closing relay connection", relay=self.url, error=str(e))
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        self._fail_all("Relay client closed")

    async def _read_loop(self, ws) -> None:
        try:
            async for message in ws:
                self.handle_message(message)
        except ConnectionClosed as e:
            logger.warning("Relay connection dropped", relay=self.url, error=str(e))
        finally:
            if self._ws is ws:
                self._ws = None
            self._fail_all("Relay connection closed")
            try:
                await ws.close()
            except WebSocketException as e:
                logger.debug("Error closing dropped relay connection", relay=self.url, error=str(e))

    def handle_message(self, message: str | bytes) -> None:
        """Route one relay frame to its subscription."""
        try:
            frame = json.loads(message)
        except ValueError:
            logger.warning("Relay sent invalid JSON", relay=self.url)
            return

        if not isinstance(frame, list) or not frame:
            return

        frame_type = frame[0]
        if frame_type == "NOTICE":
            logger.info("Relay notice", relay=self.url, notice=str(frame[1:])[:200])
            return

        if len(frame) < 2 or not isinstance(frame[1], str):
            return
        subscription = self._subscriptions.get(frame[1])
        if subscription is None:
            return

        if frame_type == "EVENT" and len(frame) >= 3:
            try:
                subscription.push(RawEvent.from_wire(frame[2]))
            except ValueError as e:
                logger.warning(
                    "Skipping malformed relay event",
                    relay=self.url,
                    subscription_id=subscription.id,
                    error=str(e),
                )
        elif frame_type == "EOSE":
            subscription.finish()
        elif frame_type == "CLOSED":
            reason = frame[2] if len(frame) > 2 else ""
            subscription.fail(
                RelayError(
                    f"Subscription closed by relay: {reason}",
                    relay_url=self.url,
                    subscription_id=subscription.id,
                )
            )

    def _fail_all(self, message: str) -> None:
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.fail(
                RelayConnectionError(
                    message, relay_url=self.url, subscription_id=subscription.id
                )
            )


class RelayPool:
    """Holds one client per configured relay for the lifetime of the process."""

    def __init__(self, urls: list[str] | None = None):
        self.urls = list(urls if urls is not None else settings.NOSTR_RELAYS)
        self._clients: list[NostrRelayClient] | None = None

    @property
    def clients(self) -> list[NostrRelayClient]:
        if self._clients is None:
            self._clients = [NostrRelayClient(url) for url in self.urls]
        return self._clients

    async def close(self) -> None:
        if not self._clients:
            return
        for client in self._clients:
            await client.close()
        logger.info("Relay pool closed", relays=len(self._clients))
        self._clients = None


# Global instance
relay_pool = RelayPool()
