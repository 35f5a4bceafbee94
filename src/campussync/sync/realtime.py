"""Websocket change stream speaking the realtime channel protocol."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from campussync.auth import AuthInfo
from campussync.config import ClientConfig
from campussync.errors import InvalidArgumentError, SubscriptionError
from campussync.local import ScopeFilter, channel_key
from campussync.models import SubscriptionState
from campussync.util.ids import ref_counter

from .protocol import (
    EVENT_CLOSE,
    EVENT_ERROR,
    EVENT_HEARTBEAT,
    EVENT_JOIN,
    EVENT_LEAVE,
    EVENT_POSTGRES_CHANGES,
    EVENT_REPLY,
    EVENT_SYSTEM,
    PHOENIX_TOPIC,
    PROTOCOL_VERSION,
    Message,
    build_join_payload,
    channel_topic,
    decode_change,
    decode_message,
    encode_message,
)
from .stream import ChangeStream, EventCallback, StatusCallback, StreamSubscription

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]


class RealtimeChangeStream(ChangeStream):
    """
    Change stream backed by one websocket per subscription.

    Notes:
        - Channels are never shared: two activations on the same (table,
          scope) each get their own connection.
        - Reconnects are not attempted; a lost connection is reported as an
          unexpected CLOSED so the caller can re-activate.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: Optional[str] = None,
        auth: Optional[AuthInfo] = None,
        schema: str = "public",
        heartbeat_interval: float = 25.0,
        join_timeout: float = 10.0,
        events_per_second: Optional[int] = None,
        connect: Optional[Connector] = None,
    ) -> None:
        if not url.startswith(("ws://", "wss://")):
            raise InvalidArgumentError("Realtime URL must use ws:// or wss://", details={"url": url})
        self._url = url
        self._api_key = api_key
        self._auth = auth
        self._schema = schema
        self._heartbeat_interval = heartbeat_interval
        self._join_timeout = join_timeout
        self._events_per_second = events_per_second
        self._connect = connect or ws_connect

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        auth: Optional[AuthInfo] = None,
        *,
        connect: Optional[Connector] = None,
    ) -> "RealtimeChangeStream":
        if not config.realtime_url:
            raise InvalidArgumentError("realtime_url is not configured")
        return cls(
            config.realtime_url,
            api_key=config.api_key,
            auth=auth,
            schema=config.schema,
            heartbeat_interval=config.heartbeat_interval,
            join_timeout=config.join_timeout,
            events_per_second=config.events_per_second,
            connect=connect,
        )

    @property
    def endpoint(self) -> str:
        params: dict[str, str] = {}
        if self._api_key:
            params["apikey"] = self._api_key
        if self._events_per_second:
            params["eventsPerSecond"] = str(self._events_per_second)
        params["vsn"] = PROTOCOL_VERSION
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}{urlencode(params)}"

    async def subscribe(
        self,
        table: str,
        scope: Optional[ScopeFilter],
        *,
        on_event: EventCallback,
        on_status: StatusCallback,
    ) -> "RealtimeSubscription":
        key = channel_key(table, scope)
        logger.info(f"Subscribing to {table} changes on channel {key}")

        try:
            websocket = await self._connect(self.endpoint, open_timeout=self._join_timeout)
        except (OSError, asyncio.TimeoutError, TimeoutError, WebSocketException) as exc:
            raise SubscriptionError(
                "Failed to connect to the change stream",
                details={"channel": key},
                cause=exc,
            ) from exc

        subscription = RealtimeSubscription(
            websocket,
            key,
            on_event=on_event,
            on_status=on_status,
            heartbeat_interval=self._heartbeat_interval,
        )
        access_token = self._auth.access_token if self._auth is not None else None
        payload = build_join_payload(
            table,
            scope,
            schema=self._schema,
            access_token=access_token,
        )
        try:
            await subscription.join(payload, timeout=self._join_timeout)
        except BaseException:
            await subscription.abort()
            raise
        return subscription


class RealtimeSubscription(StreamSubscription):
    """One joined channel on its own websocket."""

    def __init__(
        self,
        websocket: Any,
        key: str,
        *,
        on_event: EventCallback,
        on_status: StatusCallback,
        heartbeat_interval: float,
    ) -> None:
        self.channel_key = key
        self.topic = channel_topic(key)
        self._ws = websocket
        self._on_event = on_event
        self._on_status = on_status
        self._heartbeat_interval = heartbeat_interval
        self._refs = ref_counter()
        self._join_ref: Optional[str] = None
        self._state = SubscriptionState.CONNECTING
        self._closed = False
        self._reader: Optional[asyncio.Task[None]] = None
        self._heartbeat: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> SubscriptionState:
        return self._state

    async def join(self, payload: dict[str, Any], *, timeout: float) -> None:
        """
        Send phx_join and wait for the reply, then start background tasks.

        Raises:
            SubscriptionError: on rejection, timeout or connection loss.
        """
        self._join_ref = next(self._refs)
        details = {"channel": self.channel_key}
        try:
            await self._send(
                self.topic, EVENT_JOIN, payload, ref=self._join_ref, join_ref=self._join_ref
            )
            reply = await asyncio.wait_for(self._await_join_reply(), timeout)
        except asyncio.TimeoutError as exc:
            raise SubscriptionError(
                "Timed out waiting for channel join reply", details=details, cause=exc
            ) from exc
        except ConnectionClosed as exc:
            raise SubscriptionError(
                "Connection closed while joining channel", details=details, cause=exc
            ) from exc

        if reply.reply_status != "ok":
            raise SubscriptionError(
                f"Channel join rejected: {reply.reason}",
                details={**details, "status": reply.reply_status},
            )

        self._state = SubscriptionState.OPEN
        loop = asyncio.get_running_loop()
        self._reader = loop.create_task(self._read_loop(), name=f"realtime-read:{self.channel_key}")
        self._heartbeat = loop.create_task(
            self._heartbeat_loop(), name=f"realtime-heartbeat:{self.channel_key}"
        )
        logger.info(f"Channel {self.channel_key} joined")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        was_open = self._state is SubscriptionState.OPEN
        self._state = SubscriptionState.CLOSED

        if was_open:
            try:
                await self._send(
                    self.topic, EVENT_LEAVE, {}, ref=next(self._refs), join_ref=self._join_ref
                )
            except ConnectionClosed:
                logger.debug(f"Channel {self.channel_key} already disconnected on leave")

        await self._stop_tasks()
        await self._ws.close()
        logger.info(f"Channel {self.channel_key} closed")

    async def abort(self) -> None:
        """Tear down after a failed join (no leave message)."""
        self._closed = True
        self._state = SubscriptionState.CLOSED
        await self._stop_tasks()
        await self._ws.close()

    # ----------------------------
    # Internals
    # ----------------------------
    async def _send(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        ref: Optional[str] = None,
        join_ref: Optional[str] = None,
    ) -> None:
        await self._ws.send(encode_message(topic, event, payload, ref=ref, join_ref=join_ref))

    async def _await_join_reply(self) -> Message:
        while True:
            message = _safe_decode(await self._ws.recv())
            if message is None:
                continue
            if message.event == EVENT_REPLY and message.ref == self._join_ref:
                return message
            if message.topic == self.topic and message.event in (EVENT_ERROR, EVENT_CLOSE):
                return message

    async def _read_loop(self) -> None:
        error: SubscriptionError
        try:
            async for raw in self._ws:
                message = _safe_decode(raw)
                if message is not None:
                    self._dispatch(message)
            error = SubscriptionError(
                "Change stream connection closed",
                details={"channel": self.channel_key},
            )
        except ConnectionClosed as exc:
            error = SubscriptionError(
                "Change stream connection lost",
                details={"channel": self.channel_key},
                cause=exc,
            )
        except SubscriptionError as exc:
            error = exc

        if self._closed:
            return
        self._state = SubscriptionState.CLOSED
        logger.warning(f"Channel {self.channel_key} closed unexpectedly: {error}")
        if self._heartbeat is not None:
            self._heartbeat.cancel()
        self._on_status(SubscriptionState.CLOSED, error)
        await self._ws.close()

    def _dispatch(self, message: Message) -> None:
        if message.topic != self.topic:
            return

        if message.event == EVENT_POSTGRES_CHANGES:
            try:
                event = decode_change(message.payload)
            except ValueError as exc:
                logger.warning(f"Skipping malformed change on {self.channel_key}: {exc}")
                return
            logger.debug(f"{self.channel_key}: {event.kind.value} on {event.table}")
            try:
                self._on_event(event)
            except Exception:
                logger.exception(f"Event handler failed on {self.channel_key}")
            return

        if message.event in (EVENT_ERROR, EVENT_CLOSE):
            raise SubscriptionError(
                f"Channel {message.event}",
                details={"channel": self.channel_key, "event": message.event},
            )

        if message.event == EVENT_SYSTEM and message.reply_status == "error":
            raise SubscriptionError(
                f"Change subscription failed: {message.reason}",
                details={"channel": self.channel_key},
            )

        logger.debug(f"{self.channel_key}: ignoring {message.event}")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self._send(PHOENIX_TOPIC, EVENT_HEARTBEAT, {}, ref=next(self._refs))
            except ConnectionClosed:
                return

    async def _stop_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._heartbeat, self._reader)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def _safe_decode(raw: str | bytes) -> Optional[Message]:
    try:
        return decode_message(raw)
    except ValueError as exc:
        logger.warning(f"Skipping undecodable realtime frame: {exc}")
        return None
