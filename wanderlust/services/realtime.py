"""Row change channels: push-style INSERT/UPDATE notifications by polling PostgREST."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from wanderlust.services.supabase_client import SupabaseClient, SupabaseError
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)


class ChannelState(Enum):
    """Channel subscription state."""
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    CLOSED = "closed"


class ChangeEvent(str, Enum):
    """Row change kind."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"


@dataclass
class RowEvent:
    """A row change delivered to channel callbacks."""
    event: ChangeEvent
    table: str
    record: dict
    old_record: Optional[dict] = None


EventCallback = Callable[[RowEvent], Any]


class RealtimeChannel:
    """
    One subscription to row changes of a table.

    INSERT channels emit rows whose cursor column is past the last seen value.
    UPDATE channels watch a single row and emit when `watch_column` changes.
    """

    def __init__(
        self,
        client: SupabaseClient,
        topic: str,
        table: str,
        event: ChangeEvent,
        filters: dict[str, Any],
        cursor_column: str = "created_at",
        watch_column: Optional[str] = None,
        since: Optional[str] = None,
        poll_interval: float = 2.0,
        max_consecutive_errors: int = 10,
    ):
        if event == ChangeEvent.UPDATE and not watch_column:
            raise ValueError("UPDATE channels need a watch_column")

        self.client = client
        self.topic = topic
        self.table = table
        self.event = event
        self.filters = dict(filters)
        self.cursor_column = cursor_column
        self.watch_column = watch_column
        self.poll_interval = poll_interval
        self.max_consecutive_errors = max_consecutive_errors

        self._callbacks: list[EventCallback] = []
        self._state = ChannelState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._cursor: Optional[str] = since
        self._seen_at_cursor: set[str] = set()
        self._snapshot: Optional[dict] = None
        self._error_count = 0

    @property
    def state(self) -> ChannelState:
        return self._state

    def on(self, callback: EventCallback) -> "RealtimeChannel":
        self._callbacks.append(callback)
        return self

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def subscribe(self) -> "RealtimeChannel":
        """Record the starting point and start polling."""
        if self._state == ChannelState.SUBSCRIBED:
            return self

        if self.event == ChangeEvent.INSERT and self._cursor is None:
            latest = await self.client.select(
                self.table,
                filters=self.filters,
                order=self.cursor_column,
                ascending=False,
                limit=1,
            )
            if latest:
                self._advance_cursor(latest[0])
        elif self.event == ChangeEvent.UPDATE:
            self._snapshot = await self.client.select_one(self.table, filters=self.filters)

        self._state = ChannelState.SUBSCRIBED
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("channel_subscribed", topic=self.topic, table=self.table, change=self.event.value)
        return self

    async def unsubscribe(self) -> None:
        """Stop polling. Safe to call more than once."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._state != ChannelState.CLOSED:
            self._state = ChannelState.CLOSED
            logger.info("channel_closed", topic=self.topic)

    # =========================================================================
    # Delivery
    # =========================================================================

    async def dispatch(self, event: RowEvent) -> None:
        """Deliver an event to every callback; a failing callback does not stop the others."""
        for callback in self._callbacks:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("channel_callback_error", topic=self.topic, error=str(e))

    async def poll_once(self) -> int:
        """Run one polling pass and return the number of dispatched events."""
        if self.event == ChangeEvent.INSERT:
            return await self._poll_inserts()
        return await self._poll_update()

    async def _poll_inserts(self) -> int:
        filters = dict(self.filters)
        if self._cursor is not None:
            filters[self.cursor_column] = ("gte", self._cursor)

        rows = await self.client.select(
            self.table, filters=filters, order=self.cursor_column, ascending=True
        )

        dispatched = 0
        for row in rows:
            row_id = str(row.get("id"))
            if row.get(self.cursor_column) == self._cursor and row_id in self._seen_at_cursor:
                continue
            self._advance_cursor(row)
            await self.dispatch(RowEvent(event=ChangeEvent.INSERT, table=self.table, record=row))
            dispatched += 1
        return dispatched

    async def _poll_update(self) -> int:
        row = await self.client.select_one(self.table, filters=self.filters)
        if row is None:
            return 0

        old = self._snapshot
        self._snapshot = row
        if old is None:
            # First sighting only seeds the snapshot
            return 0
        if old.get(self.watch_column) == row.get(self.watch_column):
            return 0

        await self.dispatch(
            RowEvent(event=ChangeEvent.UPDATE, table=self.table, record=row, old_record=old)
        )
        return 1

    def _advance_cursor(self, row: dict) -> None:
        value = row.get(self.cursor_column)
        if value != self._cursor:
            self._cursor = value
            self._seen_at_cursor = set()
        self._seen_at_cursor.add(str(row.get("id")))

    async def _poll_loop(self) -> None:
        """Polling loop; gives up after too many consecutive errors."""
        while self._state in (ChannelState.SUBSCRIBED, ChannelState.ERROR):
            try:
                await asyncio.sleep(self.poll_interval)
                await self.poll_once()
                if self._state == ChannelState.ERROR:
                    self._state = ChannelState.SUBSCRIBED
                self._error_count = 0
            except asyncio.CancelledError:
                break
            except SupabaseError as e:
                self._error_count += 1
                self._state = ChannelState.ERROR
                logger.warning(
                    "channel_poll_error",
                    topic=self.topic,
                    error=str(e),
                    attempt=self._error_count,
                )
                if self._error_count >= self.max_consecutive_errors:
                    logger.error("channel_poll_giving_up", topic=self.topic)
                    break


class ChannelManager:
    """Owns the channels opened by one application context."""

    def __init__(self, client: SupabaseClient, poll_interval: float = 2.0):
        self.client = client
        self.poll_interval = poll_interval
        self._channels: dict[str, RealtimeChannel] = {}
        self._lock = asyncio.Lock()

    async def subscribe(
        self,
        topic: str,
        table: str,
        event: ChangeEvent,
        filters: dict[str, Any],
        callback: EventCallback,
        **options: Any,
    ) -> RealtimeChannel:
        """Open a channel, replacing any channel already open on the same topic."""
        options.setdefault("poll_interval", self.poll_interval)
        channel = RealtimeChannel(
            self.client,
            topic=topic,
            table=table,
            event=event,
            filters=filters,
            **options,
        ).on(callback)

        async with self._lock:
            existing = self._channels.pop(topic, None)
            if existing:
                await existing.unsubscribe()
            await channel.subscribe()
            self._channels[topic] = channel
        return channel

    async def remove_channel(self, channel: RealtimeChannel) -> None:
        async with self._lock:
            if self._channels.get(channel.topic) is channel:
                del self._channels[channel.topic]
        await channel.unsubscribe()

    async def remove_all(self) -> None:
        async with self._lock:
            for channel in list(self._channels.values()):
                await channel.unsubscribe()
            self._channels.clear()
            logger.info("channels_removed")

    def get_channel(self, topic: str) -> Optional[RealtimeChannel]:
        return self._channels.get(topic)

    def get_all_statuses(self) -> dict[str, str]:
        return {topic: channel.state.value for topic, channel in self._channels.items()}
