"""Support chat: optimistic message list and the chat session that feeds it."""

import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from wanderlust.config import ChatSettings
from wanderlust.models.chat import ChatMessage, ChatStatus, SupportChat
from wanderlust.models.result import Err, ErrorKind, Ok, Result
from wanderlust.services.realtime import ChangeEvent, ChannelManager, RealtimeChannel, RowEvent
from wanderlust.services.supabase_client import SupabaseClient, SupabaseError
from wanderlust.utils.logger import bind_context, get_logger, unbind_context

logger = get_logger(__name__)


# =============================================================================
# Message Reconciler
# =============================================================================


class MessageReconciler:
    """
    Ordered messages of one chat thread, merging optimistic entries with
    server-confirmed inserts.

    Operations are synchronous, so two of them never interleave on the event loop.
    """

    def __init__(
        self,
        local_user_id: str,
        messages: Iterable[ChatMessage] = (),
        pending_prefix: str = "temp-",
    ):
        self.local_user_id = local_user_id
        self.pending_prefix = pending_prefix
        self._messages: list[ChatMessage] = list(messages)
        self._last_stamp = 0

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def is_pending(self, message: ChatMessage) -> bool:
        return message.id.startswith(self.pending_prefix)

    def reset(self, messages: Iterable[ChatMessage] = ()) -> None:
        self._messages = list(messages)

    def _next_pending_id(self) -> str:
        # Millisecond timestamp, bumped so ids stay unique within the session
        stamp = int(time.time() * 1000)
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return f"{self.pending_prefix}{stamp}"

    def append_optimistic(self, text: str, sender_id: Optional[str] = None) -> str:
        """Append a pending message and return its temporary id."""
        pending_id = self._next_pending_id()
        self._messages.append(
            ChatMessage(
                id=pending_id,
                sender_id=sender_id or self.local_user_id,
                text=text,
                created_at=datetime.now(timezone.utc),
                client_id=pending_id,
            )
        )
        return pending_id

    def _find_pending(self, message: ChatMessage) -> Optional[int]:
        if message.client_id:
            for index, existing in enumerate(self._messages):
                if self.is_pending(existing) and existing.client_id == message.client_id:
                    return index

        # Same text: assumes one in-flight pending message per distinct text
        for index, existing in enumerate(self._messages):
            if self.is_pending(existing) and existing.text == message.text:
                return index
        return None

    def on_remote_insert(self, message: ChatMessage) -> bool:
        """
        Merge a server-confirmed message. Returns True if the sequence changed.

        Own messages replace their pending entry in place; anything else is
        appended unless a message with the same id is already present.
        """
        if any(existing.id == message.id for existing in self._messages):
            return False

        if message.sender_id == self.local_user_id:
            index = self._find_pending(message)
            if index is not None:
                pending_id = self._messages[index].id
                self._messages[index] = message
                logger.debug("chat_message_reconciled", pending_id=pending_id, message_id=message.id)
                return True

        self._messages.append(message)
        return True

    def on_send_failure(self, pending_id: str) -> bool:
        """Roll back a pending message. Returns True if it was removed."""
        for index, existing in enumerate(self._messages):
            if existing.id == pending_id and self.is_pending(existing):
                del self._messages[index]
                logger.debug("chat_message_rolled_back", pending_id=pending_id)
                return True
        return False


# =============================================================================
# Chat Session
# =============================================================================


class ChatSession:
    """
    The signed-in user's support chat.

    Usage:
        async with ChatSession(client, channels, user_id) as chat:
            await chat.send("Hello")

    Channel subscriptions are released on every exit from the context.
    """

    def __init__(
        self,
        client: SupabaseClient,
        channels: ChannelManager,
        user_id: str,
        settings: Optional[ChatSettings] = None,
    ):
        self.client = client
        self.channels = channels
        self.user_id = user_id
        self.settings = settings or ChatSettings()

        self.chat: Optional[SupportChat] = None
        self.status = ChatStatus.OPEN
        self.reconciler = MessageReconciler(
            user_id, pending_prefix=self.settings.pending_id_prefix
        )
        self._message_channel: Optional[RealtimeChannel] = None
        self._status_channel: Optional[RealtimeChannel] = None

    async def __aenter__(self) -> "ChatSession":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def messages(self) -> list[ChatMessage]:
        return self.reconciler.messages

    @property
    def chat_id(self) -> Optional[str]:
        return self.chat.id if self.chat else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        """Load the latest chat and its messages, then subscribe to changes."""
        row = await self.client.select_one(
            "support_chats",
            columns="id, user_id, status, created_at",
            filters={"user_id": self.user_id},
            order="created_at",
            ascending=False,
            limit=1,
        )
        if row is None:
            self.chat = None
            self.status = ChatStatus.OPEN
            self.reconciler.reset()
            return

        self.chat = SupportChat.model_validate(row)
        self.status = self.chat.status
        bind_context(chat_id=self.chat.id)

        rows = await self.client.select(
            "chat_messages",
            filters={"chat_id": self.chat.id},
            order="created_at",
            ascending=True,
        )
        self.reconciler.reset(ChatMessage.model_validate(r) for r in rows)
        logger.info("chat_loaded", messages=len(rows), status=self.status.value)

        await self._subscribe()

    async def _subscribe(self) -> None:
        await self._unsubscribe()
        if self.chat is None:
            return

        last = self.reconciler.messages[-1] if len(self.reconciler) else None
        self._message_channel = await self.channels.subscribe(
            topic=f"chat_{self.chat.id}",
            table="chat_messages",
            event=ChangeEvent.INSERT,
            filters={"chat_id": self.chat.id},
            callback=self._on_message_insert,
            since=last.created_at.isoformat() if last else None,
        )
        self._status_channel = await self.channels.subscribe(
            topic=f"status_{self.chat.id}",
            table="support_chats",
            event=ChangeEvent.UPDATE,
            filters={"id": self.chat.id},
            callback=self._on_status_update,
            watch_column="status",
        )

    async def _unsubscribe(self) -> None:
        message_channel, self._message_channel = self._message_channel, None
        status_channel, self._status_channel = self._status_channel, None
        try:
            if message_channel:
                await self.channels.remove_channel(message_channel)
        finally:
            if status_channel:
                await self.channels.remove_channel(status_channel)

    async def close(self) -> None:
        try:
            await self._unsubscribe()
        finally:
            unbind_context("chat_id")

    # =========================================================================
    # Channel callbacks
    # =========================================================================

    def _on_message_insert(self, event: RowEvent) -> None:
        self.reconciler.on_remote_insert(ChatMessage.model_validate(event.record))

    def _on_status_update(self, event: RowEvent) -> None:
        self.status = ChatStatus(event.record.get("status", ChatStatus.OPEN.value))
        logger.info("chat_status_changed", status=self.status.value)

    # =========================================================================
    # Actions
    # =========================================================================

    async def _create_chat(self) -> SupportChat:
        rows = await self.client.insert(
            "support_chats", {"user_id": self.user_id, "status": ChatStatus.OPEN.value}
        )
        chat = SupportChat.model_validate(rows[0])
        self.chat = chat
        self.status = chat.status
        self.reconciler.reset()
        bind_context(chat_id=chat.id)
        await self._subscribe()
        return chat

    async def send(self, text: str) -> Result:
        """Show the message immediately, then hand it to the send function."""
        text = text.strip()
        if not text:
            return Err(ErrorKind.VALIDATION, "Message is empty")
        if self.status == ChatStatus.CLOSED:
            return Err(ErrorKind.CONFLICT, "This chat is closed. Start a new chat to continue.")

        if self.chat is None:
            try:
                await self._create_chat()
            except SupabaseError as e:
                logger.error("chat_create_failed", error=str(e))
                return Err(ErrorKind.NETWORK, str(e))

        pending_id = self.reconciler.append_optimistic(text)
        try:
            await self.client.invoke_function(
                self.settings.send_function,
                json={
                    "sender_id": self.user_id,
                    "sender_role": "user",
                    "message_text": text,
                    "client_id": pending_id,
                },
            )
        except SupabaseError as e:
            self.reconciler.on_send_failure(pending_id)
            logger.error("chat_send_failed", pending_id=pending_id, error=str(e))
            return Err(ErrorKind.NETWORK, str(e))

        return Ok(pending_id)

    async def start_new_chat(self) -> Result:
        try:
            chat = await self._create_chat()
        except SupabaseError as e:
            logger.error("chat_create_failed", error=str(e))
            return Err(ErrorKind.NETWORK, str(e))

        logger.info("chat_started", chat_id=chat.id)
        return Ok(chat)
