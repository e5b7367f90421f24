"""
Live view of one study group's message log.

A GroupChatSession moves IDLE -> LOADING -> LIVE -> IDLE. Entering a group
loads the full history and attaches the realtime feed; feed events are
queued and handled one at a time by a single worker task. Sends persist
first and only then append an optimistic entry under a temporary id, which
the next own-sender feed event collapses by re-fetching the history.
"""

import asyncio
import inspect
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from studybuddy.core.exceptions import StudyBuddyError, PersistenceError, UnauthorizedError, ValidationError
from studybuddy.modules.auth.schemas import SessionUser
from studybuddy.modules.auth.session import SessionContext
from studybuddy.modules.groups.schemas import GroupResponse
from studybuddy.modules.messages.feed import ChangeFeed, FeedSubscription
from studybuddy.modules.messages.schemas import ChatEvent, LocalMessage
from studybuddy.modules.messages.store import MessageStore

logger = logging.getLogger(__name__)

ChatListener = Callable[[ChatEvent], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[StudyBuddyError], Union[None, Awaitable[None]]]


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return datetime.now(timezone.utc)


async def _call(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class GroupChatSession:
    def __init__(
        self,
        store: MessageStore,
        feed: ChangeFeed,
        session: SessionContext,
        on_error: Optional[ErrorHandler] = None,
        display_names: Optional[Dict[str, str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.feed = feed
        self.session = session
        self.state = SessionState.IDLE
        self.group: Optional[GroupResponse] = None
        self.messages: List[LocalMessage] = []
        self.display_names = display_names or {}
        self._on_error = on_error
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._listeners: List[ChatListener] = []
        # durable id -> optimistic entry not yet seen in a fetched history
        self._pending: Dict[str, LocalMessage] = {}
        self._epoch = 0
        self._queue: Optional[asyncio.Queue] = None
        self._subscription: Optional[FeedSubscription] = None
        self._worker: Optional[asyncio.Task] = None
        self._stale: List[Tuple[Optional[FeedSubscription], Optional[asyncio.Task]]] = []
        self._teardown: Optional[asyncio.Task] = None
        self._unsubscribe_session = session.subscribe(self._on_session_change)

    async def __aenter__(self) -> "GroupChatSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def on_change(self, listener: ChatListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def enter_group(self, group: GroupResponse) -> None:
        await self.exit_group()
        user = self.session.require_user()
        epoch = self._epoch
        self.group = group
        self.state = SessionState.LOADING

        try:
            is_member = await self.store.is_member(group.id, user.id)
        except PersistenceError:
            self._reset_if_current(epoch)
            raise
        if epoch != self._epoch:
            return
        if not is_member:
            self._reset_if_current(epoch)
            raise UnauthorizedError("You must be a member of this group")

        # Feed attaches before the history fetch; events queue up until the
        # worker starts, so rows inserted in between are not lost
        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue
        try:
            subscription = await self.feed.subscribe(group.id, self._feed_callback(epoch, group.id, queue))
        except Exception as e:
            self._reset_if_current(epoch)
            raise PersistenceError(f"Failed to subscribe to live messages: {e}")
        if epoch != self._epoch:
            await subscription.unsubscribe()
            return
        self._subscription = subscription

        await self._refresh(epoch)
        if epoch != self._epoch:
            return
        # LIVE even when the initial fetch failed; later messages must not be missed
        self.state = SessionState.LIVE
        self._worker = asyncio.create_task(self._drain(epoch, queue))
        logger.info(f"Live in group {group.id} with {len(self.messages)} messages")

    async def send_message(self, group_id: str, text: str) -> Optional[LocalMessage]:
        """Persist a message, then show it locally.

        Returns the local entry, or None when the session left the group while
        the write was in flight.
        """
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")
        if self.state is SessionState.IDLE or self.group is None or self.group.id != group_id:
            raise UnauthorizedError("Enter the group before sending messages")
        user = self.session.require_user()
        epoch = self._epoch

        row = await self.store.insert_message(group_id, user.id, text)
        if epoch != self._epoch:
            return None

        durable_id = row["id"]
        for existing in self.messages:
            if existing.durable_id == durable_id:
                # A re-fetch triggered by the feed already brought it in
                return existing

        optimistic = LocalMessage(
            id=f"local-{uuid.uuid4().hex}",
            durable_id=durable_id,
            sender_id=user.id,
            sender_display_name="You",
            content=text,
            timestamp=self._clock(),
        )
        self._pending[durable_id] = optimistic
        self.messages.append(optimistic)
        await self._emit(ChatEvent(type="append", message=optimistic))
        return optimistic

    async def exit_group(self) -> None:
        """Leave the active group; always releases the feed subscription"""
        self._stale.append(self._invalidate())
        teardown, self._teardown = self._teardown, None
        if teardown is not None and teardown is not asyncio.current_task():
            await teardown
        await self._release_stale()

    async def close(self) -> None:
        self._unsubscribe_session()
        await self.exit_group()
        self._listeners.clear()

    async def wait_idle(self) -> None:
        """Block until every queued feed event has been handled"""
        if self._queue is not None:
            await self._queue.join()

    def _feed_callback(self, epoch: int, group_id: str, queue: asyncio.Queue) -> Callable[[Dict[str, Any]], None]:
        def deliver(row: Dict[str, Any]) -> None:
            if epoch != self._epoch or row.get("group_id") != group_id:
                logger.debug(f"Dropping stale feed event for group {row.get('group_id')}")
                return
            queue.put_nowait(row)

        return deliver

    async def _drain(self, epoch: int, queue: asyncio.Queue) -> None:
        # Exits once the session moves on, even when a listener left the group from this task
        while epoch == self._epoch:
            row = await queue.get()
            try:
                if epoch == self._epoch:
                    await self._handle_insert(epoch, row)
            except StudyBuddyError as e:
                await self._report(e)
            except Exception as e:
                logger.exception("Live message handler failed")
                await self._report(PersistenceError(f"Failed to apply live message: {e}"))
            finally:
                queue.task_done()

    async def _handle_insert(self, epoch: int, row: Dict[str, Any]) -> None:
        user = self.session.user
        if user is not None and row.get("sender_id") == user.id:
            # Confirmation of our own send: rebuild so the temporary id is replaced
            await self._refresh(epoch)
            return

        if any(m.durable_id == row["id"] for m in self.messages):
            return
        message = self._to_local(row, user)
        self.messages.append(message)
        await self._emit(ChatEvent(type="append", message=message))

    async def _refresh(self, epoch: int) -> None:
        """Replace the local view with the stored history"""
        try:
            rows = await self.store.fetch_history(self.group.id)
        except PersistenceError as e:
            if epoch == self._epoch:
                await self._report(e)
            return
        if epoch != self._epoch:
            return

        user = self.session.user
        fetched = [self._to_local(row, user) for row in rows]
        stored_ids = {m.durable_id for m in fetched}
        for durable_id in [d for d in self._pending if d in stored_ids]:
            del self._pending[durable_id]
        self.messages = fetched + list(self._pending.values())
        await self._emit(ChatEvent(type="reset", messages=list(self.messages)))

    def _to_local(self, row: Dict[str, Any], user: Optional[SessionUser]) -> LocalMessage:
        sender_id = row["sender_id"]
        if user is not None and sender_id == user.id:
            name = "You"
        else:
            name = self.display_names.get(sender_id) or f"Member {sender_id[:6]}"
        return LocalMessage(
            id=row["id"],
            durable_id=row["id"],
            sender_id=sender_id,
            sender_display_name=name,
            content=row["content"],
            timestamp=_parse_timestamp(row.get("created_at")),
            is_ai=bool(row.get("is_ai", False)),
        )

    def _invalidate(self) -> Tuple[Optional[FeedSubscription], Optional[asyncio.Task]]:
        """Synchronously detach from the current group; returns what still needs releasing"""
        self._epoch += 1
        released = (self._subscription, self._worker)
        self._subscription = None
        self._worker = None
        self._queue = None
        self.group = None
        self.state = SessionState.IDLE
        self.messages = []
        self._pending = {}
        return released

    def _reset_if_current(self, epoch: int) -> None:
        if epoch == self._epoch:
            self._stale.append(self._invalidate())

    async def _release_stale(self) -> None:
        while self._stale:
            subscription, worker = self._stale.pop()
            if worker is not None and worker is not asyncio.current_task():
                worker.cancel()
                try:
                    await worker
                except asyncio.CancelledError:
                    pass
            if subscription is not None:
                try:
                    await subscription.unsubscribe()
                except Exception as e:
                    logger.exception("Failed to release live message subscription")
                    await self._report(PersistenceError(f"Failed to unsubscribe from live messages: {e}"))

    def _on_session_change(self, user: Optional[SessionUser]) -> None:
        if user is not None or self.state is SessionState.IDLE:
            return
        logger.info("Session ended; leaving active group")
        self._stale.append(self._invalidate())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # released by the next exit_group() or close()
        self._teardown = loop.create_task(self._release_stale())

    async def _emit(self, event: ChatEvent) -> None:
        for listener in list(self._listeners):
            await _call(listener, event)

    async def _report(self, error: StudyBuddyError) -> None:
        logger.warning(f"Chat session error: {error.message}")
        if self._on_error is None:
            return
        try:
            await _call(self._on_error, error)
        except Exception:
            logger.exception("Chat session error handler failed")
