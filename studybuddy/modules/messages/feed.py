"""Supabase Realtime change feed for new group_messages rows."""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from supabase import AsyncClient

logger = logging.getLogger(__name__)

RowCallback = Callable[[Dict[str, Any]], None]


class FeedSubscription(Protocol):
    async def unsubscribe(self) -> None: ...


class ChangeFeed(Protocol):
    async def subscribe(self, group_id: str, callback: RowCallback) -> FeedSubscription: ...


def extract_record(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Inserted row from a postgres_changes payload (flat or wrapped in "data")"""
    if "data" in payload and isinstance(payload["data"], dict):
        payload = payload["data"]
    return payload.get("record") or payload.get("new")


class ChannelSubscription:
    def __init__(self, supabase: AsyncClient, channel: Any):
        self.supabase = supabase
        self.channel = channel
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        # Flip first: deliveries racing the removal below must not reach the callback
        self.active = False
        await self.supabase.remove_channel(self.channel)
        logger.debug(f"Removed realtime channel {getattr(self.channel, 'topic', '')}")


class SupabaseChangeFeed:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def subscribe(self, group_id: str, callback: RowCallback) -> ChannelSubscription:
        channel = self.supabase.channel(f"group-messages-{group_id}")
        subscription = ChannelSubscription(self.supabase, channel)

        def on_insert(payload: Dict[str, Any]) -> None:
            if not subscription.active:
                return
            record = extract_record(payload)
            if record is None:
                logger.warning(f"Ignoring realtime payload without a record: {payload}")
                return
            callback(record)

        channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table="group_messages",
            filter=f"group_id=eq.{group_id}",
            callback=on_insert,
        )
        await channel.subscribe()
        logger.info(f"Subscribed to live messages for group {group_id}")
        return subscription
