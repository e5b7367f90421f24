"""Async access to group_messages / group_members for live chat sessions."""

import logging
from typing import Any, Dict, List, Protocol

from supabase import AsyncClient

from studybuddy.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    async def is_member(self, group_id: str, user_id: str) -> bool: ...

    async def fetch_history(self, group_id: str) -> List[Dict[str, Any]]: ...

    async def insert_message(self, group_id: str, sender_id: str, content: str) -> Dict[str, Any]: ...


class SupabaseMessageStore:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def is_member(self, group_id: str, user_id: str) -> bool:
        try:
            result = await self.supabase.table("group_members")\
                .select("group_id")\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to check membership: {e}")
        return bool(result.data)

    async def fetch_history(self, group_id: str) -> List[Dict[str, Any]]:
        """All messages of the group, oldest first"""
        try:
            result = await self.supabase.table("group_messages")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at")\
                .execute()
        except Exception as e:
            logger.error(f"Error loading messages for group {group_id}: {e}")
            raise PersistenceError(f"Failed to load messages: {e}")
        return result.data or []

    async def insert_message(self, group_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        try:
            result = await self.supabase.table("group_messages").insert({
                "group_id": group_id,
                "sender_id": sender_id,
                "content": content
            }).execute()
        except Exception as e:
            logger.error(f"Error sending message to group {group_id}: {e}")
            raise PersistenceError(f"Failed to send message: {e}")
        if not result.data:
            raise PersistenceError("Failed to send message")
        return result.data[0]
