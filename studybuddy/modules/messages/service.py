import logging
from supabase import Client
from studybuddy.core.exceptions import PersistenceError, ValidationError
from studybuddy.modules.messages.schemas import MessageResponse
from typing import List

logger = logging.getLogger(__name__)


class MessageService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_messages(self, group_id: str) -> List[MessageResponse]:
        """Full message history of a group, oldest first"""
        try:
            result = self.supabase.table("group_messages")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at")\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to load messages: {e}")
        return [MessageResponse(**message) for message in result.data or []]

    def post_message(self, group_id: str, sender_id: str, content: str) -> MessageResponse:
        if not content or not content.strip():
            raise ValidationError("Message cannot be empty")
        try:
            result = self.supabase.table("group_messages").insert({
                "group_id": group_id,
                "sender_id": sender_id,
                "content": content
            }).execute()
        except Exception as e:
            logger.error(f"Error posting message to group {group_id}: {e}")
            raise PersistenceError(f"Failed to send message: {e}")
        if not result.data:
            raise PersistenceError("Failed to send message")
        return MessageResponse(**result.data[0])
