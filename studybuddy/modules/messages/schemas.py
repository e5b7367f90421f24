from pydantic import BaseModel
from typing import List, Literal, Optional
from datetime import datetime


class MessageCreate(BaseModel):
    content: str


class MessageResponse(BaseModel):
    id: str
    group_id: str
    sender_id: str
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LocalMessage(BaseModel):
    """One entry of a chat session's local view.

    `id` is the durable message id, or a `local-` id while the entry is an
    optimistic copy; `durable_id` always names the persisted message.
    """
    id: str
    durable_id: str
    sender_id: str
    sender_display_name: str
    content: str
    timestamp: datetime
    is_ai: bool = False


class ChatEvent(BaseModel):
    type: Literal["reset", "append", "error"]
    messages: List[LocalMessage] = []
    message: Optional[LocalMessage] = None
    detail: Optional[str] = None
