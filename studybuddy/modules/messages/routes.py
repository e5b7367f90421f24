import logging
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from studybuddy.database.supabase_client import get_supabase, get_async_supabase
from studybuddy.core.dependencies import get_current_user_id, check_group_member, to_session_user
from studybuddy.core.exceptions import StudyBuddyError, ValidationError
from studybuddy.modules.auth.service import AuthService
from studybuddy.modules.auth.session import SessionContext
from studybuddy.modules.groups.service import GroupService
from studybuddy.modules.messages.feed import SupabaseChangeFeed
from studybuddy.modules.messages.schemas import ChatEvent, MessageCreate, MessageResponse
from studybuddy.modules.messages.service import MessageService
from studybuddy.modules.messages.store import SupabaseMessageStore
from studybuddy.modules.messages.sync import GroupChatSession
from supabase import Client
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["messages"])


def get_message_service(supabase: Client = Depends(get_supabase)) -> MessageService:
    return MessageService(supabase)


async def get_chat_backend():
    """Store and change feed for live sessions; membership is checked by the session itself"""
    client = await get_async_supabase()
    return SupabaseMessageStore(client), SupabaseChangeFeed(client)


@router.get("/{group_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
    supabase: Client = Depends(get_supabase)
):
    """Message history of a group (members only)"""
    check_group_member(group_id, user_data, supabase)
    return service.list_messages(group_id)


@router.post("/{group_id}/messages", response_model=MessageResponse, status_code=201)
async def post_message(
    group_id: str,
    message: MessageCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
    supabase: Client = Depends(get_supabase)
):
    """Send a message to a group (members only)"""
    if not message.content.strip():
        raise ValidationError("Message cannot be empty")
    check_group_member(group_id, user_data, supabase)
    return service.post_message(group_id, user_data["id"], message.content)


@router.websocket("/{group_id}/live")
async def live_group_chat(
    websocket: WebSocket,
    group_id: str,
    token: Optional[str] = None,
    supabase: Client = Depends(get_supabase),
    backend=Depends(get_chat_backend)
):
    """Live chat for one group.

    Server frames are ChatEvent JSON (reset / append / error); the client sends
    {"type": "send", "content": "..."}.
    """
    try:
        user_data = AuthService(supabase).get_current_user(token or "")
        group = GroupService(supabase).get_group(group_id)
    except HTTPException:
        await websocket.close(code=4401)
        return
    except StudyBuddyError as e:
        # 4xx errors map onto private close codes 44xx
        await websocket.close(code=4000 + e.status_code if e.status_code < 500 else 1011)
        return

    await websocket.accept()

    async def forward(event: ChatEvent):
        await websocket.send_json(event.model_dump(mode="json"))

    async def forward_error(error: StudyBuddyError):
        await forward(ChatEvent(type="error", detail=error.message))

    store, feed = backend
    session = SessionContext(user=to_session_user(user_data))
    async with GroupChatSession(store, feed, session, on_error=forward_error) as chat:
        chat.on_change(forward)
        try:
            await chat.enter_group(group)
        except StudyBuddyError as e:
            await forward_error(e)
            await websocket.close(code=4403)
            return

        try:
            while True:
                try:
                    frame = await websocket.receive_json()
                except ValueError:
                    await forward_error(ValidationError("Frames must be JSON objects"))
                    continue
                if not isinstance(frame, dict):
                    await forward_error(ValidationError("Frames must be JSON objects"))
                    continue
                if frame.get("type") != "send":
                    await forward_error(ValidationError(f"Unknown frame type: {frame.get('type')}"))
                    continue
                content = frame.get("content")
                try:
                    await chat.send_message(group_id, content if isinstance(content, str) else "")
                except StudyBuddyError as e:
                    await forward_error(e)
        except WebSocketDisconnect:
            logger.info(f"Live chat for group {group_id} disconnected ({user_data['id']})")
