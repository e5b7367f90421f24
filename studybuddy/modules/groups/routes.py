from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from studybuddy.database.supabase_client import get_supabase
from studybuddy.core.exceptions import MembershipError, UnauthorizedError
from studybuddy.modules.groups.schemas import GroupCreate, GroupJoin, GroupResponse
from studybuddy.modules.groups.service import GroupService
from studybuddy.core.dependencies import get_current_user_id, check_group_member
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(supabase: Client = Depends(get_supabase)) -> GroupService:
    return GroupService(supabase)


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Create a new group; the response carries the join code"""
    try:
        return service.create_group(group_data.name, user_data["id"])
    except MembershipError as e:
        # Group exists; client retries with POST /groups/{id}/membership
        return JSONResponse(
            status_code=500,
            content={"detail": e.message, "group": e.group.model_dump(mode="json")}
        )


@router.post("/join", response_model=GroupResponse)
async def join_group(
    join_data: GroupJoin,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Join a group by its code (case-insensitive)"""
    return service.join_group(join_data.code, user_data["id"])


@router.get("", response_model=List[GroupResponse])
async def list_my_groups(
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """List groups the user is a member of"""
    return service.list_my_groups(user_data["id"])


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    """Get group by ID (only if user is a member)"""
    check_group_member(group_id, user_data, supabase)
    return service.get_group(group_id)


@router.post("/{group_id}/membership", status_code=204)
async def retry_creator_membership(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Re-add the creator to a group whose creation left them without a membership row"""
    group = service.get_group(group_id)
    if group.created_by != user_data["id"]:
        raise UnauthorizedError("Only the group creator can restore their membership; join with the group code instead")
    service.ensure_membership(group_id, user_data["id"])
    return None


@router.delete("/{group_id}/membership", status_code=204)
async def leave_group(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Leave a group"""
    service.leave_group(group_id, user_data["id"])
    return None
