"""
Core dependencies for route protection and membership checking
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from studybuddy.database.supabase_client import get_supabase
from studybuddy.modules.auth.schemas import SessionUser
from studybuddy.modules.auth.service import AuthService
from supabase import Client
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    user_data = auth_service.get_current_user(token)
    return user_data


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


def to_session_user(user_data: dict) -> SessionUser:
    return SessionUser(id=user_data["id"], email=user_data.get("email") or "")


def check_group_member(
    group_id: str,
    user_data: dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase)
) -> dict:
    """Check if user is a member of a group"""
    user_id = user_data["id"]

    try:
        member_result = supabase.table("group_members")\
            .select("group_id")\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .execute()
    except Exception as e:
        logger.error(f"Error checking membership of {user_id} in {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify group membership"
        )

    if member_result.data:
        return user_data

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be a member of this group"
    )
