import logging
from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import HTMLResponse
from studybuddy.database.supabase_client import SupabaseClient
from studybuddy.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse
)
from studybuddy.modules.auth.confirmation import ConfirmationService
from studybuddy.modules.auth.service import AuthService
from studybuddy.core.dependencies import get_auth_service, get_current_token, get_current_user_id
from typing import Dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_CONFIRMATION_PAGES = {
    "confirmed": (200, "Email Confirmed Successfully!", "Your email has been verified and your account is now fully activated."),
    "already_confirmed": (200, "Email Already Confirmed", "Your email has already been confirmed. You can now access all StudyBuddy AI features!"),
    "expired": (400, "Link Expired", "This confirmation link has expired (valid for 24 hours). Please request a new confirmation email."),
    "invalid": (400, "Invalid or Expired Link", "This confirmation link is invalid or has expired. Please request a new confirmation email."),
}


def get_confirmation_service() -> ConfirmationService:
    return ConfirmationService(SupabaseClient.get_service_client())


async def send_confirmation(service: ConfirmationService, user_id: str, email: str):
    try:
        await service.issue(user_id, email)
    except Exception as e:
        logger.error(f"Error sending confirmation email to {email}: {e}")


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
    confirmations: ConfirmationService = Depends(get_confirmation_service)
):
    """Register a new user and email a confirmation link"""
    response = service.register(register_data)
    background_tasks.add_task(send_confirmation, confirmations, response.user_id, response.email)
    return response


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user(current_user: Dict = Depends(get_current_user_id)):
    """Get current authenticated user"""
    return current_user


@router.get("/confirm-email", response_class=HTMLResponse)
async def confirm_email(
    token: str = "",
    confirmations: ConfirmationService = Depends(get_confirmation_service)
):
    """Landing page for the link in the confirmation email"""
    result = confirmations.confirm(token)
    status_code, title, message = _CONFIRMATION_PAGES[result.status]
    html = (
        f"<!DOCTYPE html><html><head><title>{title} - StudyBuddy AI</title></head>"
        f"<body><h1>{title}</h1><p>{message}</p></body></html>"
    )
    return HTMLResponse(content=html, status_code=status_code)
