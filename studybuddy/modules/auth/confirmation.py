import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import Optional

import aiosmtplib
from supabase import Client

from studybuddy.config import settings
from studybuddy.core.exceptions import PersistenceError, ValidationError
from studybuddy.modules.auth.schemas import ConfirmationResult

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_confirmation_token() -> str:
    return f"{uuid.uuid4()}-{_to_base36(int(time.time() * 1000))}"


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_confirmation_email(email: str, confirmation_url: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = "Confirm your StudyBuddy AI account"
    msg["From"] = settings.email_from
    msg["To"] = email
    msg.set_content(
        "Welcome to StudyBuddy AI!\n\n"
        "Please confirm your email address to start using AI tutoring, study groups and flashcards:\n"
        f"{confirmation_url}\n\n"
        f"This link expires in {settings.confirmation_ttl_hours} hours. "
        "If you didn't create a StudyBuddy AI account, you can ignore this email."
    )
    msg.add_alternative(
        "<h2>Welcome to StudyBuddy AI!</h2>"
        "<p>Please confirm your email address to get started.</p>"
        f'<p><a href="{confirmation_url}">Confirm Your Email Address</a></p>'
        f"<p>This link expires in {settings.confirmation_ttl_hours} hours.</p>",
        subtype="html",
    )
    return msg


async def send_email(msg: EmailMessage):
    await aiosmtplib.send(
        msg,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        start_tls=True,
    )


class ConfirmationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def confirmation_url(self, token: str) -> str:
        return f"{settings.public_base_url.rstrip('/')}/api/v1/auth/confirm-email?token={token}"

    async def issue(self, user_id: str, email: str, now: Optional[datetime] = None) -> str:
        """Store a fresh confirmation token and email the confirm link. Returns the token."""
        now = now or datetime.now(timezone.utc)
        token = generate_confirmation_token()
        try:
            self.supabase.table("email_confirmations").insert({
                "user_id": user_id,
                "email": email,
                "token": token,
                "expires_at": (now + timedelta(hours=settings.confirmation_ttl_hours)).isoformat(),
            }).execute()
        except Exception as e:
            logger.error(f"Failed to store confirmation token for {user_id}: {e}")
            raise PersistenceError("Failed to store confirmation token")

        logger.info(f"Sending confirmation email to {email}")
        await send_email(build_confirmation_email(email, self.confirmation_url(token)))
        return token

    def confirm(self, token: str, now: Optional[datetime] = None) -> ConfirmationResult:
        if not token:
            raise ValidationError("Missing confirmation token")
        now = now or datetime.now(timezone.utc)
        try:
            result = self.supabase.table("email_confirmations")\
                .select("*")\
                .eq("token", token)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to look up confirmation token: {e}")

        if not result.data:
            return ConfirmationResult(status="invalid")
        confirmation = result.data[0]
        user_id = confirmation.get("user_id")

        if confirmation.get("confirmed_at"):
            return ConfirmationResult(status="already_confirmed", user_id=user_id)
        if now > _parse_timestamp(confirmation["expires_at"]):
            return ConfirmationResult(status="expired", user_id=user_id)

        try:
            self.supabase.table("email_confirmations").update({
                "confirmed_at": now.isoformat(),
                "attempts": (confirmation.get("attempts") or 0) + 1,
                "updated_at": now.isoformat(),
            }).eq("token", token).execute()
        except Exception as e:
            raise PersistenceError(f"Failed to confirm email: {e}")

        logger.info(f"Email confirmed for user {user_id}")
        return ConfirmationResult(status="confirmed", user_id=user_id)
