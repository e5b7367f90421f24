import logging
import re
import secrets
import string
from supabase import Client
from studybuddy.core.exceptions import (
    JoinError, MembershipError, NotFoundError, PersistenceError, ValidationError
)
from studybuddy.modules.groups.schemas import GroupResponse
from typing import List

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_LENGTH = 6
_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")


def generate_join_code() -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def normalize_join_code(code: str) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("Please enter a group code")
    if not _CODE_PATTERN.match(normalized):
        raise ValidationError("Group codes contain only letters and digits")
    return normalized


class GroupService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_group(self, name: str, creator_id: str) -> GroupResponse:
        """Create a group with a fresh join code, then add the creator as a member.

        A duplicate code is rejected by the store's unique constraint and surfaces
        as PersistenceError. If only the membership insert fails, MembershipError
        carries the created group so the caller can retry ensure_membership().
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter a group name")

        code = generate_join_code()
        try:
            result = self.supabase.table("groups").insert({
                "name": name,
                "code": code,
                "created_by": creator_id
            }).execute()
        except Exception as e:
            logger.error(f"Error creating group {name!r}: {e}")
            raise PersistenceError(f"Failed to create group: {e}")

        if not result.data:
            raise PersistenceError("Failed to create group")
        group = GroupResponse(**result.data[0])
        logger.info(f"Created group {group.id} with code {group.code}")

        try:
            self._insert_membership(group.id, creator_id)
        except PersistenceError as e:
            raise MembershipError(
                f"Group {group.code} was created but joining it failed: {e.message}",
                group=group
            )
        return group

    def get_group(self, group_id: str) -> GroupResponse:
        try:
            result = self.supabase.table("groups")\
                .select("*")\
                .eq("id", group_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to load group: {e}")

        if not result.data:
            raise NotFoundError("Group not found")
        return GroupResponse(**result.data[0])

    def find_by_code(self, code: str) -> GroupResponse:
        normalized = normalize_join_code(code)
        try:
            result = self.supabase.table("groups")\
                .select("*")\
                .eq("code", normalized)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to look up group code: {e}")

        if not result.data:
            raise NotFoundError("Invalid group code")
        return GroupResponse(**result.data[0])

    def is_member(self, group_id: str, user_id: str) -> bool:
        try:
            result = self.supabase.table("group_members")\
                .select("group_id")\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to check membership: {e}")
        return bool(result.data)

    def _insert_membership(self, group_id: str, user_id: str) -> None:
        try:
            result = self.supabase.table("group_members").insert({
                "group_id": group_id,
                "user_id": user_id
            }).execute()
        except Exception as e:
            logger.error(f"Error adding {user_id} to group {group_id}: {e}")
            raise PersistenceError(str(e))
        if not result.data:
            raise PersistenceError("Failed to add member")

    def ensure_membership(self, group_id: str, user_id: str) -> None:
        """Insert the membership row unless it already exists"""
        if not self.is_member(group_id, user_id):
            self._insert_membership(group_id, user_id)

    def join_group(self, code: str, user_id: str) -> GroupResponse:
        """Join by code; joining a group you already belong to returns it unchanged"""
        group = self.find_by_code(code)
        if self.is_member(group.id, user_id):
            return group

        try:
            self._insert_membership(group.id, user_id)
        except PersistenceError as e:
            # A concurrent join for the same user trips the unique pair constraint
            if self.is_member(group.id, user_id):
                return group
            raise JoinError(f"Failed to join group: {e.message}")
        logger.info(f"User {user_id} joined group {group.id}")
        return group

    def leave_group(self, group_id: str, user_id: str) -> None:
        """Delete the membership row; leaving a group you are not in affects zero rows"""
        try:
            self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to leave group: {e}")

    def list_my_groups(self, user_id: str) -> List[GroupResponse]:
        """Groups the user is a member of, oldest first, one entry per group"""
        try:
            result = self.supabase.table("group_members")\
                .select("group_id, groups(*)")\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Failed to list groups: {e}")

        groups = {}
        for item in result.data or []:
            group = item.get("groups")
            if group and group["id"] not in groups:
                groups[group["id"]] = GroupResponse(**group)
        return sorted(groups.values(), key=lambda g: (g.created_at is None, g.created_at or 0, g.id))
