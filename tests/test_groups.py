import re

import pytest

from studybuddy.core.exceptions import (
    JoinError, MembershipError, NotFoundError, PersistenceError, ValidationError
)
from studybuddy.modules.groups import service as group_service_module
from studybuddy.modules.groups.service import GroupService, generate_join_code, normalize_join_code


def test_join_code_shape():
    for _ in range(50):
        assert re.fullmatch(r"[A-Z0-9]{6}", generate_join_code())


def test_normalize_join_code():
    assert normalize_join_code("  ab12cd ") == "AB12CD"
    with pytest.raises(ValidationError):
        normalize_join_code("   ")
    with pytest.raises(ValidationError):
        normalize_join_code("AB-12")


def test_create_group_adds_creator(fake_supabase):
    service = GroupService(fake_supabase)
    group = service.create_group("Physics", "u1")

    assert group.name == "Physics"
    assert group.created_by == "u1"
    assert re.fullmatch(r"[A-Z0-9]{6}", group.code)
    assert service.is_member(group.id, "u1")


def test_create_group_rejects_blank_name(fake_supabase):
    with pytest.raises(ValidationError):
        GroupService(fake_supabase).create_group("   ", "u1")
    assert fake_supabase.calls == []


def test_code_collision_surfaces_as_persistence_error(fake_supabase, monkeypatch):
    monkeypatch.setattr(group_service_module, "generate_join_code", lambda: "ABC123")
    service = GroupService(fake_supabase)
    service.create_group("First", "u1")

    with pytest.raises(PersistenceError):
        service.create_group("Second", "u2")
    assert fake_supabase.count("groups") == 1


def test_membership_failure_keeps_group_and_allows_retry(fake_supabase):
    service = GroupService(fake_supabase)
    fake_supabase.fail("insert", "group_members")

    with pytest.raises(MembershipError) as exc_info:
        service.create_group("Chemistry", "u1")
    group = exc_info.value.group
    assert group is not None
    assert fake_supabase.count("groups") == 1
    assert not service.is_member(group.id, "u1")

    fake_supabase.heal("insert", "group_members")
    service.ensure_membership(group.id, "u1")
    service.ensure_membership(group.id, "u1")
    assert fake_supabase.count("group_members", group_id=group.id, user_id="u1") == 1
    assert fake_supabase.count("groups") == 1


def test_join_is_idempotent_and_case_insensitive(fake_supabase):
    service = GroupService(fake_supabase)
    group = service.create_group("Physics", "u1")

    joined = service.join_group(group.code.lower(), "u2")
    again = service.join_group(f" {group.code} ", "u2")

    assert joined.id == again.id == group.id
    assert fake_supabase.count("group_members", group_id=group.id, user_id="u2") == 1
    assert fake_supabase.count("group_members", group_id=group.id) == 2


def test_join_unknown_code_is_not_found(fake_supabase):
    service = GroupService(fake_supabase)
    with pytest.raises(NotFoundError):
        service.join_group("ZZZZZZ", "u3")


def test_join_failure_is_distinct_from_not_found(fake_supabase):
    service = GroupService(fake_supabase)
    group = service.create_group("Physics", "u1")
    fake_supabase.fail("insert", "group_members")

    with pytest.raises(JoinError):
        service.join_group(group.code, "u2")


def test_lookup_transport_error_is_persistence_error(fake_supabase):
    fake_supabase.fail("select", "groups")
    with pytest.raises(PersistenceError) as exc_info:
        GroupService(fake_supabase).join_group("ABC123", "u2")
    assert not isinstance(exc_info.value, NotFoundError)


def test_leave_is_idempotent(fake_supabase):
    service = GroupService(fake_supabase)
    group = service.create_group("Physics", "u1")

    service.leave_group(group.id, "u1")
    service.leave_group(group.id, "u1")
    service.leave_group(group.id, "nobody")

    assert not service.is_member(group.id, "u1")


def test_list_my_groups(fake_supabase):
    service = GroupService(fake_supabase)
    physics = service.create_group("Physics", "u1")
    biology = service.create_group("Biology", "u2")
    service.create_group("History", "u3")
    service.join_group(biology.code, "u1")

    groups = service.list_my_groups("u1")

    assert [g.id for g in groups] == [physics.id, biology.id]
    assert service.list_my_groups("nobody") == []


def test_group_routes(client, auth_as, fake_supabase):
    auth_as("u1")
    created = client.post("/api/v1/groups", json={"name": "Physics"})
    assert created.status_code == 201
    group = created.json()
    assert re.fullmatch(r"[A-Z0-9]{6}", group["code"])

    auth_as("u2")
    joined = client.post("/api/v1/groups/join", json={"code": group["code"].lower()})
    assert joined.status_code == 200
    assert fake_supabase.count("group_members", group_id=group["id"]) == 2

    missing = client.post("/api/v1/groups/join", json={"code": "ZZZZZZ"})
    if group["code"] != "ZZZZZZ":
        assert missing.status_code == 404

    blank = client.post("/api/v1/groups/join", json={"code": "  "})
    assert blank.status_code == 400

    mine = client.get("/api/v1/groups")
    assert [g["id"] for g in mine.json()] == [group["id"]]

    assert client.delete(f"/api/v1/groups/{group['id']}/membership").status_code == 204
    assert client.get(f"/api/v1/groups/{group['id']}").status_code == 403


def test_membership_retry_route(client, auth_as, fake_supabase):
    auth_as("u1")
    fake_supabase.fail("insert", "group_members")
    created = client.post("/api/v1/groups", json={"name": "Physics"})
    assert created.status_code == 500
    group_id = created.json()["group"]["id"]

    fake_supabase.heal("insert", "group_members")
    auth_as("u2")
    assert client.post(f"/api/v1/groups/{group_id}/membership").status_code == 403

    auth_as("u1")
    assert client.post(f"/api/v1/groups/{group_id}/membership").status_code == 204
    assert client.get(f"/api/v1/groups/{group_id}").status_code == 200
