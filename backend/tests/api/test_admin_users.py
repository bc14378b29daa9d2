import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.user import User


@pytest.mark.asyncio
async def test_list_users_admin_success(client: AsyncClient, admin, base_user, headers_for):
    response = await client.get("/api/v1/admin/users?limit=10", headers=headers_for(admin))
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    usernames = {u["username"] for u in data["items"]}
    assert usernames == {"admin", "dancer"}
    assert all("email" in u for u in data["items"])


@pytest.mark.asyncio
async def test_list_users_search(client: AsyncClient, admin, base_user, headers_for):
    response = await client.get("/api/v1/admin/users?search=danc", headers=headers_for(admin))
    assert [u["username"] for u in response.json()["items"]] == ["dancer"]


@pytest.mark.asyncio
async def test_list_users_forbidden_for_non_admin(client: AsyncClient, moderator, headers_for):
    response = await client.get("/api/v1/admin/users", headers=headers_for(moderator))
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


@pytest.mark.asyncio
async def test_forged_level_claim_is_ignored(client: AsyncClient, base_user, headers_for):
    headers = headers_for(base_user, auth_level=3)
    response = await client.get("/api/v1/admin/users", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_ban_and_unban(client: AsyncClient, admin, base_user, headers_for, session_maker):
    user_id = base_user.user_id
    response = await client.post(
        f"/api/v1/admin/users/{user_id}/ban",
        json={"banned": True, "reason": "spam"},
        headers=headers_for(admin),
    )
    assert response.status_code == 200
    assert response.json()["is_banned"] is True

    async with session_maker() as session:
        stored = await session.scalar(select(User).where(User.user_id == user_id))
        assert stored.banned_reason == "spam"

    response = await client.post(
        f"/api/v1/admin/users/{user_id}/ban", json={"banned": False}, headers=headers_for(admin)
    )
    assert response.json()["is_banned"] is False


@pytest.mark.asyncio
async def test_super_admin_cannot_be_banned(client: AsyncClient, admin, super_admin, headers_for):
    response = await client.post(
        f"/api/v1/admin/users/{super_admin.user_id}/ban", json={"banned": True}, headers=headers_for(admin)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Super admins cannot be banned"


@pytest.mark.asyncio
async def test_assign_cities(client: AsyncClient, admin, moderator, headers_for):
    response = await client.put(
        f"/api/v1/admin/users/{moderator.user_id}/cities",
        json={"city_ids": ["paris", "berlin"]},
        headers=headers_for(admin),
    )
    assert response.status_code == 200
    assert response.json()["city_ids"] == ["berlin", "paris"]


@pytest.mark.asyncio
async def test_admin_deletes_user(client: AsyncClient, admin, base_user, headers_for, session_maker):
    user_id = base_user.user_id
    response = await client.delete(f"/api/v1/admin/users/{user_id}", headers=headers_for(admin))
    assert response.status_code == 200
    assert response.json() == {"message": "User deleted"}

    async with session_maker() as session:
        assert await session.scalar(select(User).where(User.user_id == user_id)) is None

    missing = await client.delete(f"/api/v1/admin/users/{uuid.uuid4()}", headers=headers_for(admin))
    assert missing.status_code == 404
