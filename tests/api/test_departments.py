"""Integration tests for the /departments endpoints.

These tests require a PostgreSQL test database and an HTTP test client.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select

from orgflow.models.role import Role
from tests.conftest import (
    auth_headers,
    create_department,
    create_organization,
    create_role,
)

BASE = "/api/v1/departments"


class TestListDepartments:
    async def test_lists_departments_with_roles(self, client, db, org, member_user):
        department = await create_department(db, organization=org, name="Ventes")
        await create_role(db, department=department, name="Commercial")
        other_org = await create_organization(db, name="Other")
        await create_department(db, organization=other_org, name="Hidden")

        resp = await client.get(BASE, headers=auth_headers(member_user))
        assert resp.status_code == 200
        [data] = resp.json()
        assert data["name"] == "Ventes"
        assert [r["name"] for r in data["roles"]] == ["Commercial"]
        assert data["roles"][0]["departmentId"] == str(department.id)

    async def test_without_organization(self, client, db, outsider_user):
        resp = await client.get(BASE, headers=auth_headers(outsider_user))
        assert resp.status_code == 403


class TestCreateDepartment:
    async def test_create(self, client, db, org, owner_user):
        resp = await client.post(
            BASE, json={"name": " Finance ", "color": "#aabbcc"}, headers=auth_headers(owner_user)
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Finance"
        assert data["color"] == "#AABBCC"
        assert data["roles"] == []

    async def test_default_color(self, client, db, org, owner_user):
        resp = await client.post(BASE, json={"name": "Finance"}, headers=auth_headers(owner_user))
        assert resp.json()["color"] == "#C7D2FE"

    async def test_duplicate_name_case_insensitive(self, client, db, org, owner_user):
        await create_department(db, organization=org, name="Finance")
        resp = await client.post(BASE, json={"name": "FINANCE"}, headers=auth_headers(owner_user))
        assert resp.status_code == 409

    async def test_member_cannot_create(self, client, db, org, member_user):
        resp = await client.post(BASE, json={"name": "Finance"}, headers=auth_headers(member_user))
        assert resp.status_code == 403

    async def test_invalid_color(self, client, db, org, owner_user):
        resp = await client.post(
            BASE, json={"name": "Finance", "color": "#FFF"}, headers=auth_headers(owner_user)
        )
        assert resp.status_code == 422

    async def test_name_too_long(self, client, db, org, owner_user):
        resp = await client.post(BASE, json={"name": "x" * 121}, headers=auth_headers(owner_user))
        assert resp.status_code == 422


class TestUpdateDepartment:
    async def test_rename_and_recolor(self, client, db, org, owner_user):
        department = await create_department(db, organization=org, name="Ventes")
        resp = await client.patch(
            f"{BASE}/{department.id}",
            json={"name": "Commerce", "color": "#112233"},
            headers=auth_headers(owner_user),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Commerce"
        assert resp.json()["color"] == "#112233"

    async def test_rename_to_existing_name(self, client, db, org, owner_user):
        await create_department(db, organization=org, name="Finance")
        department = await create_department(db, organization=org, name="Ventes")
        resp = await client.patch(
            f"{BASE}/{department.id}", json={"name": "finance"}, headers=auth_headers(owner_user)
        )
        assert resp.status_code == 409

    async def test_keep_own_name_with_new_case(self, client, db, org, owner_user):
        department = await create_department(db, organization=org, name="Ventes")
        resp = await client.patch(
            f"{BASE}/{department.id}", json={"name": "VENTES"}, headers=auth_headers(owner_user)
        )
        assert resp.status_code == 200

    async def test_other_organization_not_found(self, client, db, org, owner_user):
        other_org = await create_organization(db, name="Other")
        foreign = await create_department(db, organization=other_org, name="Secret")
        resp = await client.patch(
            f"{BASE}/{foreign.id}", json={"name": "Mine"}, headers=auth_headers(owner_user)
        )
        assert resp.status_code == 404

    async def test_member_forbidden(self, client, db, org, member_user):
        department = await create_department(db, organization=org, name="Ventes")
        resp = await client.patch(
            f"{BASE}/{department.id}", json={"name": "X"}, headers=auth_headers(member_user)
        )
        assert resp.status_code == 403


class TestDeleteDepartment:
    async def test_delete_removes_roles(self, client, db, org, owner_user):
        department = await create_department(db, organization=org, name="Ventes")
        role = await create_role(db, department=department)
        resp = await client.delete(f"{BASE}/{department.id}", headers=auth_headers(owner_user))
        assert resp.status_code == 204

        remaining = await db.execute(select(Role).where(Role.id == role.id))
        assert remaining.scalar_one_or_none() is None

    async def test_unknown(self, client, db, org, owner_user):
        resp = await client.delete(f"{BASE}/{uuid.uuid4()}", headers=auth_headers(owner_user))
        assert resp.status_code == 404


class TestDepartmentRoles:
    async def test_create_role(self, client, db, org, owner_user):
        department = await create_department(db, organization=org, name="Ventes")
        resp = await client.post(
            f"{BASE}/{department.id}/roles",
            json={"name": "Commercial", "color": "#fde68a"},
            headers=auth_headers(owner_user),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Commercial"
        assert data["color"] == "#FDE68A"
        assert data["departmentId"] == str(department.id)

    async def test_cascade_replaces_roles(self, client, db, org, owner_user):
        department = await create_department(db, organization=org, name="Ventes")
        kept = await create_role(db, department=department, name="Commercial")
        dropped = await create_role(db, department=department, name="Stagiaire")

        resp = await client.put(
            f"{BASE}/{department.id}/cascade",
            json={
                "name": "Commerce",
                "color": "#445566",
                "roles": [
                    {"id": str(kept.id), "name": "Commercial senior", "color": "#C7D2FE"},
                    {"name": "Assistant"},
                ],
            },
            headers=auth_headers(owner_user),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Commerce"
        assert {r["name"] for r in data["roles"]} == {"Commercial senior", "Assistant"}
        assert str(dropped.id) not in {r["id"] for r in data["roles"]}
        assert str(kept.id) in {r["id"] for r in data["roles"]}

    async def test_cascade_unknown_role(self, client, db, org, owner_user):
        department = await create_department(db, organization=org, name="Ventes")
        resp = await client.put(
            f"{BASE}/{department.id}/cascade",
            json={"name": "Ventes", "color": "#445566", "roles": [{"id": str(uuid.uuid4()), "name": "X"}]},
            headers=auth_headers(owner_user),
        )
        assert resp.status_code == 404
