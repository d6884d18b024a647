"""Integration tests for the /job-descriptions endpoints.

The chat-completion client is replaced by the scripted ``FakeLLM`` from
conftest; these tests require a PostgreSQL test database.
"""

from __future__ import annotations

import json

from prometheus_client import REGISTRY

from orgflow.services.llm_client import LLMError
from tests.conftest import (
    auth_headers,
    create_department,
    create_organization,
    create_process,
    create_role,
    step,
)

BASE = "/api/v1/job-descriptions"

ANSWER = {
    "title": "Commercial terrain",
    "generalDescription": "Développer le portefeuille clients",
    "responsibilities": ["Qualifier les prospects (Vente, étape s2)"],
    "objectives": ["Négociation"],
    "collaboration": ["Non spécifié dans les données"],
    "content": "Commercial terrain\n\nMission générale: Développer le portefeuille clients",
}


def _generations(outcome):
    return (
        REGISTRY.get_sample_value("job_description_generations_total", {"outcome": outcome})
        or 0.0
    )


async def _role_in_process(db, org):
    department = await create_department(db, organization=org, name="Ventes")
    role = await create_role(db, department=department, name="Commercial")
    await create_process(
        db,
        organization=org,
        title="Vente",
        steps=[
            step("s1", "start", "Début", yes="s2"),
            step("s2", "action", "Qualifier", department_id=department.id, role_id=role.id, yes="s3"),
            step("s3", "finish", "Fin"),
        ],
    )
    return role


class TestReadJobDescription:
    async def test_none_yet(self, client, db, org, member_user):
        role = await _role_in_process(db, org)
        resp = await client.get(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.status_code == 200
        assert resp.json() == {"jobDescription": None}

    async def test_foreign_role(self, client, db, org, member_user):
        other_org = await create_organization(db, name="Other")
        department = await create_department(db, organization=other_org)
        foreign = await create_role(db, department=department)
        resp = await client.get(f"{BASE}/{foreign.id}", headers=auth_headers(member_user))
        assert resp.status_code == 404


class TestGenerateJobDescription:
    async def test_generate_and_read_back(self, client, db, org, member_user, fake_llm):
        role = await _role_in_process(db, org)
        fake_llm.responses.append(json.dumps(ANSWER))
        before = _generations("success")

        resp = await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.status_code == 201
        data = resp.json()["jobDescription"]
        assert data["roleId"] == str(role.id)
        assert data["organizationId"] == str(org.id)
        assert data["sections"]["title"] == "Commercial terrain"
        assert data["sections"]["responsibilities"] == ANSWER["responsibilities"]
        assert data["content"] == ANSWER["content"]
        assert _generations("success") == before + 1

        resp = await client.get(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.json()["jobDescription"]["sections"]["title"] == "Commercial terrain"

    async def test_request_parameters(self, client, db, org, member_user, fake_llm):
        role = await _role_in_process(db, org)
        fake_llm.responses.append(json.dumps(ANSWER))
        await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))

        [call] = fake_llm.calls
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == 650
        assert call["response_format"]["type"] == "json_schema"
        system, user = call["messages"]
        assert system["role"] == "system"
        assert "Qualifier" in user["content"]
        assert "Ventes" in user["content"]

    async def test_regeneration_replaces_and_sees_previous(
        self, client, db, org, member_user, fake_llm
    ):
        role = await _role_in_process(db, org)
        fake_llm.responses.append(json.dumps(ANSWER))
        fake_llm.responses.append(json.dumps(dict(ANSWER, title="Chargé d'affaires")))
        await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        resp = await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))

        assert resp.json()["jobDescription"]["sections"]["title"] == "Chargé d'affaires"
        assert "Commercial terrain" in fake_llm.calls[1]["messages"][1]["content"]

    async def test_role_in_no_process(self, client, db, org, member_user, fake_llm):
        department = await create_department(db, organization=org)
        role = await create_role(db, department=department)
        resp = await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.status_code == 404
        assert fake_llm.calls == []

    async def test_llm_failure(self, client, db, org, member_user, fake_llm):
        role = await _role_in_process(db, org)
        fake_llm.responses.append(LLMError("upstream down"))
        before = _generations("llm_error")

        resp = await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.status_code == 502
        assert _generations("llm_error") == before + 1

    async def test_unusable_output(self, client, db, org, member_user, fake_llm):
        role = await _role_in_process(db, org)
        fake_llm.responses.append("Désolé, je ne peux pas.")
        before = _generations("invalid_output")

        resp = await client.post(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.status_code == 500
        assert _generations("invalid_output") == before + 1

        resp = await client.get(f"{BASE}/{role.id}", headers=auth_headers(member_user))
        assert resp.json() == {"jobDescription": None}

    async def test_foreign_role(self, client, db, org, member_user, fake_llm):
        other_org = await create_organization(db, name="Other")
        department = await create_department(db, organization=other_org)
        foreign = await create_role(db, department=department)
        resp = await client.post(f"{BASE}/{foreign.id}", headers=auth_headers(member_user))
        assert resp.status_code == 404


class TestExportJobDescription:
    async def _generated(self, client, db, org, user, fake_llm):
        role = await _role_in_process(db, org)
        fake_llm.responses.append(json.dumps(ANSWER))
        resp = await client.post(f"{BASE}/{role.id}", headers=auth_headers(user))
        assert resp.status_code == 201
        return role

    async def test_pdf_by_default(self, client, db, org, member_user, fake_llm):
        role = await self._generated(client, db, org, member_user, fake_llm)
        resp = await client.get(f"{BASE}/{role.id}/export", headers=auth_headers(member_user))
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert (
            resp.headers["content-disposition"] == 'attachment; filename="fiche-commercial.pdf"'
        )
        assert resp.content.startswith(b"%PDF-1.4")
        assert resp.content.rstrip().endswith(b"%%EOF")
        assert b"(Commercial) Tj" in resp.content
        assert b"(Ventes) Tj" in resp.content

    async def test_doc(self, client, db, org, member_user, fake_llm):
        role = await self._generated(client, db, org, member_user, fake_llm)
        resp = await client.get(
            f"{BASE}/{role.id}/export?format=doc", headers=auth_headers(member_user)
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/msword")
        assert resp.headers["content-disposition"].endswith('filename="fiche-commercial.doc"')
        assert '<html lang="fr">' in resp.text
        assert ">Commercial</h1>" in resp.text
        assert "Développer le portefeuille clients" in resp.text
        # Header band tinted with the role color (#FDE68A)
        assert "background: rgba(253, 230, 138, 0.12);" in resp.text

    async def test_unknown_format(self, client, db, org, member_user, fake_llm):
        role = await self._generated(client, db, org, member_user, fake_llm)
        resp = await client.get(
            f"{BASE}/{role.id}/export?format=odt", headers=auth_headers(member_user)
        )
        assert resp.status_code == 422

    async def test_none_yet(self, client, db, org, member_user):
        role = await _role_in_process(db, org)
        resp = await client.get(f"{BASE}/{role.id}/export", headers=auth_headers(member_user))
        assert resp.status_code == 404

    async def test_foreign_role(self, client, db, org, member_user, outsider_user, fake_llm):
        role = await self._generated(client, db, org, member_user, fake_llm)
        resp = await client.get(f"{BASE}/{role.id}/export", headers=auth_headers(outsider_user))
        assert resp.status_code == 404
