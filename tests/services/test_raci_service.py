"""Unit tests for orgflow.services.raci_service: per-role action summaries."""

from __future__ import annotations

import uuid
from types import SimpleNamespace

from orgflow.services.raci_service import build_role_action_summaries
from orgflow.services.role_profile import DEFAULT_DEPARTMENT_NAME, DEFAULT_ROLE_NAME


def _role(name, department_name="Ventes", color="#C7D2FE"):
    department_id = uuid.uuid4()
    return SimpleNamespace(
        id=uuid.uuid4(),
        name=name,
        department_id=department_id,
        color=color,
        department=SimpleNamespace(id=department_id, name=department_name),
    )


def _process(title, steps):
    return SimpleNamespace(id=uuid.uuid4(), title=title, steps=steps)


def _step(step_id, type_, role, label):
    return {"id": step_id, "label": label, "type": type_, "roleId": str(role.id) if role else None}


class TestBuildRoleActionSummaries:
    def test_actions_and_decisions(self):
        seller = _role("Commercial")
        process = _process(
            "Vente",
            [
                _step("a", "start", seller, "Début"),
                _step("b", "action", seller, "Qualifier"),
                _step("c", "decision", seller, "Valider"),
                _step("d", "finish", seller, "Fin"),
            ],
        )
        [summary] = build_role_action_summaries([seller], [process])

        assert summary.role_id == seller.id
        assert summary.role_name == "Commercial"
        assert summary.department_name == "Ventes"
        assert summary.role_color == "#C7D2FE"
        assert [(a.step_id, a.responsibility) for a in summary.actions] == [
            ("b", "R"),
            ("c", "A"),
        ]
        assert summary.actions[0].process_id == process.id
        assert summary.actions[0].process_title == "Vente"

    def test_roles_without_actions_listed(self):
        idle = _role("Stagiaire")
        [summary] = build_role_action_summaries([idle], [])
        assert summary.actions == []

    def test_unknown_role_ids_ignored(self):
        seller = _role("Commercial")
        stranger = _role("Externe")
        process = _process("Vente", [_step("a", "action", stranger, "Faire")])
        [summary] = build_role_action_summaries([seller], [process])
        assert summary.actions == []

    def test_sorting_ignores_case_and_accents(self):
        seller = _role("commercial")
        accountant = _role("Éditeur")
        buyer = _role("Acheteur")
        processes = [
            _process("zèbre", [_step("z", "action", seller, "Étape")]),
            _process("Achat", [_step("b", "action", seller, "b"), _step("a", "action", seller, "A")]),
        ]
        summaries = build_role_action_summaries([seller, accountant, buyer], processes)

        assert [s.role_name for s in summaries] == ["Acheteur", "commercial", "Éditeur"]
        assert [a.step_id for a in summaries[1].actions] == ["a", "b", "z"]

    def test_default_names(self):
        role = _role("  ", department_name=None)
        [summary] = build_role_action_summaries([role], [])
        assert summary.role_name == DEFAULT_ROLE_NAME
        assert summary.department_name == DEFAULT_DEPARTMENT_NAME

    def test_undecodable_process_skipped(self):
        seller = _role("Commercial")
        processes = [
            _process("Cassé", "{not json"),
            _process("Vente", [_step("a", "action", seller, "Vendre")]),
        ]
        [summary] = build_role_action_summaries([seller], processes)
        assert [a.process_title for a in summary.actions] == ["Vente"]

    def test_serialized_with_camel_case(self):
        seller = _role("Commercial")
        [summary] = build_role_action_summaries([seller], [])
        dumped = summary.model_dump(by_alias=True)
        assert set(dumped) == {
            "roleId",
            "roleName",
            "departmentId",
            "departmentName",
            "roleColor",
            "actions",
        }
