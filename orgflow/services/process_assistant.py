"""Model-assisted rewriting of a process.

The current steps, the organization's departments and roles and the
user's request are sent to the chat-completion model, which answers
with a complete process and a short reply. The proposal is validated
and returned to the editor; nothing is saved here.
"""

from __future__ import annotations

import json
import logging
import uuid

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.core.metrics import process_assistant_requests_total
from orgflow.models.department import Department
from orgflow.schemas.process import (
    PROPOSAL_JSON_SCHEMA,
    AssistantDepartment,
    AssistantRole,
    ProcessAssistantRequest,
    ProcessAssistantResponse,
    ProcessPayload,
    ProcessProposal,
    ProcessResponse,
    ProcessStep,
)
from orgflow.services.llm_client import ChatCompletionClient, LLMError
from orgflow.services.normalizers import normalize_department_id
from orgflow.services.process_steps import clone_steps
from orgflow.services.step_codec import decode_raw_steps, encode_steps

logger = logging.getLogger(__name__)

ASSISTANT_TEMPERATURE = 0.4
ASSISTANT_MAX_TOKENS = 2000
NO_DEPARTMENTS = "Aucun département ni rôle enregistré pour cette organisation."
NO_ROLES = "  - Aucun rôle enregistré."
NO_CONTEXT = "Aucun contexte métier additionnel fourni."
DRAFT_SUFFIX = " (brouillon)"

SYSTEM_INSTRUCTIONS = "\n".join(
    [
        "Tu es un expert en cartographie de processus et en organisation "
        "(bilingue français/anglais).",
        "Ton objectif principal est de comprendre le processus métier, de clarifier la logique "
        "des étapes et de proposer une répartition cohérente des responsabilités (départements "
        "et rôles).",
        "",
        "Règles importantes :",
        "- Tu dois toujours renvoyer un objet JSON valide qui respecte strictement le schéma "
        "fourni (process + reply).",
        "- Pour les identifiants de départements et de rôles :",
        "  • Si tu fais référence à un département ou un rôle existant, tu dois réutiliser "
        "EXACTEMENT son UUID tel qu’il apparaît dans le référentiel.",
        "  • Si tu souhaites proposer un NOUVEAU département, laisse departmentId à null et "
        "renseigne draftDepartmentName avec le nom du département (sans inventer d’UUID).",
        "  • Si tu souhaites proposer un NOUVEAU rôle sur un département existant, renseigne "
        "departmentId avec un UUID existant, mets roleId à null et renseigne draftRoleName.",
        "  • Si tu souhaites proposer un NOUVEAU rôle sur un NOUVEAU département, laisse "
        "departmentId/roleId à null et renseigne draftDepartmentName et draftRoleName.",
        "  • N’invente jamais d’UUID ni d’identifiant temporaire : toute création passe par les "
        "champs draft*.",
        "",
        "Priorité métier :",
        "- Cherche à éviter les étapes sans responsable : pour chaque étape, essaye soit de "
        "trouver le meilleur département/rôle existant, soit de proposer un nouveau "
        "département/rôle cohérent via les champs draft*.",
        "- Regroupe les actions par logique métier (préparation, validation, exécution, "
        "contrôle, communication, etc.) et tiens compte de qui est le plus légitime pour "
        "réaliser chaque étape.",
    ]
)

TASK_INSTRUCTIONS = [
    "Tâche à effectuer :",
    "- Analyse le processus du point de vue métier : objectif, enchaînement logique, acteurs "
    "impliqués.",
    "- Améliore la clarté du processus (labels, ordre, éventuels splits/decisions) sans le "
    "compliquer inutilement.",
    "- Pour chaque étape, choisis le département et le rôle le plus pertinent dans le "
    "référentiel ou propose-en un nouveau via draftDepartmentName/draftRoleName si nécessaire.",
    "",
    "Contraintes de sortie :",
    "- La réponse doit être un objet JSON unique avec exactement deux propriétés :",
    '  • "process" : le processus complet mis à jour, conforme au schéma (id existant, title, '
    "steps avec departmentId/roleId/draft*).",
    '  • "reply" : un court message pour l’utilisateur (max 3 phrases) qui :',
    "    · résume les principaux changements (ex : nouveaux départements/rôles, étapes "
    "restructurées),",
    "    · pose éventuellement UNE question de clarification si des informations importantes "
    "manquent.",
    "- Ne retourne aucun texte en dehors de cet objet JSON.",
]


class InvalidAnswerError(Exception):
    """Raised when the model answer is not a usable process proposal."""


class UnknownReferenceError(Exception):
    """Raised when a proposed step points at a department or role outside the listing."""


def format_departments_context(departments: list[AssistantDepartment]) -> str:
    if not departments:
        return NO_DEPARTMENTS
    lines: list[str] = []
    for department in departments:
        suffix = DRAFT_SUFFIX if department.status == "draft" else ""
        lines.append(f"- {department.name}{suffix} (id: {department.id})")
        if not department.roles:
            lines.append(NO_ROLES)
        for role in department.roles:
            suffix = DRAFT_SUFFIX if role.status == "draft" else ""
            lines.append(f"  - {role.name}{suffix} (id: {role.id})")
    return "\n".join(lines)


async def load_assistant_departments(
    db: AsyncSession, organization_id: uuid.UUID
) -> list[AssistantDepartment]:
    """Saved departments and roles of an organization, sorted by name."""
    result = await db.execute(
        select(Department)
        .where(Department.organization_id == organization_id)
        .order_by(Department.name)
        .execution_options(populate_existing=True)
    )
    return [
        AssistantDepartment(
            id=str(department.id),
            name=department.name,
            roles=[
                AssistantRole(id=str(role.id), name=role.name)
                for role in sorted(department.roles, key=lambda r: r.name)
            ],
        )
        for department in result.scalars().all()
    ]


def build_assistant_prompt(
    process: ProcessResponse,
    departments: list[AssistantDepartment],
    request: ProcessAssistantRequest,
) -> list[dict[str, str]]:
    grounding = json.dumps(
        {"id": str(process.id), "title": process.title, "steps": encode_steps(process.steps)},
        ensure_ascii=False,
        indent=2,
    )
    user_content = "\n".join(
        [
            "Référentiel des départements et rôles existants (réutilise uniquement ces UUID "
            "pour departmentId/roleId) :",
            format_departments_context(departments),
            "",
            "Processus actuel (id, titre, steps) :",
            grounding,
            "",
            "Contexte métier supplémentaire :",
            request.context or NO_CONTEXT,
            "",
            "Demande utilisateur :",
            request.prompt,
            "",
            *TASK_INSTRUCTIONS,
        ]
    )
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTIONS},
        {"role": "user", "content": user_content},
    ]


def parse_assistant_answer(raw: str, current: ProcessResponse) -> tuple[ProcessPayload, str]:
    """Proposed process and reply text; raises ``InvalidAnswerError``."""
    try:
        answer = json.loads(raw)
    except ValueError as exc:
        logger.error("Unreadable process assistant answer: %s (raw=%r)", exc, raw[:500])
        raise InvalidAnswerError("The generated answer is unreadable") from exc
    if not isinstance(answer, dict):
        raise InvalidAnswerError("The generated answer has an invalid format")

    proposal = answer.get("process")
    if not isinstance(proposal, dict):
        proposal = {}
    reply = answer.get("reply")
    reply = reply.strip() if isinstance(reply, str) else ""

    title = proposal.get("title")
    raw_steps = decode_raw_steps(proposal.get("steps"))
    try:
        payload = ProcessPayload.model_validate(
            {
                "title": current.title if title is None else title,
                "steps": raw_steps.items if raw_steps.kind != "invalid" else None,
            }
        )
    except ValidationError as exc:
        logger.error("Process assistant proposal failed validation: %s", exc.error_count())
        raise InvalidAnswerError("The generated answer has an invalid format") from exc
    if not reply:
        logger.error("Process assistant answer without a reply")
        raise InvalidAnswerError("The generated answer has an invalid format")
    return payload, reply


def check_step_references(
    steps: list[ProcessStep], departments: list[AssistantDepartment]
) -> None:
    """Reject steps whose department or role ids are not in ``departments``.

    Checks run over all steps first and report in a fixed order: unknown
    department, unknown role, role of another department, role without a
    department.
    """
    department_ids = {department.id for department in departments}
    role_departments = {
        role.id: department.id for department in departments for role in department.roles
    }
    unknown_department = unknown_role = mismatched = missing_department = False

    for step in steps:
        department_id = normalize_department_id(step.department_id)
        role_id = normalize_department_id(step.role_id)
        if department_id is not None and department_id not in department_ids:
            unknown_department = True
            continue
        if role_id is None:
            continue
        if role_id not in role_departments:
            unknown_role = True
        elif department_id is None:
            missing_department = True
        elif role_departments[role_id] != department_id:
            mismatched = True

    if unknown_department:
        raise UnknownReferenceError("The proposed process references an unknown department")
    if unknown_role:
        raise UnknownReferenceError("The proposed process references an unknown role")
    if mismatched:
        raise UnknownReferenceError("A referenced role does not belong to the given department")
    if missing_department:
        raise UnknownReferenceError("A role is referenced without a department")


async def propose_process(
    db: AsyncSession,
    llm: ChatCompletionClient,
    process: ProcessResponse,
    organization_id: uuid.UUID,
    request: ProcessAssistantRequest,
) -> ProcessAssistantResponse:
    """Ask the model for a reworked version of ``process``.

    Departments listed in the request replace the saved ones, so drafts
    that only exist in the editor can be referenced.
    """
    departments = request.departments or await load_assistant_departments(db, organization_id)
    messages = build_assistant_prompt(process, departments, request)
    try:
        raw = await llm.complete(
            messages,
            temperature=ASSISTANT_TEMPERATURE,
            max_tokens=ASSISTANT_MAX_TOKENS,
            response_format={"type": "json_schema", "json_schema": PROPOSAL_JSON_SCHEMA},
        )
    except LLMError:
        process_assistant_requests_total.labels(outcome="llm_error").inc()
        raise

    try:
        payload, reply = parse_assistant_answer(raw, process)
    except InvalidAnswerError:
        process_assistant_requests_total.labels(outcome="invalid_output").inc()
        raise
    try:
        check_step_references(payload.steps, departments)
    except UnknownReferenceError as exc:
        logger.warning("Process assistant proposal for %s rejected: %s", process.id, exc)
        process_assistant_requests_total.labels(outcome="unknown_reference").inc()
        raise

    process_assistant_requests_total.labels(outcome="success").inc()
    return ProcessAssistantResponse(
        process=ProcessProposal(
            id=process.id, title=payload.title, steps=clone_steps(payload.steps)
        ),
        reply=reply,
    )
