"""Job description generation from a role profile.

The role profile and id-to-name lookups are serialized into a prompt; the
model answers with a JSON object that is reconciled into complete
sections and upserted as the role's single job description.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.core.metrics import job_description_generations_total
from orgflow.models.job_description import JobDescription
from orgflow.models.role import Role
from orgflow.schemas.job_description import (
    GENERATION_JSON_SCHEMA,
    GeneratedJobDescription,
    JobDescriptionRead,
    JobDescriptionSections,
)
from orgflow.schemas.role_profile import RoleLookups, RoleProfile
from orgflow.services.job_description_format import (
    ensure_job_description_sections,
    normalize_list,
    stringify_sections,
)
from orgflow.services.llm_client import ChatCompletionClient, LLMError
from orgflow.services.role_profile import build_role_profile, fetch_role_and_department_lookups

logger = logging.getLogger(__name__)

GENERATION_TEMPERATURE = 0.7
GENERATION_MAX_TOKENS = 650
NOT_SPECIFIED = "Non spécifié dans les données"
NO_EXISTING_DESCRIPTION = "Aucune fiche existante."

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)

SYSTEM_INSTRUCTIONS = "\n".join(
    [
        "Tu es un expert RH. Génère une fiche de poste en français en respectant "
        "impérativement les règles suivantes :",
        "- Utilise UNIQUEMENT les informations fournies dans role_profile, roles et departments.",
        "- N'invente ni missions, ni compétences, ni contexte en dehors de ces données.",
        f'- Quand une information est absente, écris exactement : "{NOT_SPECIFIED}".',
        "- Réponds uniquement avec un JSON strictement valide (aucun texte ou markdown autour) "
        "avec les clés suivantes :",
        "  {",
        '    "title": "Intitulé du poste",',
        '    "generalDescription": "Mission principale",',
        '    "responsibilities": ["Responsabilités clés avec traçabilité"],',
        '    "objectives": ["Compétences ou objectifs issus des données"],',
        '    "collaboration": ["Interactions (autres rôles et départements)"],',
        '    "content": "Texte multiligne structuré avec les 6 sections"',
        "  }",
        "- Détaille chaque champ :",
        "  * title : Intitulé du poste (reprends le nom du rôle si présent, sinon "
        f"'{NOT_SPECIFIED}').",
        "  * generalDescription : Mission principale dérivée uniquement des étapes où le rôle "
        "apparaît.",
        "  * responsibilities : pour chaque étape (type action/décision) du role_profile, rédige "
        "une phrase claire incluant le nom du process, le libellé de l'étape, son type, "
        "l'identifiant de l'étape, le département associé et les rôles précédents/suivants "
        "quand ils existent.",
        "  * objectives : liste des compétences ou objectifs explicitement présents dans les "
        "données. Si aucune compétence n'apparaît, fournis une seule entrée "
        f"'{NOT_SPECIFIED}'.",
        "  * collaboration : interactions directes avec d'autres rôles ou départements, en "
        "utilisant les identifiants et noms fournis par roles et departments. S'il n'y en a "
        f"pas, mets '{NOT_SPECIFIED}'.",
        "  * content : un texte unique structuré avec les sections numérotées :",
        "    1) Intitulé du poste",
        "    2) Mission principale",
        "    3) Responsabilités clés (liées aux étapes des processus, mentionne pour chaque "
        "responsabilité le nom du process et l'id de l'étape)",
        "    4) Interactions (autres rôles et départements)",
        "    5) Compétences requises",
        "    6) Traçabilité (liste récapitulative des responsabilités avec id des étapes et nom "
        "du process)",
        "- Chaque liste (responsibilities, objectives, collaboration) doit contenir au moins un "
        "élément.",
        "- Ne fournis aucune donnée absente ou estimée et utilise uniquement role_profile, roles "
        "et departments.",
        "- Ne renvoie rien d'autre que le JSON demandé.",
    ]
)


class InvalidGenerationError(Exception):
    """Raised when the model output cannot be turned into a job description."""


def build_prompt(
    role_profile: RoleProfile,
    lookups: RoleLookups,
    existing: JobDescriptionRead | None,
) -> list[dict[str, str]]:
    existing_text = stringify_sections(existing.sections) if existing else NO_EXISTING_DESCRIPTION
    serialized_profile = json.dumps(
        role_profile.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2
    )
    serialized_lookups = json.dumps(
        {"roles": lookups.roles, "departments": lookups.departments},
        ensure_ascii=False,
        indent=2,
    )
    user_content = "\n".join(
        [
            "role_profile:",
            serialized_profile,
            "\nroles_departments_lookup:",
            serialized_lookups,
            "\nFiche actuelle (si présente, sinon indique les éléments manquants) :",
            existing_text,
        ]
    )
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTIONS},
        {"role": "user", "content": user_content},
    ]


def parse_generated_sections(raw: str) -> tuple[JobDescriptionSections, str] | None:
    """Sections and content text from a model answer, or None when unusable."""
    trimmed = raw.strip()
    fenced = _FENCED_JSON.search(trimmed)
    candidate = fenced.group(1) if fenced and fenced.group(1) else trimmed

    try:
        generated = GeneratedJobDescription.model_validate(json.loads(candidate))
        text = (generated.content or "").strip() or None
        if text is None:
            # without a text to fall back on, missing fields say so explicitly
            placeholder = JobDescriptionSections(
                title=generated.title or NOT_SPECIFIED,
                general_description=(generated.general_description or "").strip()
                or NOT_SPECIFIED,
                responsibilities=generated.responsibilities or [NOT_SPECIFIED],
                objectives=generated.objectives or [NOT_SPECIFIED],
                collaboration=generated.collaboration or [NOT_SPECIFIED],
            )
            sections = ensure_job_description_sections(
                stringify_sections(placeholder), placeholder
            )
        else:
            # Empty lists count as missing so the content text can fill them
            provided = {
                key: value
                for key, value in generated.model_dump(exclude={"content"}).items()
                if value not in (None, [])
            }
            sections = ensure_job_description_sections(text, provided)
    except ValueError as exc:
        # covers JSONDecodeError and pydantic's ValidationError
        logger.error("Unusable job description output: %s (raw=%r)", exc, trimmed[:500])
        return None

    return sections, text or stringify_sections(sections)


def _normalize_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def map_description_record(
    record: JobDescription, fallback_title: str | None = None
) -> JobDescriptionRead:
    """Normalize a stored job description row.

    Missing sections are derived from the stored text, then filled with
    placeholders.
    """
    content = (record.content or "").strip()
    stored = {
        "title": (record.title or "").strip() or None,
        "general_description": (record.general_description or "").strip() or None,
        "responsibilities": normalize_list(record.responsibilities) or None,
        "objectives": normalize_list(record.objectives) or None,
        "collaboration": normalize_list(record.collaboration) or None,
    }
    sections = ensure_job_description_sections(
        content,
        {key: value for key, value in stored.items() if value is not None},
        fallback_title,
    )
    return JobDescriptionRead(
        role_id=record.role_id,
        organization_id=record.organization_id,
        content=content or stringify_sections(sections),
        sections=sections,
        updated_at=_normalize_timestamp(record.updated_at or record.created_at),
    )


async def get_job_description(db: AsyncSession, role: Role) -> JobDescriptionRead | None:
    result = await db.execute(select(JobDescription).where(JobDescription.role_id == role.id))
    record = result.scalar_one_or_none()
    if record is None:
        return None
    return map_description_record(record, (role.name or "").strip() or None)


async def generate_job_description(
    db: AsyncSession,
    llm: ChatCompletionClient,
    role: Role,
    organization_id: uuid.UUID,
) -> JobDescriptionRead:
    """Generate and store the job description of ``role``.

    Raises ``RoleProfileError`` when the role is not used by any process,
    ``LLMError`` when the model call fails and ``InvalidGenerationError``
    when the answer cannot be parsed.
    """
    profile = await build_role_profile(db, organization_id, role.id)
    lookups = await fetch_role_and_department_lookups(db, organization_id)
    existing = await get_job_description(db, role)

    messages = build_prompt(profile, lookups, existing)
    try:
        raw = await llm.complete(
            messages,
            temperature=GENERATION_TEMPERATURE,
            max_tokens=GENERATION_MAX_TOKENS,
            response_format={"type": "json_schema", "json_schema": GENERATION_JSON_SCHEMA},
        )
    except LLMError:
        job_description_generations_total.labels(outcome="llm_error").inc()
        raise

    parsed = parse_generated_sections(raw)
    if parsed is None:
        job_description_generations_total.labels(outcome="invalid_output").inc()
        raise InvalidGenerationError("The generation returned unusable content")
    sections, content = parsed

    result = await db.execute(select(JobDescription).where(JobDescription.role_id == role.id))
    record = result.scalar_one_or_none()
    if record is None:
        record = JobDescription(role_id=role.id, organization_id=organization_id)
        db.add(record)
    record.organization_id = organization_id
    record.title = sections.title
    record.general_description = sections.general_description
    record.responsibilities = sections.responsibilities
    record.objectives = sections.objectives
    record.collaboration = sections.collaboration
    record.content = content
    await db.commit()
    await db.refresh(record)

    job_description_generations_total.labels(outcome="success").inc()
    logger.info("Generated job description for role %s", role.id)
    return map_description_record(record)
