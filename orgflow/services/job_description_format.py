"""Parsing and reconciliation of free-text job descriptions.

Generated or stored job descriptions arrive as loosely formatted French
text. ``parse_job_description_content`` splits it into heading, paragraph
and list blocks; ``ensure_job_description_sections`` merges those blocks
with any structured sections already known into a complete
``JobDescriptionSections``.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import ValidationError

from orgflow.schemas.job_description import JobDescriptionSections, PartialSections

DEFAULT_TITLE = "Fiche de poste"
GENERAL_DESCRIPTION_PLACEHOLDER = "Mission à préciser."
RESPONSIBILITIES_PLACEHOLDER = "Responsabilités à préciser."
OBJECTIVES_PLACEHOLDER = "Objectifs et indicateurs à préciser."
COLLABORATION_PLACEHOLDER = "Collaborations attendues à préciser."

HEADING_LABELS = (
    "mission",
    "mission generale",
    "responsabilites",
    "responsabilites cles",
    "indicateurs",
    "indicateurs de succes",
    "collaborations",
    "collaborations internes",
    "profil",
    "contexte",
)

SectionName = Literal["mission", "responsibilities", "objectives", "collaboration", "other"]

# Checked in order; the first rule whose token appears in the heading wins
SECTION_RULES: tuple[tuple[tuple[str, ...], SectionName], ...] = (
    (("mission",), "mission"),
    (("responsab",), "responsibilities"),
    (("objectif", "indicateur"), "objectives"),
    (("collabor",), "collaboration"),
)

_BULLET = re.compile(r"^[-•]\s*(.+)$")
_HEADING = re.compile(r"^(?P<label>[^:]+):?\s*(?P<rest>.*)$")
_LIST_SPLIT = re.compile(r"\r?\n|•|-\s+")
_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass
class HeadingBlock:
    text: str


@dataclass
class ParagraphBlock:
    text: str


@dataclass
class ListBlock:
    items: list[str]


Block = Union[HeadingBlock, ParagraphBlock, ListBlock]


def normalize_label(value: str) -> str:
    """Strip diacritics, lower-case and trim."""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def _looks_like_heading(label: str) -> bool:
    if not label:
        return False
    normalized = normalize_label(label)
    return any(normalized.startswith(token) for token in HEADING_LABELS)


def parse_job_description_content(content: str) -> list[Block]:
    blocks: list[Block] = []
    paragraph: list[str] = []
    items: list[str] = []

    def flush_paragraph() -> None:
        if paragraph:
            blocks.append(ParagraphBlock(" ".join(paragraph)))
            paragraph.clear()

    def flush_list() -> None:
        if items:
            blocks.append(ListBlock(list(items)))
            items.clear()

    for raw_line in _LINE_SPLIT.split(content):
        line = raw_line.strip()
        if not line:
            flush_paragraph()
            flush_list()
            continue

        bullet = _BULLET.match(line)
        if bullet:
            flush_paragraph()
            items.append(bullet.group(1).strip())
            continue

        heading = _HEADING.match(line)
        label = heading.group("label").strip() if heading else ""
        if _looks_like_heading(label):
            flush_paragraph()
            flush_list()
            blocks.append(HeadingBlock(label.removesuffix(":")))
            rest = heading.group("rest").strip()
            if rest:
                paragraph.append(rest)
            continue

        paragraph.append(line)

    flush_paragraph()
    flush_list()
    return blocks


def collapse_blocks_to_text(blocks: list[Block]) -> list[str]:
    lines: list[str] = []
    for block in blocks:
        if isinstance(block, HeadingBlock):
            lines.append(block.text.upper())
        elif isinstance(block, ParagraphBlock):
            lines.append(block.text)
        else:
            lines.extend(f"• {item}" for item in block.items)
    return lines


def classify_heading(value: str) -> SectionName:
    normalized = normalize_label(value)
    for tokens, section in SECTION_RULES:
        if any(token in normalized for token in tokens):
            return section
    return "other"


def normalize_list(value: Any) -> list[str]:
    """Clean a list of strings, or split a bullet-formatted string into one."""
    if isinstance(value, list):
        candidates = [item for item in value if isinstance(item, str)]
    elif isinstance(value, str):
        candidates = _LIST_SPLIT.split(value)
    else:
        return []
    return [item.strip() for item in candidates if item.strip()]


def build_sections_from_blocks(blocks: list[Block]) -> dict[str, Any]:
    collected: dict[SectionName, list[str]] = {
        "mission": [],
        "responsibilities": [],
        "objectives": [],
        "collaboration": [],
    }
    current: SectionName = "other"

    for block in blocks:
        if isinstance(block, HeadingBlock):
            current = classify_heading(block.text)
            continue
        if current == "other":
            continue
        if isinstance(block, ListBlock):
            collected[current].extend(block.items)
        else:
            collected[current].append(block.text)

    return {
        "title": DEFAULT_TITLE,
        "general_description": " ".join(collected["mission"]).strip(),
        "responsibilities": normalize_list(collected["responsibilities"]),
        "objectives": normalize_list(collected["objectives"]),
        "collaboration": normalize_list(collected["collaboration"]),
    }


def _parse_partial(sections: Any) -> PartialSections:
    if isinstance(sections, PartialSections):
        return sections
    if sections is None:
        return PartialSections()
    if hasattr(sections, "model_dump"):
        sections = sections.model_dump()
    try:
        return PartialSections.model_validate(sections)
    except ValidationError:
        return PartialSections()


def _first_not_none(*values: Any) -> Any:
    return next((value for value in values if value is not None), None)


def ensure_job_description_sections(
    content: str,
    sections: Any = None,
    fallback_title: str | None = None,
) -> JobDescriptionSections:
    """Complete sections from ``content`` and any supplied values.

    Supplied values win over values derived from the text. Empty lists get
    a placeholder entry. Supplied sections that fail validation are
    ignored as a whole.
    """
    supplied = _parse_partial(sections)
    derived = build_sections_from_blocks(parse_job_description_content(content))

    title = (_first_not_none(supplied.title, fallback_title, derived["title"]) or "").strip()
    general_description = (
        _first_not_none(supplied.general_description, derived["general_description"]) or ""
    ).strip()
    responsibilities = normalize_list(
        _first_not_none(supplied.responsibilities, derived["responsibilities"])
    )
    objectives = normalize_list(_first_not_none(supplied.objectives, derived["objectives"]))
    collaboration = normalize_list(
        _first_not_none(supplied.collaboration, derived["collaboration"])
    )

    return JobDescriptionSections(
        title=title or DEFAULT_TITLE,
        general_description=general_description
        or content.strip()
        or GENERAL_DESCRIPTION_PLACEHOLDER,
        responsibilities=responsibilities or [RESPONSIBILITIES_PLACEHOLDER],
        objectives=objectives or [OBJECTIVES_PLACEHOLDER],
        collaboration=collaboration or [COLLABORATION_PLACEHOLDER],
    )


def stringify_sections(sections: JobDescriptionSections) -> str:
    def bullets(items: list[str]) -> str:
        return "\n".join(f"- {item}" for item in items)

    return "\n".join(
        [
            sections.title,
            "",
            f"Mission générale: {sections.general_description}",
            "",
            "Responsabilités:",
            bullets(sections.responsibilities),
            "",
            "Objectifs et indicateurs:",
            bullets(sections.objectives),
            "",
            "Collaboration attendue:",
            bullets(sections.collaboration),
        ]
    )
