"""Downloadable renditions of a stored job description.

Two formats are offered: a single-font PDF written directly, and an
HTML page served as a Word document.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from jinja2 import Environment
from sqlalchemy.ext.asyncio import AsyncSession

from orgflow.models.department import Department
from orgflow.models.role import DEFAULT_ROLE_COLOR, Role
from orgflow.services.colors import FALLBACK_STEP_FILL_ALPHA, HEX_COLOR_PATTERN, to_rgba
from orgflow.services.job_description_format import (
    Block,
    HeadingBlock,
    ListBlock,
    collapse_blocks_to_text,
    parse_job_description_content,
)
from orgflow.services.job_description_service import get_job_description

logger = logging.getLogger(__name__)

ExportFormat = Literal["pdf", "doc"]

DEFAULT_ROLE_NAME = "Rôle"
DEFAULT_DEPARTMENT_NAME = "Département"
UPDATED_LABEL = "Dernière mise à jour : "

PDF_MEDIA_TYPE = "application/pdf"
DOC_MEDIA_TYPE = "application/msword; charset=utf-8"

# US Letter, in points
PAGE_WIDTH = 612
PAGE_HEIGHT = 792
LEFT_MARGIN = 72
TOP_Y = 760
BOTTOM_Y = 72
LINE_GAP = 6
FONT_SIZES = (18, 12)
BODY_FONT_SIZE = 11

HEADER_TINT_ALPHA = FALLBACK_STEP_FILL_ALPHA
HEADER_FALLBACK_TINT = "#f8fafc"

_SLUG_INVALID = re.compile(r"[^a-z0-9-]+")
_SLUG_DASHES = re.compile(r"-{2,}")
_NEWLINES = re.compile(r"\r?\n")

_environment = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)

DOC_TEMPLATE = _environment.from_string(
    """<!DOCTYPE html>
<html lang="fr">
  <head>
    <meta charset="utf-8" />
    <style>
      body { font-family: Arial, sans-serif; color: #0f172a; }
    </style>
  </head>
  <body>
    <div style="padding: 12px 16px; margin-bottom: 12px; border-left: 4px solid {{ accent }};
                background: {{ tint }};">
      <h1 style="margin: 0; font-size: 22px; color: #0f172a;">{{ role_name }}</h1>
      <p style="margin: 4px 0 0 0; color: #475569;">{{ department_name }}</p>
    </div>
    <p style="margin: 0 0 12px 0; font-size: 12px; color: #64748b;">{{ updated_line }}</p>
    {% for kind, block in blocks %}
    {% if kind == "heading" %}
    <h3 style="text-transform: uppercase; font-size: 12px; color: #475569;
               letter-spacing: 0.05em;">{{ block.text }}</h3>
    {% elif kind == "list" %}
    <ul style="padding-left: 20px; margin: 0 0 10px 0;">
      {% for item in block.items %}
      <li style="margin-bottom: 4px; color: #0f172a;">{{ item }}</li>
      {% endfor %}
    </ul>
    {% else %}
    <p style="margin: 6px 0; color: #0f172a;">{{ block.text }}</p>
    {% endif %}
    {% endfor %}
  </body>
</html>
"""
)


@dataclass
class ExportedDocument:
    filename: str
    media_type: str
    body: bytes


def build_safe_filename(role_name: str, extension: str) -> str:
    slug = _SLUG_DASHES.sub("-", _SLUG_INVALID.sub("-", role_name.lower())).strip("-")
    return f"fiche-{slug or 'role'}.{extension}"


def format_timestamp(value: datetime) -> str:
    return value.strftime("%d/%m/%Y %H:%M:%S")


def escape_pdf_text(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    return _NEWLINES.sub(" ", escaped)


def _page_streams(lines: list[str]) -> list[bytes]:
    pages: list[list[str]] = []
    commands: list[str] = []
    y = TOP_Y
    for index, line in enumerate(lines):
        size = FONT_SIZES[index] if index < len(FONT_SIZES) else BODY_FONT_SIZE
        if y < BOTTOM_Y:
            pages.append(commands)
            commands = []
            y = TOP_Y
        commands.append(f"BT /F1 {size} Tf {LEFT_MARGIN} {y} Td ({escape_pdf_text(line)}) Tj ET")
        y -= size + LINE_GAP
    pages.append(commands)
    # Helvetica is declared with WinAnsiEncoding, which covers French text
    return ["\n".join(page).encode("cp1252", errors="replace") for page in pages]


def create_pdf_document(lines: list[str]) -> bytes:
    """A PDF with one text line per entry; the first two act as title and subtitle."""
    streams = _page_streams(lines)
    page_numbers = [4 + 2 * index for index in range(len(streams))]
    kids = " ".join(f"{number} 0 R" for number in page_numbers)

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {len(streams)} >>".encode("ascii"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    ]
    for number, stream in zip(page_numbers, streams):
        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] "
                f"/Contents {number + 1} 0 R /Resources << /Font << /F1 3 0 R >> >> >>"
            ).encode("ascii")
        )
        objects.append(b"<< /Length %d >>\nstream\n%b\nendstream" % (len(stream), stream))

    out = bytearray(b"%PDF-1.4\n")
    offsets: list[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n%b\nendobj\n" % (number, body)

    xref_start = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_start,
    )
    return bytes(out)


def _block_kind(block: Block) -> str:
    if isinstance(block, HeadingBlock):
        return "heading"
    if isinstance(block, ListBlock):
        return "list"
    return "paragraph"


def render_doc_document(
    role_name: str,
    department_name: str,
    updated_line: str,
    blocks: list[Block],
    accent_color: str | None = None,
) -> str:
    """The Word rendition; the header band is tinted with ``accent_color``."""
    accent = accent_color if HEX_COLOR_PATTERN.match(accent_color or "") else DEFAULT_ROLE_COLOR
    return DOC_TEMPLATE.render(
        role_name=role_name,
        accent=accent,
        tint=to_rgba(accent, HEADER_TINT_ALPHA, HEADER_FALLBACK_TINT),
        department_name=department_name,
        updated_line=updated_line,
        blocks=[(_block_kind(block), block) for block in blocks],
    )


async def export_job_description(
    db: AsyncSession, role: Role, export_format: ExportFormat
) -> ExportedDocument | None:
    """The role's job description as a file, or None when it has none."""
    description = await get_job_description(db, role)
    if description is None:
        return None

    department = await db.get(Department, role.department_id)
    role_name = (role.name or "").strip() or DEFAULT_ROLE_NAME
    department_name = ((department.name if department else "") or "").strip()
    department_name = department_name or DEFAULT_DEPARTMENT_NAME
    updated_line = UPDATED_LABEL + format_timestamp(description.updated_at)
    blocks = parse_job_description_content(description.content)
    logger.info("Exporting job description of role %s as %s", role.id, export_format)

    if export_format == "doc":
        html = render_doc_document(
            role_name, department_name, updated_line, blocks, accent_color=role.color
        )
        return ExportedDocument(
            filename=build_safe_filename(role_name, "doc"),
            media_type=DOC_MEDIA_TYPE,
            body=html.encode("utf-8"),
        )
    lines = [role_name, department_name, updated_line, *collapse_blocks_to_text(blocks)]
    return ExportedDocument(
        filename=build_safe_filename(role_name, "pdf"),
        media_type=PDF_MEDIA_TYPE,
        body=create_pdf_document(lines),
    )
