"""Unit tests for orgflow.services.job_description_export: PDF and DOC renditions."""

from __future__ import annotations

import re
from datetime import datetime

import pytest

from orgflow.services.job_description_export import (
    build_safe_filename,
    create_pdf_document,
    escape_pdf_text,
    format_timestamp,
    render_doc_document,
)
from orgflow.services.job_description_format import HeadingBlock, ListBlock, ParagraphBlock


class TestSafeFilename:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Commercial", "fiche-commercial.pdf"),
            ("Chef de projet", "fiche-chef-de-projet.pdf"),
            ("  R&D -- Lead  ", "fiche-r-d-lead.pdf"),
            ("Comptable (senior)", "fiche-comptable-senior.pdf"),
        ],
    )
    def test_slug(self, name, expected):
        assert build_safe_filename(name, "pdf") == expected

    def test_accents_dropped(self):
        assert build_safe_filename("Chargé d'études", "doc") == "fiche-charg-d-tudes.doc"

    def test_fallback(self):
        assert build_safe_filename("Ééé", "doc") == "fiche-role.doc"


def test_format_timestamp():
    assert format_timestamp(datetime(2024, 3, 5, 9, 7, 1)) == "05/03/2024 09:07:01"


class TestEscapePdfText:
    def test_parentheses_and_backslash(self):
        assert escape_pdf_text(r"a (b) \c") == r"a \(b\) \\c"

    def test_newlines_flattened(self):
        assert escape_pdf_text("one\r\ntwo\nthree") == "one two three"


class TestCreatePdf:
    def test_structure(self):
        pdf = create_pdf_document(["Commercial", "Ventes", "Mise à jour"])
        assert pdf.startswith(b"%PDF-1.4\n")
        assert pdf.endswith(b"%%EOF\n")
        assert b"/Count 1" in pdf
        assert b"BT /F1 18 Tf 72 760 Td (Commercial) Tj ET" in pdf
        assert b"BT /F1 12 Tf 72 736 Td (Ventes) Tj ET" in pdf
        assert b"BT /F1 11 Tf 72 718 Td" in pdf

    def test_accents_encoded_for_helvetica(self):
        pdf = create_pdf_document(["Mise à jour"])
        assert "(Mise à jour)".encode("cp1252") in pdf
        assert b"/WinAnsiEncoding" in pdf

    def test_xref_offsets_point_at_objects(self):
        pdf = create_pdf_document(["Commercial", "Ventes"])
        xref_start = int(re.search(rb"startxref\n(\d+)\n", pdf).group(1))
        assert pdf[xref_start:].startswith(b"xref\n0 6\n")
        offsets = [int(m) for m in re.findall(rb"(\d{10}) 00000 n", pdf)]
        assert len(offsets) == 5
        for number, offset in enumerate(offsets, start=1):
            assert pdf[offset:].startswith(b"%d 0 obj" % number)

    def test_stream_length_matches(self):
        pdf = create_pdf_document(["Commercial"])
        match = re.search(rb"<< /Length (\d+) >>\nstream\n", pdf)
        start = match.end()
        length = int(match.group(1))
        assert pdf[start + length:].startswith(b"\nendstream")

    def test_long_text_spans_pages(self):
        pdf = create_pdf_document([f"Ligne {index}" for index in range(120)])
        assert b"/Count 3" in pdf
        assert pdf.count(b"/Type /Page ") == 3


class TestRenderDoc:
    def test_blocks_rendered(self):
        html = render_doc_document(
            "Commercial",
            "Ventes",
            "Dernière mise à jour : 05/03/2024 09:07:01",
            [
                HeadingBlock("Mission"),
                ParagraphBlock("Piloter les ventes"),
                ListBlock(["Qualifier", "Négocier"]),
            ],
        )
        assert html.startswith("<!DOCTYPE html>")
        assert ">Commercial</h1>" in html
        assert ">Ventes</p>" in html
        assert ">Mission</h3>" in html
        assert ">Piloter les ventes</p>" in html
        assert ">Négocier</li>" in html

    def test_values_escaped(self):
        html = render_doc_document(
            "<b>R&D</b>", "Ventes", "", [ParagraphBlock("<script>alert(1)</script>")]
        )
        assert "<b>" not in html
        assert "&lt;b&gt;R&amp;D&lt;/b&gt;" in html
        assert "<script>" not in html

    def test_header_tinted_with_role_color(self):
        html = render_doc_document("Commercial", "Ventes", "", [], accent_color="#FF8000")
        assert "border-left: 4px solid #FF8000;" in html
        assert "background: rgba(255, 128, 0, 0.12);" in html

    def test_invalid_accent_uses_default_role_color(self):
        html = render_doc_document("Commercial", "Ventes", "", [], accent_color="orange")
        assert "border-left: 4px solid #C7D2FE;" in html
        assert "background: rgba(199, 210, 254, 0.12);" in html
