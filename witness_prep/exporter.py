"""
Outline Exporter
================

Generate TXT, DOCX and PDF exports of a deposition outline.

All three formats render the same block list, so content and ordering match
across formats; ExportOptions controls citations, rationale, follow-ups and
whether questions are regrouped by topic.
"""

import re
from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional, Tuple

from docx import Document
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from .deposition import draft_outline
from .schemas import (
    DepositionOutline,
    DepositionQuestion,
    DepositionSession,
    ExportFormat,
    ExportOptions,
)

MEDIA_TYPES = {
    ExportFormat.TXT: "text/plain; charset=utf-8",
    ExportFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ExportFormat.PDF: "application/pdf",
}

# Block kinds: title, meta, heading, subheading, question, detail, bullet, text
Block = Tuple[str, str]


@dataclass
class ExportedFile:
    filename: str
    media_type: str
    content: bytes


def _slug(value: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "_", value).strip("_").lower()
    return slug or "deposition"


def _resolve_outline(session: DepositionSession, options: ExportOptions) -> DepositionOutline:
    outline = session.outline
    if outline is None:
        return draft_outline(f"Deposition of {session.deponent_name}", session.questions)
    if options.group_by_topic:
        questions = [q for s in sorted(outline.sections, key=lambda s: s.order) for q in s.questions]
        regrouped = draft_outline(outline.title, questions)
        regrouped.created_at = outline.created_at
        regrouped.updated_at = outline.updated_at
        return regrouped
    return outline


def _question_blocks(number: int, question: DepositionQuestion, options: ExportOptions) -> List[Block]:
    blocks: List[Block] = [("question", f"{number}. {question.question}")]
    blocks.append(("detail", f"Priority: {question.priority.value} | Category: {question.category.value}"))

    if options.include_citations:
        refs = []
        if question.document_reference:
            refs.append(question.document_reference)
        if question.page_reference:
            refs.append(f"p. {question.page_reference}")
        if refs:
            blocks.append(("detail", "Source: " + ", ".join(refs)))
        if question.exhibit_to_show:
            blocks.append(("detail", f"Exhibit: {question.exhibit_to_show}"))

    if options.include_rationale and question.rationale:
        blocks.append(("detail", f"Rationale: {question.rationale}"))

    if options.include_follow_ups and question.follow_up_questions:
        blocks.append(("detail", "Follow-up:"))
        blocks.extend(("bullet", f) for f in question.follow_up_questions)

    return blocks


def build_outline_blocks(session: DepositionSession, options: Optional[ExportOptions] = None) -> List[Block]:
    """Format-neutral rendering of the outline"""
    options = options or ExportOptions()
    outline = _resolve_outline(session, options)

    blocks: List[Block] = [("title", outline.title)]
    meta = f"Deponent: {session.deponent_name} | Case: {session.case_name}"
    if session.case_number:
        meta += f" | No. {session.case_number}"
    if session.deposition_date:
        meta += f" | Date: {session.deposition_date}"
    blocks.append(("meta", meta))

    sections = sorted(outline.sections, key=lambda s: s.order)
    if not sections:
        blocks.append(("text", "No questions have been added to this outline."))

    number = 1
    for section in sections:
        heading = section.title
        if section.estimated_time:
            heading += f" (~{section.estimated_time} min)"
        blocks.append(("heading", heading))
        if section.notes:
            blocks.append(("text", section.notes))
        for question in section.questions:
            blocks.extend(_question_blocks(number, question, options))
            number += 1

    if session.gaps or session.contradictions:
        blocks.append(("heading", "Appendix: Analysis"))
    if session.gaps:
        blocks.append(("subheading", "Testimony Gaps"))
        for gap in session.gaps:
            blocks.append(("bullet", f"[{gap.severity.value}] {gap.description}"))
            if options.include_citations and gap.document_references:
                blocks.append(("detail", "Sources: " + ", ".join(gap.document_references)))
    if session.contradictions:
        blocks.append(("subheading", "Contradictions"))
        for item in session.contradictions:
            blocks.append(("bullet", f"[{item.severity.value}] {item.description}"))
            if options.include_citations:
                for label, source in (("A", item.source1), ("B", item.source2)):
                    page = f", p. {source.page}" if source.page else ""
                    blocks.append(("detail", f"{label}: {source.document}{page}: \"{source.excerpt}\""))

    return blocks


# =============================================================================
# Renderers
# =============================================================================

def export_txt(blocks: List[Block]) -> bytes:
    lines: List[str] = []
    for kind, text in blocks:
        if kind == "title":
            lines.extend([text.upper(), "=" * len(text)])
        elif kind == "heading":
            lines.extend(["", text, "-" * len(text)])
        elif kind == "subheading":
            lines.extend(["", text])
        elif kind == "question":
            lines.extend(["", text])
        elif kind == "detail":
            lines.append(f"   {text}")
        elif kind == "bullet":
            lines.append(f"   - {text}")
        else:
            lines.append(text)
    return ("\n".join(lines) + "\n").encode("utf-8")


def export_docx(blocks: List[Block]) -> bytes:
    doc = Document()

    for kind, text in blocks:
        if kind == "title":
            doc.add_heading(text, level=0)
        elif kind == "heading":
            doc.add_heading(text, level=1)
        elif kind == "subheading":
            doc.add_heading(text, level=2)
        elif kind == "question":
            para = doc.add_paragraph()
            para.add_run(text).bold = True
        elif kind == "bullet":
            doc.add_paragraph(text, style="List Bullet")
        elif kind == "meta":
            para = doc.add_paragraph()
            para.add_run(text).italic = True
        else:
            doc.add_paragraph(text)

    buf = BytesIO()
    doc.save(buf)
    buf.seek(0)
    return buf.read()


_PDF_STYLES = {
    "title": ("Helvetica-Bold", 16, 0),
    "meta": ("Helvetica-Oblique", 10, 0),
    "heading": ("Helvetica-Bold", 13, 0),
    "subheading": ("Helvetica-Bold", 11, 0),
    "question": ("Helvetica-Bold", 11, 0),
    "detail": ("Helvetica", 9, 18),
    "bullet": ("Helvetica", 9, 30),
    "text": ("Helvetica", 10, 0),
}


def export_pdf(blocks: List[Block]) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=LETTER)
    width, height = LETTER
    margin = 50
    y = height - margin

    def draw_line(line: str, font: str, size: int, x: float):
        nonlocal y
        if y < margin + size:
            c.showPage()
            y = height - margin
        c.setFont(font, size)
        c.drawString(x, y, line)
        y -= size + 4

    for kind, text in blocks:
        font, size, indent = _PDF_STYLES.get(kind, _PDF_STYLES["text"])
        if kind in ("heading", "subheading", "question"):
            y -= 6
        prefix = "- " if kind == "bullet" else ""
        x = margin + indent
        for line in simpleSplit(prefix + text, font, size, width - x - margin) or [""]:
            draw_line(line, font, size, x)

    c.save()
    buf.seek(0)
    return buf.read()


_RENDERERS = {
    ExportFormat.TXT: export_txt,
    ExportFormat.DOCX: export_docx,
    ExportFormat.PDF: export_pdf,
}


def export_outline(session: DepositionSession, options: Optional[ExportOptions] = None) -> ExportedFile:
    """
    Export a session's outline in the requested format.

    Sessions without a stored outline are exported with one drafted from
    their questions.
    """
    options = options or ExportOptions()
    blocks = build_outline_blocks(session, options)
    content = _RENDERERS[options.format](blocks)
    return ExportedFile(
        filename=f"{_slug(session.deponent_name)}_outline.{options.format.value}",
        media_type=MEDIA_TYPES[options.format],
        content=content,
    )
