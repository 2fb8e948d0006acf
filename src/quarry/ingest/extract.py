"""Format-aware text extraction from blob bytes.

Dispatch by MIME type first, file extension second:
  application/pdf / .pdf   → pypdf, page by page
  DOCX MIME / .docx        → python-docx, raw text + HTML rendering
  text/* / .md / anything  → UTF-8 plain text

Extraction never raises for a malformed document: the PDF and DOCX paths
fall back to plain-text decoding and record a warning instead.
"""

from __future__ import annotations

import html
import io
import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePath

import docx
import pypdf
from docx.table import Table
from docx.text.paragraph import Paragraph

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_WHITESPACE_RE = re.compile(r"\s+")
_HEADING_RE = re.compile(r"^Heading ([1-6])$")


@dataclass
class ExtractionWarning:
    type: str  # warning | error
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"type": self.type, "message": self.message}


@dataclass
class ExtractedText:
    text: str
    rich_text: str | None = None
    warnings: list[ExtractionWarning] = field(default_factory=list)


def extract_text(data: bytes, mime: str | None = None, filename: str | None = None) -> ExtractedText:
    """Extract plain text (and HTML for DOCX) from *data*.

    Args:
        data: Raw blob bytes.
        mime: MIME type recorded for the blob, if any. Parameters such as
            ``; charset=utf-8`` are ignored.
        filename: Original file name; only its extension is used.
    """
    mime_type = (mime or "").split(";")[0].strip().lower()
    extension = PurePath(filename).suffix.lower() if filename else ""

    if mime_type == PDF_MIME or extension == ".pdf":
        return _extract_pdf(data)
    if mime_type == DOCX_MIME or extension == ".docx":
        return _extract_docx(data)
    return _extract_plain(data)


def normalize_whitespace(value: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return _WHITESPACE_RE.sub(" ", value).strip()


# ------------------------------------------------------------------
# Plain text / markdown / fallback
# ------------------------------------------------------------------


def _extract_plain(data: bytes, warnings: list[ExtractionWarning] | None = None) -> ExtractedText:
    text = data.decode("utf-8-sig", errors="replace")
    return ExtractedText(text=normalize_whitespace(text), warnings=list(warnings or []))


# ------------------------------------------------------------------
# PDF
# ------------------------------------------------------------------


def _extract_pdf(data: bytes) -> ExtractedText:
    """Per-page text, each page normalised, pages joined by a blank line."""
    warnings: list[ExtractionWarning] = []
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        pages = list(reader.pages)
    except Exception as exc:  # pypdf raises a wide range of types on corrupt input
        logger.warning("PDF could not be parsed, decoding as plain text: %s", exc)
        warnings.append(ExtractionWarning("error", f"PDF could not be parsed: {exc}"))
        return _extract_plain(data, warnings)

    parts: list[str] = []
    for number, page in enumerate(pages, start=1):
        try:
            page_text = normalize_whitespace(page.extract_text() or "")
        except Exception as exc:
            warnings.append(ExtractionWarning("warning", f"Page {number} skipped: {exc}"))
            continue
        if page_text:
            parts.append(page_text)

    return ExtractedText(text="\n\n".join(parts).strip(), warnings=warnings)


# ------------------------------------------------------------------
# DOCX
# ------------------------------------------------------------------


def _extract_docx(data: bytes) -> ExtractedText:
    """Raw text and an HTML rendering of the same document.

    Warnings from both passes are collected; unknown paragraph styles are
    rendered as ``<p>`` and reported once each.
    """
    try:
        document = docx.Document(io.BytesIO(data))
        blocks = list(document.iter_inner_content())
    except Exception as exc:
        logger.warning("DOCX could not be parsed, decoding as plain text: %s", exc)
        warning = ExtractionWarning("error", f"DOCX could not be parsed: {exc}")
        return _extract_plain(data, [warning])

    raw_warnings: list[ExtractionWarning] = []
    html_warnings: list[ExtractionWarning] = []
    raw = _docx_raw_text(blocks, raw_warnings)
    rich = _docx_html(blocks, html_warnings)

    return ExtractedText(
        text=normalize_whitespace(raw),
        rich_text=rich or None,
        warnings=raw_warnings + html_warnings,
    )


def _docx_raw_text(blocks: list[Paragraph | Table], warnings: list[ExtractionWarning]) -> str:
    parts: list[str] = []
    for block in blocks:
        if isinstance(block, Paragraph):
            parts.append(block.text)
        elif isinstance(block, Table):
            for row in block.rows:
                for cell in row.cells:
                    parts.append(cell.text)
        else:
            warnings.append(ExtractionWarning("warning", f"Skipped unsupported block: {type(block).__name__}"))
    return "\n\n".join(p for p in parts if p.strip())


def _docx_html(blocks: list[Paragraph | Table], warnings: list[ExtractionWarning]) -> str:
    out: list[str] = []
    unknown_styles: set[str] = set()
    in_list = False

    for block in blocks:
        if isinstance(block, Table):
            if in_list:
                out.append("</ul>")
                in_list = False
            out.append(_table_html(block))
            continue
        if not isinstance(block, Paragraph):
            continue

        inner = _runs_html(block)
        if not inner:
            continue

        style = block.style.name if block.style is not None else "Normal"
        if style.startswith("List"):
            if not in_list:
                out.append("<ul>")
                in_list = True
            out.append(f"<li>{inner}</li>")
            continue
        if in_list:
            out.append("</ul>")
            in_list = False

        heading = _HEADING_RE.match(style)
        if heading:
            level = heading.group(1)
            out.append(f"<h{level}>{inner}</h{level}>")
        elif style == "Title":
            out.append(f"<h1>{inner}</h1>")
        else:
            if style not in ("Normal", "Body Text") and style not in unknown_styles:
                unknown_styles.add(style)
                warnings.append(
                    ExtractionWarning("warning", f"Unrecognised paragraph style: '{style}'")
                )
            out.append(f"<p>{inner}</p>")

    if in_list:
        out.append("</ul>")
    return "".join(out)


def _runs_html(paragraph: Paragraph) -> str:
    pieces: list[str] = []
    for run in paragraph.runs:
        if not run.text:
            continue
        piece = html.escape(run.text)
        if run.italic:
            piece = f"<em>{piece}</em>"
        if run.bold:
            piece = f"<strong>{piece}</strong>"
        pieces.append(piece)
    if not pieces and paragraph.text:
        pieces.append(html.escape(paragraph.text))
    return "".join(pieces)


def _table_html(table: Table) -> str:
    rows = []
    for row in table.rows:
        cells = "".join(f"<td><p>{html.escape(cell.text)}</p></td>" for cell in row.cells)
        rows.append(f"<tr>{cells}</tr>")
    return f"<table>{''.join(rows)}</table>"
