"""Format-specific bytes -> plain-text converters.

Each function takes the raw bytes of one uploaded file and returns its text.
They raise the library's own exceptions on malformed input; the
:class:`~knowledge_engine.providers.parser.parser_registry.ParserRegistry`
translates those into :class:`ParseError`.

    .pdf          PyMuPDF (fitz), page text joined by blank lines
    .docx         python-docx, paragraphs then table rows
    .xlsx / .xls  openpyxl, one block per sheet, tab-separated rows
    .csv          Markdown table (header row, ``---`` rule, body rows)
    .txt / .md    verbatim UTF-8
"""

from __future__ import annotations

import csv
import io

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from docx import Document as DocxDocument
from openpyxl import load_workbook

logger = structlog.get_logger(logger_name=__name__)


def parse_plain_text(data: bytes) -> str:
    """Decode UTF-8 (with or without BOM); undecodable bytes are replaced."""
    return data.decode("utf-8-sig", errors="replace")


def parse_pdf(data: bytes) -> str:
    """Extract text page by page from a PDF."""
    pages: list[str] = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        for page in doc:
            text = page.get_text("text").strip()
            if text:
                pages.append(text)
        page_count = doc.page_count
    logger.debug("pdf_parsed", pages=page_count, text_pages=len(pages))
    return "\n\n".join(pages)


def parse_docx(data: bytes) -> str:
    """Extract paragraph text, then table rows (cells joined by `` | ``)."""
    document = DocxDocument(io.BytesIO(data))
    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append(" | ".join(cells))
    return "\n\n".join(parts)


def parse_spreadsheet(data: bytes) -> str:
    """Extract every sheet of a workbook as tab-separated rows."""
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        sheets: list[str] = []
        for sheet_name in workbook.sheetnames:
            sheet = workbook[sheet_name]
            rows: list[str] = []
            for row in sheet.iter_rows(values_only=True):
                values = ["" if cell is None else str(cell) for cell in row]
                if any(value.strip() for value in values):
                    rows.append("\t".join(values))
            if rows:
                sheets.append(f"[Sheet: {sheet_name}]\n" + "\n".join(rows))
    finally:
        workbook.close()
    return "\n\n".join(sheets)


def parse_csv(data: bytes) -> str:
    """Render a CSV file as a Markdown table.

    The first record is the header.  Short rows are padded so every row has
    as many cells as the header; pipes inside cells are escaped.
    """
    reader = csv.reader(io.StringIO(parse_plain_text(data)))
    records = [row for row in reader if any(cell.strip() for cell in row)]
    if not records:
        return ""

    width = max(len(row) for row in records)
    lines: list[str] = []
    for i, row in enumerate(records):
        cells = [cell.strip().replace("|", "\\|") for cell in row]
        cells.extend([""] * (width - len(cells)))
        lines.append("| " + " | ".join(cells) + " |")
        if i == 0:
            lines.append("|" + "---|" * width)
    return "\n".join(lines)
