"""
Raw text extraction from uploaded documents (PDF, DOCX, plain text).
"""

import asyncio
from pathlib import Path
from zipfile import BadZipFile

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from loguru import logger
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from shared.errors import EmptyContentError, NotFoundError, ParseError, UnsupportedTypeError

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT = "text/plain"

SUPPORTED_MIME_TYPES = (PDF, DOCX, TEXT)


def _read_pdf(path: Path) -> str:
    reader = PdfReader(str(path))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _read_docx(path: Path) -> str:
    doc = DocxDocument(str(path))
    lines = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            row_text = " | ".join(cell.text.strip() for cell in row.cells if cell.text)
            if row_text.strip():
                lines.append(row_text)
    return "\n".join(lines)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class TextExtractor:
    """Turns a stored file into plain text. Parsing runs in a worker thread."""

    readers = {
        PDF: _read_pdf,
        DOCX: _read_docx,
        TEXT: _read_text,
    }

    async def extract(self, path: str, mime_type: str) -> str:
        file_path = Path(path)
        reader = self.readers.get(mime_type)
        if reader is None:
            raise UnsupportedTypeError(f"Unsupported file type: {mime_type}")
        if not file_path.is_file():
            raise NotFoundError(f"Document file not found: {path}")

        try:
            text = await asyncio.to_thread(reader, file_path)
        except (PdfReadError, PackageNotFoundError, BadZipFile, ValueError, KeyError, OSError) as e:
            raise ParseError(f"Failed to parse {file_path.name}: {e}") from e

        text = text.strip()
        if not text:
            raise EmptyContentError(f"No text extracted from {file_path.name}")

        logger.debug(f"Extracted {len(text)} chars from {file_path.name}")
        return text
