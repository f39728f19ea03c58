"""Text extraction from uploaded files (TXT, MD, CSV, PDF, DOCX, HTML)."""

from __future__ import annotations

import mimetypes
from io import BytesIO
from pathlib import Path
from zipfile import BadZipFile

from chatrag.core.errors import InvalidInputError
from chatrag.services.html_extract import html_to_text

ALLOWED_EXTENSIONS = {".txt", ".md", ".csv", ".pdf", ".docx", ".html", ".htm"}

_MIME_TYPES = {
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def is_supported(filename: str) -> bool:
    return Path(filename).suffix.lower() in ALLOWED_EXTENSIONS


def supported_formats() -> str:
    return "Supported formats: " + ", ".join(sorted(ALLOWED_EXTENSIONS))


def guess_mime_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    return _MIME_TYPES.get(ext) or mimetypes.guess_type(filename)[0] or "text/plain"


def extract_text(filename: str, content: bytes) -> str:
    """Extract plain text from file bytes based on the file extension.

    Raises:
        InvalidInputError: If the extension is unsupported, the bytes
            cannot be decoded, or a PDF or DOCX file is corrupt.
    """
    ext = Path(filename).suffix.lower()

    try:
        if ext in {".txt", ".md", ".csv"}:
            return content.decode("utf-8")

        if ext in {".html", ".htm"}:
            return html_to_text(content.decode("utf-8", errors="replace"))

        if ext == ".pdf":
            return _extract_pdf(filename, content)

        if ext == ".docx":
            return _extract_docx(filename, content)
    except UnicodeDecodeError as exc:
        raise InvalidInputError(f"{filename} is not valid UTF-8 text") from exc

    raise InvalidInputError(f"Unsupported file type: {ext or filename}. {supported_formats()}")


def _extract_pdf(filename: str, content: bytes) -> str:
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(BytesIO(content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, KeyError, ValueError) as exc:
        raise InvalidInputError(f"Could not read {filename}: {exc}") from exc
    return "\n\n".join(pages)


def _extract_docx(filename: str, content: bytes) -> str:
    from docx import Document
    from docx.opc.exceptions import PackageNotFoundError

    try:
        doc = Document(BytesIO(content))
    except (BadZipFile, PackageNotFoundError, KeyError, ValueError) as exc:
        raise InvalidInputError(f"Could not read {filename}: {exc}") from exc
    return "\n".join(p.text for p in doc.paragraphs)
