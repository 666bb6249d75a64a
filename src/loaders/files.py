from __future__ import annotations

"""Extract text from downloaded knowledge files (text, markdown, PDF, DOCX)."""

from io import BytesIO
from pathlib import PurePosixPath
import re

from src.rag.errors import LoaderError
from src.rag.types import Document

_WHITESPACE_RE = re.compile(r"[ \t\f\v]+")

_TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".csv", ".json", ".log", ".html", ".htm"}


def detect_kind(source: str, content_type: str = "") -> str:
    """Classify a file as pdf, docx or text from its content type or suffix."""
    lowered = content_type.lower()
    if "pdf" in lowered:
        return "pdf"
    if "wordprocessingml" in lowered:
        return "docx"
    suffix = PurePosixPath(source.split("?", 1)[0]).suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix == ".docx":
        return "docx"
    if suffix in _TEXT_SUFFIXES or lowered.startswith("text/") or not suffix:
        return "text"
    raise LoaderError(f"Unsupported file type: {suffix or content_type}")


def _clean_text(text: str) -> str:
    lines = [_WHITESPACE_RE.sub(" ", line).strip() for line in text.replace("\r\n", "\n").split("\n")]
    return "\n".join(line for line in lines if line)


def load_text_bytes(data: bytes, doc_id: str, source: str) -> Document:
    """Load plain text or markdown bytes into a Document."""
    content = data.decode("utf-8", errors="ignore")
    return Document(doc_id=doc_id, content=_clean_text(content), metadata={"source": source})


def load_pdf_bytes(data: bytes, doc_id: str, source: str) -> Document:
    """Load a PDF from bytes and return a Document."""
    try:
        import fitz
    except ImportError as exc:
        raise LoaderError("PyMuPDF is required to load PDF files") from exc

    try:
        reader = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise LoaderError(f"Failed to open PDF {source}: {exc}") from exc
    text_parts: list[str] = []
    for page in reader:
        # keep page breaks as line breaks so the splitter can cut on them
        text_parts.append(page.get_text() or "")
    content = _clean_text("\n".join(text_parts))
    return Document(doc_id=doc_id, content=content, metadata={"source": source})


def load_docx_bytes(data: bytes, doc_id: str, source: str) -> Document:
    """Load a DOCX file from bytes into a Document."""
    try:
        from docx import Document as DocxDocument
    except ImportError as exc:
        raise LoaderError("python-docx is required to load DOCX files") from exc

    try:
        doc = DocxDocument(BytesIO(data))
    except Exception as exc:
        raise LoaderError(f"Failed to open DOCX {source}: {exc}") from exc
    parts: list[str] = []
    for paragraph in doc.paragraphs:
        text = paragraph.text.strip()
        if text:
            parts.append(text)

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    content = "\n".join(parts).strip()
    return Document(doc_id=doc_id, content=content, metadata={"source": source})


def load_bytes(data: bytes, doc_id: str, source: str, content_type: str = "") -> Document:
    """Dispatch to the loader matching the file kind."""
    kind = detect_kind(source, content_type)
    if kind == "pdf":
        return load_pdf_bytes(data, doc_id, source)
    if kind == "docx":
        return load_docx_bytes(data, doc_id, source)
    return load_text_bytes(data, doc_id, source)
