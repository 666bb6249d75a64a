from __future__ import annotations

"""Loader tests for downloaded knowledge files."""

from io import BytesIO

import httpx
import pytest

from src.loaders.files import detect_kind, load_bytes
from src.loaders.remote import RemoteDocumentFetcher
from src.rag.errors import LoaderError


def test_detect_kind_from_suffix_and_content_type() -> None:
    assert detect_kind("https://files.test/a/report.PDF?sig=1") == "pdf"
    assert detect_kind("https://files.test/a/notes.md") == "text"
    assert detect_kind("https://files.test/a/blob", "application/pdf") == "pdf"
    assert detect_kind("https://files.test/a/letter.docx") == "docx"
    with pytest.raises(LoaderError):
        detect_kind("https://files.test/a/archive.zip", "application/zip")


def test_load_text_bytes_cleans_whitespace() -> None:
    doc = load_bytes(b"Title\r\n\r\n  many   spaces here  \n", doc_id="t", source="notes.txt")
    assert doc.content == "Title\nmany spaces here"
    assert doc.metadata == {"source": "notes.txt"}


def test_load_docx_bytes() -> None:
    """Ensure DOCX bytes load into Document content."""
    docx = pytest.importorskip("docx")
    document = docx.Document()
    document.add_paragraph("Quarterly report")
    document.add_paragraph("Revenue increased.")
    buffer = BytesIO()
    document.save(buffer)

    doc = load_bytes(buffer.getvalue(), doc_id="docx-1", source="report.docx")

    assert "Quarterly report" in doc.content
    assert "Revenue increased." in doc.content


def test_load_pdf_bytes() -> None:
    fitz = pytest.importorskip("fitz")
    pdf = fitz.open()
    page = pdf.new_page()
    page.insert_text((72, 72), "Warranty lasts two years.")
    data = pdf.tobytes()

    doc = load_bytes(data, doc_id="pdf-1", source="warranty.pdf")

    assert "Warranty lasts two years." in doc.content


@pytest.mark.anyio
async def test_remote_fetcher_downloads_and_loads() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"Content-Type": "text/plain"}, content=b"Shipping is free."
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        fetcher = RemoteDocumentFetcher(client=client)
        doc = await fetcher.fetch("https://files.test/docs/shipping.txt")

    assert doc.content == "Shipping is free."
    assert doc.metadata["source"] == "https://files.test/docs/shipping.txt"
    assert doc.metadata["source_name"] == "shipping.txt"


@pytest.mark.anyio
async def test_remote_fetcher_enforces_size_limit() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"x" * 64)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        fetcher = RemoteDocumentFetcher(max_bytes=16, client=client)
        with pytest.raises(LoaderError):
            await fetcher.fetch("https://files.test/big.txt")


@pytest.mark.anyio
async def test_remote_fetcher_wraps_http_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        fetcher = RemoteDocumentFetcher(client=client)
        with pytest.raises(LoaderError):
            await fetcher.fetch("https://files.test/missing.txt")


@pytest.mark.anyio
async def test_remote_fetcher_rejects_non_http_urls() -> None:
    with pytest.raises(LoaderError):
        await RemoteDocumentFetcher().fetch("file:///etc/passwd")
