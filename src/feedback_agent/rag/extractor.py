"""
Text extraction from uploaded material.

Dispatches on MIME type:

- plain text, markdown, CSV: decoded as-is
- HTML: tags stripped, common entities decoded
- RTF: control words and groups removed
- PDF: text layer per part of at most 30 pages, OCR for parts without one
- images: OCR
- DOCX/PPTX/XLSX/ODF: known XML parts read from the zip and tag-stripped

Anything else yields an empty string.
"""

import io
import re
import zipfile
from typing import Callable, List, Optional

from loguru import logger

from feedback_agent.config.constants import DOC_AI_PAGE_LIMIT
from feedback_agent.core.exceptions import ExtractionError
from feedback_agent.rag.pdf_reader import PDFReader
from feedback_agent.utils.sorting import natural_sort_key

# (image bytes, mime type) -> text
OcrFunction = Callable[[bytes, str], str]

TEXT_TYPES = {"text/plain", "text/markdown", "text/csv", "text/html"}
RTF_TYPES = {"application/rtf", "text/rtf"}
PDF_TYPE = "application/pdf"

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ODF_TYPES = {
    "application/vnd.oasis.opendocument.text",
    "application/vnd.oasis.opendocument.presentation",
    "application/vnd.oasis.opendocument.spreadsheet",
}

# Zip part name patterns per office format
ZIP_PARTS = {
    DOCX_TYPE: [r"^word/document\.xml$", r"^word/header\d*\.xml$", r"^word/footer\d*\.xml$"],
    PPTX_TYPE: [r"^ppt/slides/slide\d+\.xml$", r"^ppt/notesSlides/notesSlide\d+\.xml$"],
    XLSX_TYPE: [r"^xl/sharedStrings\.xml$", r"^xl/worksheets/sheet\d+\.xml$"],
    **{t: [r"^content\.xml$"] for t in ODF_TYPES},
}

_TAG_RE = re.compile(r"<[^>]+>")
_HTML_ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
}
_RTF_PATTERNS = [
    re.compile(r"\\par[d]?"),
    re.compile(r"\\'[0-9a-fA-F]{2}"),
    re.compile(r"\\[a-zA-Z]+-?\d* ?"),
    re.compile(r"[{}]"),
]


def strip_html(html: str) -> str:
    text = _TAG_RE.sub(" ", html)
    for entity, value in _HTML_ENTITIES.items():
        text = text.replace(entity, value)
    # &amp; last so "&amp;lt;" stays "&lt;"
    return text.replace("&amp;", "&")


def strip_rtf(rtf: str) -> str:
    text = rtf
    for pattern in _RTF_PATTERNS:
        text = pattern.sub(" ", text)
    return text


def strip_xml(xml: str) -> str:
    return strip_html(xml)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class TextExtractor:
    """Turns uploaded bytes into plain text."""

    def __init__(self, ocr: Optional[OcrFunction] = None, page_limit: int = DOC_AI_PAGE_LIMIT):
        self.ocr = ocr
        self.page_limit = page_limit

    def extract_text(self, data: bytes, mime_type: str) -> str:
        mime = (mime_type or "").split(";")[0].strip().lower()

        if mime in TEXT_TYPES:
            text = _decode(data)
            return strip_html(text) if mime == "text/html" else text
        if mime in RTF_TYPES:
            return strip_rtf(_decode(data))
        if mime == PDF_TYPE:
            return self._extract_pdf(data)
        if mime.startswith("image/"):
            return self._ocr(data, mime)
        if mime in ZIP_PARTS:
            return self._extract_zip(data, ZIP_PARTS[mime])

        logger.warning(f"Unsupported material type {mime!r}; no text extracted")
        return ""

    def _ocr(self, data: bytes, mime: str) -> str:
        if self.ocr is None:
            logger.warning(f"No OCR provider configured; skipping {mime}")
            return ""
        return self.ocr(data, mime).strip()

    def _extract_pdf(self, data: bytes) -> str:
        parts: List[str] = []
        with PDFReader(data) as reader:
            for pages in reader.iter_parts(self.page_limit):
                text = reader.extract_text(pages)
                if not text and self.ocr is not None:
                    ocr_pages = [self._ocr(reader.get_page_image_bytes(p), "image/png") for p in pages]
                    text = "\n".join(t for t in ocr_pages if t)
                if text:
                    parts.append(text)
            logger.debug(f"PDF with {reader.page_count} pages extracted in {len(parts)} parts")
        return "\n".join(parts)

    def _extract_zip(self, data: bytes, patterns: List[str]) -> str:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise ExtractionError(f"Invalid office document: {e}") from e

        compiled = [re.compile(p) for p in patterns]
        texts: List[str] = []
        with archive:
            # Patterns are ordered by role (body before headers, slides before notes)
            for pattern in compiled:
                names = sorted((n for n in archive.namelist() if pattern.match(n)), key=natural_sort_key)
                for name in names:
                    texts.append(strip_xml(_decode(archive.read(name))))
        return " ".join(t for t in texts if t.strip())
