"""
PDF reading for material extraction.

Uses PyMuPDF (fitz) to read the text layer and to render pages that have no
text layer for OCR.
"""

from typing import Iterator, List

import fitz  # PyMuPDF

from feedback_agent.config.constants import PDF_OCR_DPI
from feedback_agent.core.exceptions import ExtractionError


class PDFReader:
    """
    In-memory PDF reader.

    Handles:
    - Opening PDF bytes
    - Splitting page ranges into bounded parts
    - Text-layer extraction
    - Page rendering to PNG
    """

    def __init__(self, data: bytes):
        """
        Open a PDF from bytes.

        Raises:
            ExtractionError: If the bytes are not a readable PDF
        """
        try:
            self.doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"Failed to open PDF: {e}") from e
        self.page_count = len(self.doc)

    def __enter__(self) -> "PDFReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.doc.close()

    def iter_parts(self, page_limit: int) -> Iterator[List[int]]:
        """Consecutive page-index ranges of at most ``page_limit`` pages."""
        for start in range(0, self.page_count, page_limit):
            yield list(range(start, min(start + page_limit, self.page_count)))

    def extract_text(self, pages: List[int]) -> str:
        return "\n".join(self.doc[p].get_text("text") for p in pages).strip()

    def get_page_image_bytes(self, page_num: int, dpi: int = PDF_OCR_DPI) -> bytes:
        """Render one page as PNG bytes."""
        if page_num >= self.page_count:
            raise IndexError(f"Page {page_num} out of range (0-{self.page_count - 1})")
        zoom = dpi / 72
        pix = self.doc[page_num].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return pix.tobytes("png")
