"""
Input loading for the command line: plain text, markdown and PDF files.
"""

import logging
from pathlib import Path
from typing import List, Tuple

import pdfplumber

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {'.txt', '.md', '.markdown', '.text', '.json', ''}


def load_pdf_pages(pdf_path: Path) -> List[Tuple[int, str]]:
    """Extract text page by page.

    Args:
        pdf_path: Path to PDF file

    Returns:
        List of (page_number, text) for pages that have text
    """
    pages = []
    with pdfplumber.open(pdf_path) as pdf:
        for page_num, page in enumerate(pdf.pages, start=1):
            text = page.extract_text()
            if text:
                pages.append((page_num, text))
    logger.info("Loaded %d page(s) with text from %s", len(pages), pdf_path)
    return pages


def load_text(path) -> str:
    """Read a document into a single string.

    PDFs are joined page by page with blank lines between pages; anything
    else is read as UTF-8 text.

    Raises:
        FileNotFoundError: If the path does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    if path.suffix.lower() == '.pdf':
        return "\n\n".join(text for _, text in load_pdf_pages(path))

    if path.suffix.lower() not in TEXT_SUFFIXES:
        logger.warning("Unrecognized extension %r, reading as text", path.suffix)
    return path.read_text(encoding='utf-8', errors='replace')
