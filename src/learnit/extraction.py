import io
import logging
import os
import re
from typing import Any, Dict, Optional

import pandas as pd
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionError

logger = logging.getLogger(__name__)

FILE_TYPES = {
    "pdf": "pdf",
    "ppt": "powerpoint",
    "pptx": "powerpoint",
    "doc": "word",
    "docx": "word",
    "xls": "spreadsheet",
    "xlsx": "spreadsheet",
    "csv": "spreadsheet",
    "txt": "text",
    "rtf": "text",
    "md": "text",
}


def _extension(file_name: str) -> str:
    return os.path.splitext(file_name.lower())[1].lstrip(".")


def get_file_type(file_name: str) -> str:
    return FILE_TYPES.get(_extension(file_name), "unknown")


def _read_pdf(data: bytes) -> PdfReader:
    try:
        return PdfReader(io.BytesIO(data))
    except (PyPdfError, ValueError, OSError) as e:
        raise ExtractionError(f"Could not read PDF: {e}") from e


def extract_text(file_name: str, data: bytes) -> str:
    """Pulls plain text out of an uploaded file."""
    file_type = get_file_type(file_name)

    if file_type == "pdf":
        reader = _read_pdf(data)
        pages = []
        for number, page in enumerate(reader.pages, start=1):
            try:
                pages.append(page.extract_text() or "")
            except (PyPdfError, KeyError, ValueError) as e:
                logger.warning(f"Skipping page {number} of {file_name}: {e}")
        text = "\n".join(pages)
        if not text.strip():
            logger.warning(f"{file_name} has no text layer, it may be scanned.")
        return text

    if _extension(file_name) == "csv":
        try:
            df = pd.read_csv(io.BytesIO(data), encoding="utf-8")
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise ExtractionError(f"Could not read CSV: {e}") from e
        return df.to_string(index=False)

    if file_type == "text":
        return data.decode("utf-8", errors="replace")

    raise ExtractionError(f"Unsupported file type for text extraction: {file_type}")


def extract_metadata(file_name: str, data: bytes) -> Dict[str, Any]:
    if get_file_type(file_name) != "pdf":
        return {}
    reader = _read_pdf(data)
    metadata: Dict[str, Any] = {"page_count": len(reader.pages)}
    info = reader.metadata
    if info:
        if info.title:
            metadata["title"] = info.title
        if info.author:
            metadata["author"] = info.author
    return metadata


def make_preview(text: str, limit: int = 300) -> Optional[str]:
    normalized = re.sub(r"\s+", " ", text or "").strip()
    if not normalized:
        return None
    if len(normalized) <= limit:
        return normalized
    return normalized[:limit].rstrip() + "..."
