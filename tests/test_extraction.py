import io

import pytest
from pypdf import PdfWriter

from learnit.errors import ExtractionError
from learnit.extraction import (
    extract_metadata,
    extract_text,
    get_file_type,
    make_preview,
)


def make_pdf(title=None):
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    if title:
        writer.add_metadata({"/Title": title, "/Author": "A. Botanist"})
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.mark.parametrize(
    "name, expected",
    [
        ("notes.PDF", "pdf"),
        ("slides.pptx", "powerpoint"),
        ("essay.docx", "word"),
        ("grades.csv", "spreadsheet"),
        ("readme.md", "text"),
        ("archive.zip", "unknown"),
    ],
)
def test_file_types(name, expected):
    assert get_file_type(name) == expected


def test_plain_text():
    assert extract_text("notes.txt", "Zellkern – nucleus".encode("utf-8")) == "Zellkern – nucleus"


def test_csv_is_flattened():
    text = extract_text("terms.csv", b"term,meaning\nosmosis,water movement\n")
    assert "term" in text
    assert "osmosis" in text
    assert "water movement" in text


def test_unsupported_type():
    with pytest.raises(ExtractionError):
        extract_text("essay.docx", b"PK\x03\x04")


def test_broken_pdf():
    with pytest.raises(ExtractionError):
        extract_text("broken.pdf", b"definitely not a pdf")


def test_pdf_metadata():
    data = make_pdf(title="Cell Biology")
    metadata = extract_metadata("cells.pdf", data)
    assert metadata == {"page_count": 1, "title": "Cell Biology", "author": "A. Botanist"}
    assert extract_text("cells.pdf", data) == ""


def test_metadata_only_for_pdf():
    assert extract_metadata("notes.txt", b"hello") == {}


def test_preview():
    assert make_preview("  short\n text ") == "short text"
    assert make_preview("") is None
    preview = make_preview("word " * 100, limit=20)
    assert preview.endswith("...")
    assert len(preview) <= 23
