import io

import fitz
import pytest
from pptx import Presentation
from pptx.util import Inches

from utils import extractors
from utils.extractors import (
    NoTextExtracted, UnsupportedFileType, combine_documents, extract_text, preprocess_image,
)


def make_pdf(pages):
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def make_pptx(slides):
    prs = Presentation()
    layout = prs.slide_layouts[6]
    for text in slides:
        slide = prs.slides.add_slide(layout)
        if text:
            box = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1))
            box.text_frame.text = text
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


def test_pdf_pages_get_headers():
    text = extract_text("notes.pdf", make_pdf(["Cardiac output", "Stroke volume"]))
    assert "--- Page 1 ---" in text
    assert "--- Page 2 ---" in text
    assert text.index("Cardiac output") < text.index("Stroke volume")


def test_pptx_slides_in_order_and_blank_skipped():
    text = extract_text("deck.pptx", make_pptx(["Preload", "", "Afterload"]))
    assert "--- Slide 1 ---\nPreload" in text
    assert "--- Slide 3 ---\nAfterload" in text
    assert "Slide 2" not in text


def test_plain_text_and_unsupported():
    assert extract_text("a.md", "# Heading".encode("utf-8")) == "# Heading"
    with pytest.raises(UnsupportedFileType):
        extract_text("movie.mp4", b"\x00")


def test_image_dispatches_to_ocr(monkeypatch):
    monkeypatch.setattr(extractors, "extract_text_from_image", lambda data, lang="eng": "ocr text")
    assert extract_text("scan.PNG", b"img") == "ocr text"


def test_preprocess_returns_original_for_garbage():
    assert preprocess_image(b"definitely not an image") == b"definitely not an image"


def test_combine_documents_skips_bad_files():
    text, imported, skipped = combine_documents([
        ("a.txt", b"Heart failure notes"),
        ("b.exe", b"MZ"),
        ("c.txt", b"   "),
        ("d.pdf", make_pdf(["Diuretics"])),
    ])
    assert imported == ["a.txt", "d.pdf"]
    assert [s["name"] for s in skipped] == ["b.exe", "c.txt"]
    assert "========== a.txt ==========\nHeart failure notes" in text
    assert text.index("a.txt") < text.index("d.pdf")


def test_combine_documents_nothing_extracted():
    with pytest.raises(NoTextExtracted):
        combine_documents([("x.bin", b"\x00"), ("y.txt", b"")])
