import io
import os
import logging

import cv2
import fitz  # PyMuPDF
import numpy as np
import pytesseract
from PIL import Image
from pptx import Presentation

logger = logging.getLogger("quiz-backend")

TEXT_EXTENSIONS = {".txt", ".md", ".json", ".csv"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}


class UnsupportedFileType(ValueError):
    pass


class NoTextExtracted(ValueError):
    pass


def extract_text_from_pdf(data):
    parts = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        for i, page in enumerate(doc, start=1):
            parts.append(f"\n--- Page {i} ---\n{page.get_text()}\n")
    return "".join(parts)


def extract_text_from_pptx(data):
    prs = Presentation(io.BytesIO(data))
    slides = []
    for number, slide in enumerate(prs.slides, start=1):
        texts = []
        for shape in slide.shapes:
            if getattr(shape, "has_text_frame", False) and shape.text_frame.text.strip():
                texts.append(shape.text_frame.text.strip())
        if texts:
            slides.append(f"--- Slide {number} ---\n" + " ".join(texts))
    return "\n\n".join(slides)


def preprocess_image(data):
    """Grayscale and adaptive-threshold a scan so OCR sees crisp text.

    Returns PNG bytes, or the original bytes when the image can't be decoded.
    """
    try:
        arr = np.frombuffer(data, dtype=np.uint8)
        img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
        if img is None:
            return data
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        processed = cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                                          cv2.THRESH_BINARY, 11, 2)
        ok, buf = cv2.imencode(".png", processed)
        return buf.tobytes() if ok else data
    except cv2.error as e:
        logger.warning("Image preprocessing failed, using original: %s", e)
        return data


def extract_text_from_image(data, lang="eng"):
    image = Image.open(io.BytesIO(preprocess_image(data)))
    return pytesseract.image_to_string(image, lang=lang).strip()


def extract_text(filename, data, lang="eng"):
    ext = os.path.splitext(filename or "")[1].lower()
    if ext == ".pdf":
        return extract_text_from_pdf(data)
    if ext == ".pptx":
        return extract_text_from_pptx(data)
    if ext in TEXT_EXTENSIONS:
        return data.decode("utf-8", errors="ignore")
    if ext in IMAGE_EXTENSIONS:
        return extract_text_from_image(data, lang=lang)
    raise UnsupportedFileType(f"Unsupported file type: {ext or filename}")


def combine_documents(files, lang="eng"):
    """Extract and concatenate several uploads.

    ``files`` is an iterable of ``(filename, bytes)``. Files that fail or
    yield no text are skipped and reported. Returns ``(text, imported,
    skipped)`` where ``skipped`` holds ``{"name", "reason"}`` dicts.
    """
    sections = []
    imported = []
    skipped = []
    for name, data in files:
        try:
            content = extract_text(name, data, lang=lang)
        except Exception as e:
            logger.warning("Error processing %s: %s", name, e)
            skipped.append({"name": name, "reason": str(e) or "Could not extract text."})
            continue
        if not content.strip():
            skipped.append({"name": name, "reason": "No text found."})
            continue
        sections.append(f"\n========== {name} ==========\n{content}")
        imported.append(name)
    if not sections:
        raise NoTextExtracted("No text could be extracted from any file")
    return "\n\n".join(sections), imported, skipped
