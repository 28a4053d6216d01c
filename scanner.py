import base64
import binascii
import logging

from flask import Flask, request, jsonify
from flask_cors import CORS

from config import load_settings
from utils.ai_client import LLMNotConfigured, client_from_config
from utils.extractors import extract_text_from_image

app = Flask(__name__)
app.config.update(load_settings())
CORS(app)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")
logger = logging.getLogger("scanner-backend")

MAX_SCAN_CHARS = 50000

TRANSCRIPTION_INSTRUCTIONS = """You are an expert transcriptionist for medical and nursing students.

Your task is to take raw, messy OCR text scanned from handwritten or printed notes and convert it into clean, organized Markdown.

RULES:
1. Fix typos, spacing errors, and "garbage" characters (e.g., "adiil W" -> ignored, "bid" -> "b.i.d.").
2. Detect the structure: Use headers (#), bullet points (-), and bold terms (**Term**: Definition).
3. Preserve medical accuracy: Ensure abbreviations like 'qd', 'q4h', 'SOAP' are correctly transcribed.
4. Remove artifacts: Delete page numbers, headers/footers, or random symbols (e.g., "|", "{", "}").
5. Output ONLY the cleaned text. Do not add conversational filler like "Here is the text"."""


def enhance_scanned_text(client, raw_text):
    """Clean OCR output with the model; falls back to ``raw_text`` on any failure."""
    if not raw_text or not raw_text.strip():
        return ""
    if client is None:
        return raw_text
    messages = [
        {"role": "system", "content": TRANSCRIPTION_INSTRUCTIONS},
        {"role": "user", "content": f"Here is the raw OCR text:\n\n{raw_text[:MAX_SCAN_CHARS]}"},
    ]
    try:
        return client.complete(messages, temperature=0.1) or raw_text
    except Exception:
        logger.exception("AI Enhancement Failed")
        return raw_text


def decode_image(value):
    """Decode a data URL or bare base64 string to bytes."""
    if not isinstance(value, str):
        raise ValueError("image must be a string")
    if value.startswith("data:"):
        value = value.split(",", 1)[-1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("image is not valid base64") from e


def get_llm_client():
    try:
        return client_from_config(app.config)
    except LLMNotConfigured:
        return None


@app.route("/scan", methods=["POST"])
def scan():
    images = [f.read() for f in request.files.getlist("files")]
    if not images and request.is_json:
        data = request.get_json(silent=True) or {}
        try:
            images = [decode_image(v) for v in data.get("images") or []]
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
    if not images:
        return jsonify({"error": "No images provided"}), 400

    lang = app.config.get("TESSERACT_LANG", "eng")
    raw_texts = []
    try:
        for i, image in enumerate(images, start=1):
            logger.info("OCR page %d/%d", i, len(images))
            raw_texts.append(extract_text_from_image(image, lang=lang))
    except Exception as e:
        logger.exception("OCR failed")
        return jsonify({"error": "Processing failed", "details": str(e)}), 500

    combined = "\n".join(raw_texts)
    cleaned = enhance_scanned_text(get_llm_client(), combined)
    return jsonify({
        "rawText": combined,
        "text": cleaned,
        "enhanced": bool(cleaned) and cleaned != combined,
        "pages": len(images),
    })


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5002, debug=True)
