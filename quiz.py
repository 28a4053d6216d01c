import logging

from flask import Flask, request, jsonify
from flask_cors import CORS

import anatomy
from config import load_settings
from grading import grade_answer, grade_free_response
from quiz_generator import ensure_nltk_resources, generate_offline_quiz
from quiz_pipeline import DEFAULT_TYPES, QUESTION_TYPES, canonical_type, normalize_question, run_pipeline
from utils.ai_client import LLMNotConfigured, client_from_config
from utils.extractors import NoTextExtracted, combine_documents

app = Flask(__name__)
app.config.update(load_settings())
CORS(app, supports_credentials=True)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("quiz-backend")

if app.config.get("NLTK_DOWNLOAD"):
    ensure_nltk_resources()


def get_llm_client():
    """Return a chat client, or None when no provider key is configured."""
    try:
        return client_from_config(app.config)
    except LLMNotConfigured:
        return None


def _json_body():
    try:
        data = request.get_json(force=True)
    except Exception as e:
        return None, (jsonify({"error": "Invalid JSON body", "details": str(e)}), 400)
    if not isinstance(data, dict):
        return None, (jsonify({"error": "JSON body must be an object"}), 400)
    return data, None


@app.route("/")
def index():
    return jsonify({
        "service": "nursing-cottage",
        "questionTypes": list(QUESTION_TYPES),
        "llm": bool(app.config.get("LLM_API_KEY")),
    })


@app.route("/health")
def health():
    return jsonify({"status": "ok"})


@app.route("/api/generate-quiz", methods=["POST"])
def generate_quiz():
    data, error = _json_body()
    if error:
        return error
    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        return jsonify({"error": "No study notes provided"}), 400
    requested = data.get("types") or DEFAULT_TYPES
    if not isinstance(requested, list):
        return jsonify({"error": "types must be a list"}), 400
    types = []
    for t in requested:
        canonical = canonical_type(t)
        if canonical is None:
            return jsonify({"error": f"Unknown question type: {t}"}), 400
        if canonical not in types:
            types.append(canonical)
    mode = str(data.get("mode") or "conceptual").strip().lower()

    client = get_llm_client()
    if client is None:
        logger.info("Offline mode: Using local quiz generator")
        quiz = generate_offline_quiz(text, types=types)
        return jsonify({"questions": quiz, "topics": [], "mode": "offline"})

    try:
        result = run_pipeline(
            client, text, types=types, mode=mode,
            strategy=app.config.get("GENERATION_STRATEGY", "parallel"),
            throttle=app.config.get("GENERATION_THROTTLE", 2.0),
            max_workers=app.config.get("GENERATION_WORKERS", 8),
        )
        if result.questions:
            return jsonify({"questions": result.questions, "topics": result.topics, "mode": "ai"})
        logger.warning("Online pipeline produced no questions")
    except Exception:
        logger.exception("Quiz generation failed (online attempt)")
    try:
        logger.info("Falling back to offline generator")
        quiz = generate_offline_quiz(text, types=types)
        return jsonify({"questions": quiz, "topics": [], "mode": "offline-fallback"})
    except Exception as e2:
        logger.exception("Offline fallback also failed")
        return jsonify({"error": "Quiz generation failed", "details": str(e2)}), 500


@app.route("/api/grade-answer", methods=["POST"])
def grade_free_response_route():
    data, error = _json_body()
    if error:
        return error
    correct, feedback = grade_free_response(
        get_llm_client(),
        data.get("question") or "",
        data.get("userAnswer") or "",
        data.get("modelAnswer") or "",
    )
    return jsonify({"correct": correct, "feedback": feedback})


@app.route("/api/check-answer", methods=["POST"])
def check_answer():
    data, error = _json_body()
    if error:
        return error
    question = data.get("question")
    if not isinstance(question, dict):
        return jsonify({"error": "question object is required"}), 400
    if canonical_type(question.get("type")) is None:
        return jsonify({"error": "Unsupported question type: {}".format(question.get("type"))}), 400
    normalized = normalize_question(question)
    if normalized is None:
        return jsonify({"error": "question is missing fields needed for grading"}), 400
    client = get_llm_client() if normalized["type"] == "frq" else None
    result = grade_answer(normalized, data.get("response"), client=client)
    return jsonify({
        "correct": result.correct,
        "feedback": result.feedback,
        "correctAnswer": result.correct_answer,
    })


@app.route("/api/upload-notes", methods=["POST"])
def upload_notes():
    uploads = request.files.getlist("files") or request.files.getlist("file")
    if not uploads:
        return jsonify({"error": "No files uploaded"}), 400
    files = [(f.filename, f.read()) for f in uploads]
    logger.info("Processing %d file(s)...", len(files))
    try:
        text, imported, skipped = combine_documents(files, lang=app.config.get("TESSERACT_LANG", "eng"))
    except NoTextExtracted as e:
        return jsonify({"error": str(e), "skipped": [n for n, _ in files]}), 422
    return jsonify({"text": text, "imported": imported, "skipped": skipped})


@app.route("/api/anatomy/models")
def anatomy_models():
    return jsonify({"models": [{"name": m, "parts": parts} for m, parts in anatomy.MODELS.items()]})


@app.route("/api/anatomy/diagrams")
def anatomy_diagrams():
    return jsonify({"diagrams": [dict(d, id=i) for i, d in anatomy.DIAGRAMS.items()]})


@app.route("/api/anatomy/diagrams/<diagram_id>/hit", methods=["POST"])
def anatomy_hit(diagram_id):
    data, error = _json_body()
    if error:
        return error
    try:
        x, y = float(data["x"]), float(data["y"])
        width, height = float(data["width"]), float(data["height"])
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "x, y, width and height are required numbers"}), 400
    try:
        label = anatomy.hit_test(diagram_id, x, y, width, height)
    except KeyError:
        return jsonify({"error": "diagram not found"}), 404
    return jsonify({"label": label})


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
