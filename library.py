import logging

from flask import Flask, request, jsonify
from flask_cors import CORS

import firebase_admin
from firebase_admin import firestore

from config import load_settings
from quiz_pipeline import aggregate, normalize_question

app = Flask(__name__)
app.config.update(load_settings())
CORS(app)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")
logger = logging.getLogger("library-backend")

_db = None


class StoreUnavailable(RuntimeError):
    pass


def get_db():
    """Return the Firestore client once firebase_admin has been initialized."""
    global _db
    if _db is None:
        if not firebase_admin._apps:
            raise StoreUnavailable("Firebase admin is not initialized")
        _db = firestore.client()
    return _db


def classes_ref(user_id):
    return get_db().collection("users").document(user_id).collection("classes")


def sets_ref(user_id, class_id):
    return classes_ref(user_id).document(class_id).collection("studySets")


def _serialize(doc):
    data = doc.to_dict() or {}
    data["id"] = doc.id
    ts = data.get("createdAt")
    if ts is not None:
        try:
            data["createdAt"] = ts.isoformat()
        except AttributeError:
            data["createdAt"] = str(ts)
    return data


def _json_body():
    try:
        data = request.get_json(force=True)
    except Exception as e:
        return None, (jsonify({"error": "Invalid JSON", "details": str(e)}), 400)
    if not isinstance(data, dict):
        return None, (jsonify({"error": "JSON body must be an object"}), 400)
    return data, None


@app.errorhandler(StoreUnavailable)
def store_unavailable(e):
    logger.error("Library request without a database: %s", e)
    return jsonify({"error": str(e)}), 503


@app.route("/classes/<user_id>", methods=["GET"])
def list_classes(user_id):
    try:
        docs = classes_ref(user_id).order_by("createdAt").stream()
        return jsonify([_serialize(d) for d in docs])
    except StoreUnavailable:
        raise
    except Exception as e:
        logger.exception("Error fetching classes for user %s", user_id)
        return jsonify({"error": str(e)}), 500


@app.route("/classes/<user_id>", methods=["POST"])
def create_class(user_id):
    data, error = _json_body()
    if error:
        return error
    name = str(data.get("name") or "").strip()
    if not name:
        return jsonify({"error": "Class name required"}), 400
    doc_ref = classes_ref(user_id).document()
    doc_ref.set({"name": name, "createdAt": firestore.SERVER_TIMESTAMP})
    logger.info("Class %s created for user %s", doc_ref.id, user_id)
    return jsonify({"status": "created", "id": doc_ref.id, "name": name}), 201


@app.route("/classes/<user_id>/<class_id>", methods=["DELETE"])
def delete_class(user_id, class_id):
    doc_ref = classes_ref(user_id).document(class_id)
    if not doc_ref.get().exists:
        return jsonify({"error": "class not found"}), 404
    deleted_sets = 0
    for doc in list(sets_ref(user_id, class_id).stream()):
        doc.reference.delete()
        deleted_sets += 1
    doc_ref.delete()
    logger.info("Deleted class %s (%d sets) for user %s", class_id, deleted_sets, user_id)
    return jsonify({"status": "deleted", "id": class_id, "deletedSets": deleted_sets})


@app.route("/classes/<user_id>/<class_id>/sets", methods=["GET"])
def list_sets(user_id, class_id):
    if not classes_ref(user_id).document(class_id).get().exists:
        return jsonify({"error": "class not found"}), 404
    docs = sets_ref(user_id, class_id).order_by("createdAt").stream()
    return jsonify([_serialize(d) for d in docs])


@app.route("/classes/<user_id>/<class_id>/sets", methods=["POST"])
def create_set(user_id, class_id):
    data, error = _json_body()
    if error:
        return error
    if not classes_ref(user_id).document(class_id).get().exists:
        return jsonify({"error": "class not found"}), 404
    title = str(data.get("title") or "").strip()
    if not title:
        return jsonify({"error": "Study set title required"}), 400
    raw_questions = data.get("questions") or []
    if not isinstance(raw_questions, list):
        return jsonify({"error": "questions must be a list"}), 400
    questions = aggregate([[q for q in (normalize_question(r) for r in raw_questions) if q]])
    record = {
        "title": title,
        "notes": data.get("notes") or "",
        "questions": questions,
        "types": sorted({q["type"] for q in questions}),
        "mode": data.get("mode") or "conceptual",
        "createdAt": firestore.SERVER_TIMESTAMP,
    }
    doc_ref = sets_ref(user_id, class_id).document()
    doc_ref.set(record)
    logger.info("Study set %s saved with %d questions", doc_ref.id, len(questions))
    return jsonify({"status": "created", "id": doc_ref.id, "questions": len(questions)}), 201


@app.route("/classes/<user_id>/<class_id>/sets/<set_id>", methods=["GET"])
def get_set(user_id, class_id, set_id):
    snap = sets_ref(user_id, class_id).document(set_id).get()
    if not snap.exists:
        return jsonify({"error": "study set not found"}), 404
    return jsonify(_serialize(snap))


@app.route("/classes/<user_id>/<class_id>/sets/<set_id>", methods=["DELETE"])
def delete_set(user_id, class_id, set_id):
    doc_ref = sets_ref(user_id, class_id).document(set_id)
    if not doc_ref.get().exists:
        return jsonify({"error": "study set not found"}), 404
    doc_ref.delete()
    logger.info("Deleted study set %s for user %s", set_id, user_id)
    return jsonify({"status": "deleted", "id": set_id})


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5001, debug=True)
