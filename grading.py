import logging
import re
import string
from collections import namedtuple

from quiz_pipeline import canonical_type, is_letter_answer

logger = logging.getLogger("quiz-backend")

GradeResult = namedtuple("GradeResult", ["correct", "feedback", "correct_answer"])

GRADING_FALLBACK = "Error grading. Please compare with model answer manually."
NON_ANSWERS = {"", "idk", "i dont know", "i don't know", "dont know", "don't know", "no idea"}


class UnsupportedQuestionType(ValueError):
    pass


def _clean(value):
    if value is None:
        return ""
    return str(value).strip()


def resolve_choice_answer(question):
    """Return the text of the correct option, resolving letter answers."""
    answer = _clean(question.get("correctAnswer") or question.get("answer"))
    options = question.get("options") or []
    if answer in options:
        return answer
    if is_letter_answer(answer, options):
        return options[string.ascii_uppercase.index(answer.upper())]
    return answer


def _grade_choice(question, response):
    answer = _clean(question.get("correctAnswer") or question.get("answer"))
    options = question.get("options") or []
    selected = _clean(response)
    correct = False
    if selected and selected == answer:
        correct = True
    elif is_letter_answer(answer, options) and selected in options:
        correct = options.index(selected) == string.ascii_uppercase.index(answer.upper())
    return correct, resolve_choice_answer(question)


def _grade_fill_in_blank(question, response):
    answer = _clean(question.get("correctAnswer") or question.get("answer"))
    correct = bool(answer) and _clean(response).lower() == answer.lower()
    return correct, answer


def _grade_sata(question, response):
    expected = question.get("correctAnswers")
    if not isinstance(expected, list):
        expected = []
    expected = [_clean(a) for a in expected]
    correct = bool(expected) and isinstance(response, list) and set(_clean(r) for r in response) == set(expected)
    return correct, "Correct options: " + ", ".join(expected)


def _grade_matching(question, response):
    pairs = question.get("pairs")
    if not isinstance(pairs, list):
        pairs = []
    # Stored sets may hold hand-edited pairs; only complete ones count
    pairs = [(_clean(p.get("left")), _clean(p.get("right"))) for p in pairs if isinstance(p, dict)]
    pairs = [(left, right) for left, right in pairs if left and right]
    correct = (
        isinstance(response, dict)
        and bool(pairs)
        and len(response) == len(pairs)
        and all(_clean(response.get(left)) == right for left, right in pairs)
    )
    return correct, "; ".join(f"{left} → {right}" for left, right in pairs)


def _grade_model_label(question, response):
    label = _clean(question.get("correctLabel"))
    return bool(label) and _clean(response) == label, label


SYNC_GRADERS = {
    "multiple_choice": _grade_choice,
    "diagram_mcq": _grade_choice,
    "fill_in_blank": _grade_fill_in_blank,
    "sata": _grade_sata,
    "matching": _grade_matching,
    "3d_model_matching": _grade_model_label,
}


def is_non_answer(text):
    folded = re.sub(r"[^\w\s']", "", _clean(text).lower())
    return " ".join(folded.split()) in NON_ANSWERS


def grade_free_response(client, question, user_answer, model_answer):
    """Ask the model whether a free response matches the model answer.

    Returns a ``(correct, feedback)`` pair. Grading never raises: any failure
    is reported as an incorrect answer with a manual-review hint.
    """
    if is_non_answer(user_answer):
        return False, "No answer was given."
    if client is None:
        return False, GRADING_FALLBACK
    messages = [
        {"role": "system", "content": "You are a strict grader. Output ONLY valid JSON."},
        {"role": "user", "content": f"""
Question: {question}
Model Answer: {model_answer}
Student Answer: {user_answer}

Is the student answer conceptually correct based on the model answer?
Ignore spelling errors or phrasing differences.
If the student says "IDK" or "I don't know", mark it incorrect.

Return strictly:
{{
  "correct": boolean,
  "feedback": "Short 1 sentence explanation of why it is right or wrong."
}}
""".strip()},
    ]
    try:
        data = client.complete_json(messages, temperature=0.1)
    except Exception:
        logger.exception("Grading error")
        return False, GRADING_FALLBACK
    correct = data.get("correct")
    if isinstance(correct, str):
        correct = correct.strip().lower() == "true"
    feedback = _clean(data.get("feedback")) or ("Correct." if correct else "Incorrect.")
    return bool(correct), feedback


def grade_answer(question, response, client=None):
    qtype = canonical_type(question.get("type"))
    if qtype == "frq":
        model_answer = _clean(question.get("modelAnswer"))
        correct, feedback = grade_free_response(client, question.get("question", ""), response, model_answer)
        return GradeResult(correct, feedback, model_answer or "No model answer available.")
    grader = SYNC_GRADERS.get(qtype)
    if grader is None:
        raise UnsupportedQuestionType("Unsupported question type: {}".format(question.get("type")))
    correct, display = grader(question, response)
    feedback = "Correct!" if correct else "Not quite."
    return GradeResult(correct, feedback, display)
