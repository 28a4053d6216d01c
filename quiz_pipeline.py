"""Multi-stage quiz generation.

Stage one asks the model for the high-level topics of the notes. Stage two
asks for a handful of questions per topic, either fanned out over a thread
pool or one topic at a time with a fixed pause between calls for providers
with tight rate limits. A topic that fails contributes no questions; it never
aborts the batch. Stage three flattens the per-topic lists in topic order and
re-numbers the ids.
"""
import logging
import string
import time
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import anatomy
from quiz_generator import extract_offline_topics
from utils.ai_client import LLMError

logger = logging.getLogger("quiz-backend")

MAX_TEXT_CHARS = 45000
TOPIC_TEXT_CHARS = 15000
MAX_TOPICS = 8
STRATEGIES = ("parallel", "sequential")

QUESTION_TYPES = (
    "multiple_choice",
    "sata",
    "fill_in_blank",
    "matching",
    "frq",
    "3d_model_matching",
    "diagram_mcq",
)
DEFAULT_TYPES = ["multiple_choice", "3d_model_matching"]

TYPE_ALIASES = {
    "mcq": "multiple_choice",
    "multiple_choice_question": "multiple_choice",
    "select_all": "sata",
    "select_all_that_apply": "sata",
    "fill_in_the_blank": "fill_in_blank",
    "fill_blank": "fill_in_blank",
    "free_response": "frq",
    "free_response_question": "frq",
    "3d_model": "3d_model_matching",
    "3d_matching": "3d_model_matching",
    "diagram": "diagram_mcq",
    "diagram_labeling": "diagram_mcq",
}

QuizResult = namedtuple("QuizResult", ["topics", "questions"])


def canonical_type(value):
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    key = TYPE_ALIASES.get(key, key)
    return key if key in QUESTION_TYPES else None


def _text(value):
    if value is None:
        return ""
    return str(value).strip()


def _string_list(values):
    if not isinstance(values, list):
        return []
    out = []
    for v in values:
        if isinstance(v, (str, int, float)) and _text(v):
            out.append(_text(v))
    return out


def is_letter_answer(answer, options):
    """True when ``answer`` is a single letter that indexes into ``options``."""
    if len(answer) != 1 or answer.upper() not in string.ascii_uppercase:
        return False
    return string.ascii_uppercase.index(answer.upper()) < len(options)


def _normalize_choice(raw, out):
    options = _string_list(raw.get("options") or raw.get("choices"))
    answer = _text(raw.get("correctAnswer") or raw.get("answer") or raw.get("correct_answer"))
    if len(options) < 2 or not answer:
        return None
    if answer not in options and not is_letter_answer(answer, options):
        options[-1] = answer
    out["options"] = options
    out["correctAnswer"] = answer
    return out


def normalize_question(raw, allowed_types=None):
    """Coerce one model-produced item to the question schema, or return None."""
    if not isinstance(raw, dict):
        return None
    qtype = canonical_type(raw.get("type"))
    if qtype is None:
        return None
    if allowed_types and qtype not in allowed_types:
        return None
    text = _text(raw.get("question"))
    if not text:
        return None
    out = {"id": _text(raw.get("id")), "type": qtype, "question": text}

    if qtype == "multiple_choice":
        return _normalize_choice(raw, out)

    if qtype == "diagram_mcq":
        out = _normalize_choice(raw, out)
        if out is None:
            return None
        diagram = _text(raw.get("diagram")).lower()
        if diagram in anatomy.DIAGRAMS:
            out["diagram"] = diagram
            out.setdefault("imageUrl", anatomy.DIAGRAMS[diagram]["src"])
        if _text(raw.get("imageUrl")):
            out["imageUrl"] = _text(raw.get("imageUrl"))
        return out

    if qtype == "sata":
        options = _string_list(raw.get("options") or raw.get("choices"))
        answers = _string_list(raw.get("correctAnswers") or raw.get("correct_answers") or raw.get("answers"))
        answers = [a for a in dict.fromkeys(answers) if a in options]
        if len(options) < 2 or not answers:
            return None
        out["options"] = options
        out["correctAnswers"] = answers
        return out

    if qtype == "fill_in_blank":
        answer = _text(raw.get("correctAnswer") or raw.get("answer"))
        if not answer:
            return None
        out["correctAnswer"] = answer
        return out

    if qtype == "matching":
        raw_pairs = raw.get("pairs")
        if not isinstance(raw_pairs, list):
            return None
        pairs = []
        for pair in raw_pairs:
            if not isinstance(pair, dict):
                continue
            left, right = _text(pair.get("left")), _text(pair.get("right"))
            if left and right:
                pairs.append({"left": left, "right": right})
        if not pairs:
            return None
        out["pairs"] = pairs
        return out

    if qtype == "frq":
        model_answer = _text(raw.get("modelAnswer") or raw.get("model_answer")
                             or raw.get("correctAnswer") or raw.get("answer"))
        if not model_answer:
            return None
        out["modelAnswer"] = model_answer
        return out

    # 3d_model_matching
    model = anatomy.resolve_model(raw.get("model"))
    label = anatomy.resolve_part(model, raw.get("correctLabel") or raw.get("answer"))
    if not model or not label:
        return None
    out["model"] = model
    out["correctLabel"] = label
    return out


def extract_topics(client, text):
    messages = [
        {"role": "system", "content": "You are a curriculum planner."},
        {"role": "user", "content": f"""
Analyze the following text and identify 5 to 8 DISTINCT, high-level topics or chapters.
Return ONLY a JSON object with an array of strings.

Example: {{ "topics": ["Cardiovascular Anatomy", "Electrical Conduction", "Medications", "Patient Education"] }}

TEXT: {text[:TOPIC_TEXT_CHARS]}
""".strip()},
    ]
    data = client.complete_json(messages, temperature=0.1)
    raw_topics = data.get("topics")
    if not isinstance(raw_topics, list):
        logger.warning("Topic response has no topic list: %r", raw_topics)
        return []
    topics = []
    seen = set()
    for topic in raw_topics:
        if not isinstance(topic, str) or not topic.strip():
            continue
        key = topic.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        topics.append(topic.strip())
    return topics[:MAX_TOPICS]


def build_topic_prompt(text, topic, types, mode):
    if mode == "practical":
        persona = "You are a Clinical Instructor. Create NCLEX-style application questions."
    else:
        persona = "You are a Professor. Create definition and concept checks."
    catalog = ""
    if "3d_model_matching" in types or "diagram_mcq" in types:
        catalog = (
            "\n" + anatomy.catalog_prompt() + "\n"
            "For 3d_model_matching use 'model' and 'correctLabel' from the list above. "
            "For diagram_mcq set 'diagram' to a diagram id and use its structures as options.\n"
        )
    return f"""
{persona}

Your Goal: Create 4 to 5 TOUGH questions specifically covering the topic: "{topic}".
Source Material: Use the provided text.
Question Types: {", ".join(types)}.

CRITICAL RULES:
1. QUESTIONS MUST BE ABOUT "{topic}".
2. Output valid JSON.
3. 5 Options for Multiple Choice.
4. For FRQ, provide 'modelAnswer'.
5. For sata, provide 'correctAnswers' as an array; for matching, provide 'pairs' of {{"left", "right"}}.
6. Do not repeat questions.
{catalog}
Required JSON Structure:
{{
  "questions": [
    {{
      "id": "1",
      "type": "multiple_choice",
      "question": "...",
      "options": ["A", "B", "C", "D", "E"],
      "correctAnswer": "A"
    }}
  ]
}}

TEXT:
{text}
""".strip()


def generate_questions_for_topic(client, text, topic, types, mode):
    messages = [
        {"role": "system", "content": "Output JSON only."},
        {"role": "user", "content": build_topic_prompt(text, topic, types, mode)},
    ]
    try:
        data = client.complete_json(messages, temperature=0.3)
        items = data.get("questions") or []
        if not isinstance(items, list):
            raise LLMError("'questions' is not a list")
        questions = [q for q in (normalize_question(item, types) for item in items) if q]
    except Exception:
        logger.exception("Failed to generate questions for topic %s", topic)
        return []
    logger.info("Topic %r produced %d/%d usable questions", topic, len(questions), len(items))
    return questions


def aggregate(results):
    """Flatten per-topic question lists and number them from "1"."""
    flat = [q for batch in results for q in batch]
    return [dict(q, id=str(i + 1)) for i, q in enumerate(flat)]


def run_pipeline(client, text, types=None, mode="conceptual", strategy="parallel",
                 throttle=2.0, max_workers=8, sleep=time.sleep):
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown generation strategy: {strategy}")
    types = list(types or DEFAULT_TYPES)
    truncated = (text or "")[:MAX_TEXT_CHARS]

    logger.info("Extracting topics...")
    topics = extract_topics(client, truncated)
    if not topics:
        topics = extract_offline_topics(truncated)
        logger.warning("Model returned no topics; using keyword topics %s", topics)
    logger.info("Topics found: %s", topics)
    if not topics:
        return QuizResult([], [])

    if strategy == "sequential":
        logger.info("Generating %d topics sequentially (%.1fs apart)", len(topics), throttle)
        results = []
        for i, topic in enumerate(topics):
            if i and throttle > 0:
                sleep(throttle)
            results.append(generate_questions_for_topic(client, truncated, topic, types, mode))
    else:
        logger.info("Launching %d parallel generation tasks...", len(topics))
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(topics)))) as ex:
            futures = [ex.submit(generate_questions_for_topic, client, truncated, t, types, mode)
                       for t in topics]
            results = [f.result() for f in futures]

    questions = aggregate(results)
    logger.info("Generated %d total questions.", len(questions))
    return QuizResult(topics, questions)
