import re
import random
import logging
import unicodedata
from collections import Counter
from typing import List, Dict

import nltk
from nltk.corpus import wordnet as wn
from sklearn.feature_extraction.text import TfidfVectorizer

logger = logging.getLogger("quiz-backend")

NLTK_RESOURCES = (
    "punkt", "punkt_tab",
    "averaged_perceptron_tagger", "averaged_perceptron_tagger_eng",
    "wordnet",
)

OFFLINE_TYPES = ("multiple_choice", "fill_in_blank")


def ensure_nltk_resources():
    # Failures leave the regex fallbacks below in charge.
    for res in NLTK_RESOURCES:
        try:
            nltk.download(res, quiet=True)
        except Exception:
            logger.warning("Could not download NLTK resource: %s", res)


# Safe tokenizer/tagger wrappers: try NLTK, fall back to lightweight regex-based versions
def safe_sent_tokenize(text: str) -> List[str]:
    try:
        return nltk.sent_tokenize(text)
    except LookupError:
        sents = re.split(r'(?<=[\.\!?])\s+', (text or "").strip())
        return [s.strip() for s in sents if s and s.strip()]


def safe_word_tokenize(text: str) -> List[str]:
    try:
        return nltk.word_tokenize(text)
    except LookupError:
        return re.findall(r"\b\w+(?:'\w+)?\b", text or "")


def safe_pos_tag(tokens: List[str]) -> List[tuple]:
    try:
        return nltk.pos_tag(tokens)
    except LookupError:
        # Naive tagging: capitalised words as proper nouns, digits as numbers
        tags = []
        for t in tokens:
            if t.isdigit():
                tags.append((t, "CD"))
            elif t[:1].isupper():
                tags.append((t, "NNP"))
            else:
                tags.append((t, "NN"))
        return tags


def clean_input_text(raw_text: str) -> str:
    txt = unicodedata.normalize("NFKC", raw_text or "")
    lines = [ln.strip() for ln in txt.splitlines() if ln.strip()]
    lines = [ln for ln in lines if len(ln.split()) > 2]
    junk_patterns = [
        r"^\s*page\s*\d+\b",
        r"^\s*\d+\s*$",
        r"^\s*figure\s*\d+",
        r"^\s*fig\.\s*\d+",
        r"^\s*-{3}\s*(page|slide)\s*\d+\s*-{3}\s*$",
        r"^\s*={3,}.*={3,}\s*$",
        r"copyright\b",
        r"doi:",
        r"http[s]?:\/\/",
    ]
    filtered = []
    for ln in lines:
        low = ln.lower()
        if any(re.search(p, low) for p in junk_patterns):
            continue
        filtered.append(ln)
    counts = Counter(filtered)
    cleaned = [ln for ln in filtered if counts[ln] < max(3, len(filtered)//30)]
    out = " ".join(cleaned)
    out = re.sub(r"\s+", " ", out).strip()
    return out if out else (raw_text or "").strip()


def chunk_text(text: str, max_words=300) -> List[str]:
    sents = safe_sent_tokenize(text)
    chunks = []
    cur = []
    cur_words = 0
    for s in sents:
        w = len(s.split())
        if cur_words + w > max_words and cur:
            chunks.append(" ".join(cur))
            cur = [s]
            cur_words = w
        else:
            cur.append(s)
            cur_words += w
    if cur:
        chunks.append(" ".join(cur))
    return chunks


def extract_candidate_keywords(text: str, topn=40) -> List[str]:
    tokens = [w for w in safe_word_tokenize(text) if w.isalpha()]
    tags = safe_pos_tag(tokens)
    nouns = [w for w, t in tags if t.startswith("NN") and len(w) > 3]
    freq = Counter([w.lower() for w in nouns])
    return [w for w, _ in freq.most_common(topn)]


def extract_offline_topics(text: str, limit: int = 6) -> List[str]:
    """Rank noun keywords by TF-IDF weight across chunks and title-case them."""
    text = clean_input_text(text)
    if not text:
        return []
    keywords = set(extract_candidate_keywords(text, topn=200))
    if not keywords:
        return []
    chunks = chunk_text(text, max_words=120) or [text]
    try:
        vectorizer = TfidfVectorizer(stop_words="english")
        tfidf = vectorizer.fit_transform(chunks)
        weights = tfidf.sum(axis=0).A1
        vocab = vectorizer.get_feature_names_out()
        ranked = [w for _, w in sorted(zip(weights, vocab), key=lambda x: x[0], reverse=True)]
    except ValueError:
        # Empty vocabulary after stop-word removal
        ranked = []
    topics = [w for w in ranked if w in keywords]
    if not topics:
        topics = sorted(keywords)
    return [t.title() for t in topics[:limit]]


def get_wordnet_distractors(word: str, k=3) -> List[str]:
    distractors = set()
    try:
        synsets = wn.synsets(word)
    except LookupError:
        return []
    for syn in synsets:
        for lemma in syn.lemmas():
            candidate = lemma.name().replace("_", " ")
            if candidate.lower() != word.lower() and candidate.isalpha():
                distractors.add(candidate)
            if len(distractors) >= k:
                return sorted(distractors)[:k]
    return sorted(distractors)[:k]


def safe_sample(pool: List[str], k: int, rng=random) -> List[str]:
    pool = list(dict.fromkeys([p for p in pool if p and isinstance(p, str)]))
    if not pool or k <= 0:
        return []
    if len(pool) >= k:
        return rng.sample(pool, k)
    return pool[:]


def _pick_answer_word(tags_sent, cand_keywords, sent):
    for w, t in tags_sent:
        if t.startswith("NNP") and w.isalpha() and len(w) > 2:
            return w
    for w, t in tags_sent:
        if t.startswith("NN") and w.isalpha() and len(w) > 3:
            return w
    for w, t in tags_sent:
        if t.startswith("CD"):
            return w
    for kw in cand_keywords:
        if re.search(r"\b" + re.escape(kw) + r"\b", sent, flags=re.IGNORECASE):
            return kw
    return None


def generate_offline_quiz(text: str, amount: int = 10, types=None, seed: int = 42) -> List[Dict]:
    """Build cloze questions from the most salient sentences of ``text``.

    Emits ``multiple_choice`` and/or ``fill_in_blank`` questions depending on
    ``types``; other requested types are not produced offline. Questions are
    re-indexed from "1".
    """
    rng = random.Random(seed)
    wanted = [t for t in (types or OFFLINE_TYPES) if t in OFFLINE_TYPES] or list(OFFLINE_TYPES)
    text = clean_input_text(text)
    if not text:
        return []
    chunks = chunk_text(text, max_words=300) or [text]
    try:
        vectorizer = TfidfVectorizer(stop_words="english")
        tfidf = vectorizer.fit_transform(chunks)
        scores = tfidf.sum(axis=1).A1
        ranked = [c for _, c in sorted(zip(scores, chunks), key=lambda x: x[0], reverse=True)]
    except ValueError:
        ranked = chunks
    cand_keywords = extract_candidate_keywords(text, topn=200)
    questions = []
    used_sentences = set()
    for chunk in ranked:
        if len(questions) >= amount:
            break
        sents = [s.strip() for s in safe_sent_tokenize(chunk) if len(s.split()) >= 6]
        for sent in sents:
            if len(questions) >= amount:
                break
            if sent in used_sentences:
                continue
            used_sentences.add(sent)
            candidate = _pick_answer_word(safe_pos_tag(safe_word_tokenize(sent)), cand_keywords, sent)
            if not candidate:
                continue
            pattern = re.compile(r"\b" + re.escape(candidate) + r"\b", flags=re.IGNORECASE)
            question_text = pattern.sub("_____", sent, count=1)
            qtype = wanted[len(questions) % len(wanted)]
            if qtype == "multiple_choice":
                distractors = get_wordnet_distractors(candidate, k=3)
                if len(distractors) < 3:
                    pool = [k for k in cand_keywords if k.lower() != candidate.lower() and k not in distractors]
                    distractors += safe_sample(pool, 3 - len(distractors), rng)
                distractors = [d for d in distractors if d.lower() != candidate.lower()][:3]
                if not distractors:
                    qtype = "fill_in_blank"
            if qtype == "multiple_choice":
                options = distractors + [candidate]
                rng.shuffle(options)
                questions.append({
                    "type": "multiple_choice",
                    "question": question_text,
                    "options": options,
                    "correctAnswer": candidate,
                })
            else:
                questions.append({
                    "type": "fill_in_blank",
                    "question": question_text,
                    "correctAnswer": candidate,
                })
    return [dict(q, id=str(i + 1)) for i, q in enumerate(questions)]
