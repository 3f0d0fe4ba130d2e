# KimbleAI - D&D fact deduplication
# Keeps the curated + generated fact corpus free of near-duplicates using
# two independent signals: normalized Levenshtein similarity and keyword overlap.

import re

# A candidate must be this long (inclusive) to enter the corpus.
MIN_FACT_LENGTH = 50
MAX_FACT_LENGTH = 500

DEFAULT_SIMILARITY_THRESHOLD = 0.80
DEFAULT_KEYWORD_THRESHOLD = 0.70

# Phrases that mean the model refused or padded instead of producing a fact.
_REFUSAL_MARKERS = ("I apologize", "As an AI")


class FactRejected(ValueError):
    """A candidate fact may not enter the corpus."""


class InvalidFactError(FactRejected):
    """Candidate failed validation (length / refusal text)."""


class DuplicateFactError(FactRejected):
    """Candidate is too close to a fact already in the corpus."""


# ─────────────────────────────────────────
# EDIT DISTANCE
# ─────────────────────────────────────────

def edit_distance(a: str, b: str) -> int:
    """
    Levenshtein distance with unit cost for insertion, deletion and substitution.
    Keeps two rows of the DP table; facts are capped at 500 chars so this stays cheap.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def similarity_ratio(a: str, b: str) -> float:
    """1.0 = identical, 0.0 = nothing in common. Case-insensitive."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    distance = edit_distance(a.lower(), b.lower())
    return (max_len - distance) / max_len


# ─────────────────────────────────────────
# KEYWORDS
# ─────────────────────────────────────────

STOP_WORDS = {
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "was", "are", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "would",
    "should", "could", "may", "might", "must", "can", "this", "that",
    "these", "those", "their", "there", "which", "what", "when", "where",
    "into", "than", "then", "also", "only", "very", "some", "such", "its",
    "they", "them", "who", "whom", "whose", "about", "after", "before",
    "while", "each", "every", "most", "more", "many", "much", "even",
}

# Folds near-synonyms onto one keyword so rephrased facts still collide.
# Looked up on the raw token first, then on its stem.
KEYWORD_SYNONYMS = {
    "creature": "monster",
    "beast": "monster",
    "fiend": "monster",
    "destroys": "destroy",
    "destroyed": "destroy",
    "levels": "destroy",
    "leveled": "destroy",
    "levelled": "destroy",
    "razes": "destroy",
    "razed": "destroy",
    "flattens": "destroy",
    "devours": "destroy",
    "town": "city",
    "huge": "giant",
    "enormous": "giant",
    "massive": "giant",
    "colossal": "giant",
    "created": "create",
    "creates": "create",
    "invented": "create",
    "designed": "create",
    "introduced": "debut",
    "debuted": "debut",
    "appeared": "debut",
    "first": "debut",
}


def _stem(word: str) -> str:
    """Light plural stripping: cities -> city, classes -> class, dragons -> dragon."""
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(("sses", "ches", "shes", "xes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith(("ss", "us", "is")):
        return word[:-1]
    return word


def _normalize_keyword(word: str) -> str:
    if word in KEYWORD_SYNONYMS:
        return KEYWORD_SYNONYMS[word]
    stem = _stem(word)
    return KEYWORD_SYNONYMS.get(stem, stem)


def extract_keywords(text: str) -> set:
    """Significant lowercase keywords: stop words and words of 3 chars or less are dropped."""
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return {
        _normalize_keyword(w)
        for w in words
        if len(w) > 3 and w not in STOP_WORDS and not w.isdigit()
    }


def keyword_overlap(candidate: str, existing: str) -> float:
    """Share of the candidate's keywords that also appear in `existing` (0.0 - 1.0)."""
    candidate_keywords = extract_keywords(candidate)
    existing_keywords = extract_keywords(existing)
    if not candidate_keywords or not existing_keywords:
        return 0.0
    return len(candidate_keywords & existing_keywords) / len(candidate_keywords)


# ─────────────────────────────────────────
# VALIDATION + DUPLICATE CHECK
# ─────────────────────────────────────────

def is_valid_fact(text: str) -> bool:
    """Length must be 50-500 characters inclusive, and the text must not be a model refusal."""
    if len(text) < MIN_FACT_LENGTH or len(text) > MAX_FACT_LENGTH:
        print(f"[Validation] Fact rejected: length {len(text)} (need {MIN_FACT_LENGTH}-{MAX_FACT_LENGTH})")
        return False
    if not text.strip() or any(marker in text for marker in _REFUSAL_MARKERS):
        print("[Validation] Fact rejected: generic/empty content")
        return False
    return True


def is_duplicate(
    candidate: str,
    existing: list,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    keyword_threshold: float = DEFAULT_KEYWORD_THRESHOLD,
) -> bool:
    """
    True if `candidate` is too close to any fact in `existing`.

    Two checks per existing fact:
      1. normalized edit-distance similarity >= similarity_threshold
      2. keyword overlap (relative to the candidate's keywords) >= keyword_threshold

    The keyword check is skipped when either side has no keywords.
    """
    candidate_keywords = extract_keywords(candidate)
    for other in existing:
        string_similarity = similarity_ratio(candidate, other)
        if string_similarity >= similarity_threshold:
            print(f"[Dedup] String similarity detected: {string_similarity * 100:.1f}%")
            print(f"[Dedup] New: \"{candidate[:60]}...\"")
            print(f"[Dedup] Existing: \"{other[:60]}...\"")
            return True

        if not candidate_keywords:
            continue
        other_keywords = extract_keywords(other)
        if not other_keywords:
            continue
        overlap = len(candidate_keywords & other_keywords) / len(candidate_keywords)
        if overlap >= keyword_threshold:
            print(f"[Dedup] Keyword overlap detected: {overlap * 100:.1f}%")
            print(f"[Dedup] New: \"{candidate[:60]}...\"")
            print(f"[Dedup] Existing: \"{other[:60]}...\"")
            return True

    return False


def check_candidate(candidate: str, existing: list) -> None:
    """Raise InvalidFactError / DuplicateFactError if `candidate` may not join `existing`."""
    if not is_valid_fact(candidate):
        raise InvalidFactError(f"invalid fact ({len(candidate)} chars)")
    if is_duplicate(candidate, existing):
        raise DuplicateFactError(f"duplicate fact: {candidate[:60]}")
