"""
Shared text utilities.

Normalization and keyword extraction used by routing, the coordination
conference and synthesis, plus JSON extraction for LLM responses.
"""

import json
import re
from typing import Optional


STOPWORDS = frozenset({
    "a", "an", "and", "any", "are", "as", "at", "be", "been", "by", "can",
    "could", "do", "does", "for", "from", "has", "have", "how", "if", "in",
    "into", "is", "it", "its", "may", "might", "of", "on", "or", "should",
    "that", "the", "their", "there", "this", "to", "was", "were", "what",
    "when", "which", "who", "why", "will", "with", "would", "you", "your",
    "patient", "patients",
})

NEGATION_CUES = (
    "no",
    "not",
    "none",
    "ruled out",
    "rule out",
    "unlikely",
    "absent",
    "without",
    "negative for",
    "contraindicated",
)

_NON_WORD = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_NEGATION = re.compile(
    r"\b(?:" + "|".join(r"\s+".join(map(re.escape, cue.split())) for cue in NEGATION_CUES) + r")\b",
    re.IGNORECASE,
)


def normalize(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def keywords(text: str, min_length: int = 3) -> frozenset[str]:
    """Content words of ``text``, with stopwords and short tokens removed."""
    return frozenset(
        token
        for token in normalize(text).replace("-", " ").split()
        if len(token) >= min_length and token not in STOPWORDS
    )


def contains_any(text: str, terms) -> list[str]:
    """Return the terms (in given order) that occur in ``text``."""
    lowered = text.lower()
    return [term for term in terms if term in lowered]


def is_negated(text: str) -> bool:
    """True when the text carries a negation cue as a whole word or phrase."""
    return _NEGATION.search(text) is not None


def extract_json_block(content: str) -> Optional[dict]:
    """
    Extract the first JSON object from an LLM response.

    Handles fenced ```json blocks as well as bare objects embedded in text.

    Args:
        content: Raw response content

    Returns:
        Parsed dict, or None if no valid object was found
    """
    candidate = content
    if "```json" in content:
        candidate = content.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in content:
        candidate = content.split("```", 1)[1].split("```", 1)[0]

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        parsed = json.loads(candidate[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
