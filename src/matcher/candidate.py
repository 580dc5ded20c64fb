"""
Candidate helpers: seniority ordinals and fallback name extraction.
"""

import re
from typing import Optional

SENIORITY_LEVELS: dict[str, int] = {
    "entry-level": 1,
    "entry": 1,
    "junior": 2,
    "mid-level": 3,
    "mid": 3,
    "senior": 4,
    "lead": 5,
    "principal": 6,
}

PLACEHOLDER_NAMES = frozenset({"", "unknown", "unknown candidate", "n/a", "candidate", "name"})
DEFAULT_CANDIDATE_NAME = "Candidate"

NAME_WINDOW = 500
MAX_NAME_LENGTH = 50

NAME_TOKEN_RE = re.compile(r"^[A-Z][a-zA-Z'\-]*[a-z]$")
NAME_LABEL_RE = re.compile(r"^\s*(?:full\s+)?name\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def normalize_seniority(label: Optional[str]) -> str:
    """'Mid Level' / 'mid_level' -> 'mid-level'."""
    if not label:
        return ""
    return re.sub(r"[\s_]+", "-", label.strip().lower())


def seniority_ordinal(label: Optional[str]) -> int:
    """Ordinal for a seniority label, 0 when the label is unknown."""
    return SENIORITY_LEVELS.get(normalize_seniority(label), 0)


def is_placeholder_name(name: Optional[str]) -> bool:
    normalized = (name or "").strip().lower()
    return normalized in PLACEHOLDER_NAMES or "full name here" in normalized


def looks_like_name(line: str) -> bool:
    """2-4 capitalized words, no email or URL, shorter than 50 characters."""
    if not line or len(line) >= MAX_NAME_LENGTH:
        return False
    if "@" in line or "http" in line.lower():
        return False
    tokens = line.split()
    if not 2 <= len(tokens) <= 4:
        return False
    return all(NAME_TOKEN_RE.match(token) for token in tokens)


def fallback_name(raw_text: str) -> str:
    """
    Derive a candidate name from raw CV text.

    Scans the leading characters line by line for a name-like line, then
    looks for a ``Name:`` / ``Full Name:`` label, else gives up with
    "Candidate".
    """
    head = (raw_text or "")[:NAME_WINDOW]
    for line in head.splitlines():
        candidate = line.strip()
        if looks_like_name(candidate):
            return candidate

    match = NAME_LABEL_RE.search(raw_text or "")
    if match:
        labelled = match.group(1).strip()[:MAX_NAME_LENGTH].strip()
        if not is_placeholder_name(labelled):
            return labelled

    return DEFAULT_CANDIDATE_NAME


def resolve_candidate_name(extracted: Optional[str], raw_text: str) -> str:
    """Keep the extracted name unless it is empty or a placeholder."""
    if not is_placeholder_name(extracted):
        return extracted.strip()
    return fallback_name(raw_text)
