"""
Protection score computation.

A job's protection score is a 0-100 measure of how well its evidence would
stand up in a dispute. It is always recomputed from the job's full evidence
set; nothing is accumulated between calls, so recomputing on an unchanged
set gives the same number.

Example usage:
    from core.scoring import calculate_protection_score

    score = calculate_protection_score(evidence_items)
"""

from typing import Any, Dict, Iterable, NamedTuple

MAX_SCORE = 100
APPROVAL_BONUS = 5
TIMESTAMP_BONUS = 10

# Base points for each distinct evidence category present on a job
CATEGORY_SCORES: Dict[str, int] = {
    "before": 20,
    "progress": 15,
    "after": 25,
    "defect": 20,
    "approval": 20,
}

STRONG_THRESHOLD = 80
MODERATE_THRESHOLD = 50


class ProtectionLevel(NamedTuple):
    name: str
    color: str
    description: str


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _category(item: Any) -> str:
    value = _field(item, "evidence_type")
    return str(getattr(value, "value", value))


def calculate_protection_score(evidence: Iterable[Any]) -> int:
    """
    Aggregate evidence records into a protection score.

    Each record may be an ORM row, a Pydantic model or a plain dict with
    ``evidence_type``, ``client_approval`` and ``blockchain_timestamp``.

    Policy:
        - base points once per distinct category (see CATEGORY_SCORES);
          unknown categories score nothing
        - +5 for every approved item
        - +10 for every item carrying a non-empty timestamp proof
        - the sum is clamped to 100

    Args:
        evidence: All evidence records of one job

    Returns:
        Integer score between 0 and 100
    """
    categories = set()
    approved = 0
    timestamped = 0

    for item in evidence:
        categories.add(_category(item))
        if _field(item, "client_approval"):
            approved += 1
        if _field(item, "blockchain_timestamp"):
            timestamped += 1

    score = sum(CATEGORY_SCORES.get(category, 0) for category in categories)
    score += approved * APPROVAL_BONUS
    score += timestamped * TIMESTAMP_BONUS

    return min(score, MAX_SCORE)


def describe_protection(score: int) -> ProtectionLevel:
    """Map a score onto the level shown in reports."""
    if score >= STRONG_THRESHOLD:
        return ProtectionLevel(
            "strong", "#28a745", "Strong protection - Comprehensive evidence documentation"
        )
    if score >= MODERATE_THRESHOLD:
        return ProtectionLevel(
            "moderate", "#ffc107", "Moderate protection - Good evidence coverage"
        )
    return ProtectionLevel(
        "weak", "#dc3545", "Weak protection - Limited evidence documentation"
    )
