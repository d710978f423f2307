"""Student level hierarchy used to gate level-tagged modules."""
from typing import List, Optional

STUDENT_LEVELS = ["B2", "B3", "M1", "M2"]

LEVEL_HIERARCHY = {level: rank for rank, level in enumerate(STUDENT_LEVELS)}

LEVEL_DESCRIPTIONS = {
    "B2": "Beginner Level 2",
    "B3": "Beginner Level 3",
    "M1": "Intermediate Level 1",
    "M2": "Intermediate Level 2",
}


def is_valid_level(level: Optional[str]) -> bool:
    return level in LEVEL_HIERARCHY


def can_access_level(student_level: str, required_level: str) -> bool:
    """Check if a student at ``student_level`` may open content tagged ``required_level``."""
    if not is_valid_level(student_level) or not is_valid_level(required_level):
        raise ValueError(f"Unknown level: {student_level!r} / {required_level!r}")
    return LEVEL_HIERARCHY[student_level] >= LEVEL_HIERARCHY[required_level]


def accessible_levels(student_level: str) -> List[str]:
    """All levels at or below the student's level, lowest first."""
    rank = LEVEL_HIERARCHY[student_level]
    return [level for level in STUDENT_LEVELS if LEVEL_HIERARCHY[level] <= rank]


def next_level(current_level: str) -> Optional[str]:
    idx = STUDENT_LEVELS.index(current_level)
    return STUDENT_LEVELS[idx + 1] if idx < len(STUDENT_LEVELS) - 1 else None
