"""Exam catalogue: label <-> enum mapping and mode coercion."""
from typing import Optional

EXAM_ENUMS = ("MRCEM_PRIMARY", "MRCEM_SBA", "FRCEM_SBA", "OTHER")

EXAM_LABEL_TO_ENUM = {
    "MRCEM Primary": "MRCEM_PRIMARY",
    "MRCEM Intermediate SBA": "MRCEM_SBA",
    "FRCEM SBA": "FRCEM_SBA",
}

EXAM_ENUM_TO_LABEL = {v: k for k, v in EXAM_LABEL_TO_ENUM.items()}

MODES = ("practice", "test", "exam")


def map_label_to_enum(label: Optional[str]) -> str:
    """Exact label match first, then the loose keyword rules used for legacy rows."""
    if not label:
        return "OTHER"
    if label in EXAM_LABEL_TO_ENUM:
        return EXAM_LABEL_TO_ENUM[label]
    if label in EXAM_ENUMS:
        return label
    s = label.strip().lower()
    if "primary" in s:
        return "MRCEM_PRIMARY"
    if "frcem" in s:
        return "FRCEM_SBA"
    if "intermediate" in s or ("sba" in s and "mrcem" in s):
        return "MRCEM_SBA"
    return "OTHER"


def map_enum_to_label(value: Optional[str]) -> str:
    return EXAM_ENUM_TO_LABEL.get(value or "", "Other")


def safe_mode(value: Optional[str]) -> str:
    return value if value in MODES else "practice"
