"""
Qualification requirements per service category.

The table is fixed. Adding a category is a code change so that it goes
through review like any other compliance rule.
"""

import re
from types import MappingProxyType

REQUIRED_QUALIFICATIONS = MappingProxyType({
    "nursing": ("nursing",),
    "complex_nursing": ("nursing", "complex_care"),
    "medication_administration": ("medication_admin",),
    "behavioral_support": ("behavioral_support",),
    "manual_handling": ("manual_handling",),
    "high_risk": ("first_aid", "manual_handling"),
})

_NON_KEY_CHARS = re.compile(r"[^a-z_]")


def normalize_service_category(service_category: str) -> str:
    """Lower-case, then replace every character outside [a-z_] with '_'."""
    return _NON_KEY_CHARS.sub("_", service_category.lower())


def get_required_qualifications(service_category: str) -> list[str]:
    """
    Qualification types a staff member must hold (status 'current').

    "High Risk", "high-risk" and "HIGH_RISK" all resolve to the same entry.
    Unknown categories have no requirements.
    """
    key = normalize_service_category(service_category)
    return list(REQUIRED_QUALIFICATIONS.get(key, ()))
