"""
KDIGO Staging Layer

Classifies (eGFR, uACR) pairs and compares consecutive classifications.

Usage:
    from nephrosim.core.staging import classify, compare

    prev = classify(48.0, 25.0)    # G3a-A1, moderate risk
    curr = classify(43.5, 31.0)    # G3b-A2, very high risk
    comparison = compare(prev, curr)
"""
from .base import (
    AlbuminuriaCategory,
    ChangeType,
    Classification,
    Comparison,
    GFRCategory,
    RiskLevel,
)
from .classifier import classify, compare, CRITICAL_EGFR_THRESHOLDS

__all__ = [
    "classify",
    "compare",
    "CRITICAL_EGFR_THRESHOLDS",
    "AlbuminuriaCategory",
    "ChangeType",
    "Classification",
    "Comparison",
    "GFRCategory",
    "RiskLevel",
]
