"""
KDIGO Staging Rules

Maps an (eGFR, uACR) pair to a complete KDIGO classification and compares
consecutive classifications for clinically meaningful change.

Biomarkers consumed:
    egfr  (mL/min/1.73m²): G1 ≥ 90 … G5 < 15
    uacr  (mg/g):          A1 < 30, A2 30–300, A3 > 300

Both functions are pure: no I/O, no randomness. Callers must reject NaN or
negative inputs before classifying.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from .base import (
    AlbuminuriaCategory,
    ChangeType,
    Classification,
    Comparison,
    GFRCategory,
    RiskLevel,
)

# ── Thresholds ────────────────────────────────────────────────────────────────

# eGFR category lower bounds
EGFR_G1   = 90
EGFR_G2   = 60
EGFR_G3A  = 45
EGFR_G3B  = 30
EGFR_G4   = 15

# uACR category bounds
UACR_A2   = 30     # A2 starts here (inclusive)
UACR_A3   = 300    # A3 starts above this

EGFR_DIALYSIS_PLANNING = 20   # G4 below this already warrants dialysis planning

# Downward crossings of these eGFR values are flagged even inside one category
CRITICAL_EGFR_THRESHOLDS = (EGFR_G3B, EGFR_DIALYSIS_PLANNING, EGFR_G4)

_GFR_DESCRIPTIONS = {
    GFRCategory.G1:  "Normal or High",
    GFRCategory.G2:  "Mildly Decreased",
    GFRCategory.G3A: "Mild to Moderate Decrease",
    GFRCategory.G3B: "Moderate to Severe Decrease",
    GFRCategory.G4:  "Severely Decreased",
    GFRCategory.G5:  "Kidney Failure",
}

_ALBUMINURIA_DESCRIPTIONS = {
    AlbuminuriaCategory.A1: "Normal to Mildly Increased",
    AlbuminuriaCategory.A2: "Moderately Increased",
    AlbuminuriaCategory.A3: "Severely Increased",
}

_RISK_COLORS = {
    RiskLevel.LOW:       "green",
    RiskLevel.MODERATE:  "yellow",
    RiskLevel.HIGH:      "orange",
    RiskLevel.VERY_HIGH: "red",
}

# risk → (human interval, storage category)
_MONITORING = {
    RiskLevel.VERY_HIGH: ("Every 1-3 months", "monthly"),
    RiskLevel.HIGH:      ("Every 3-6 months", "quarterly"),
    RiskLevel.MODERATE:  ("Every 6-12 months", "biannually"),
    RiskLevel.LOW:       ("Annually", "annually"),
}


# ── Category helpers ──────────────────────────────────────────────────────────

def gfr_category(egfr: float) -> GFRCategory:
    if egfr >= EGFR_G1:
        return GFRCategory.G1
    if egfr >= EGFR_G2:
        return GFRCategory.G2
    if egfr >= EGFR_G3A:
        return GFRCategory.G3A
    if egfr >= EGFR_G3B:
        return GFRCategory.G3B
    if egfr >= EGFR_G4:
        return GFRCategory.G4
    return GFRCategory.G5


def albuminuria_category(uacr: float) -> AlbuminuriaCategory:
    if uacr < UACR_A2:
        return AlbuminuriaCategory.A1
    if uacr <= UACR_A3:
        return AlbuminuriaCategory.A2
    return AlbuminuriaCategory.A3


def ckd_stage(egfr: float, uacr: float) -> Tuple[Optional[int], str]:
    """
    CKD stage and name. Stages 1 and 2 require albuminuria (uACR ≥ 30);
    below eGFR 60 CKD is present regardless of uACR.
    """
    if egfr < EGFR_G4:
        return 5, "Stage 5 (Kidney Failure)"
    if egfr < EGFR_G3B:
        return 4, "Stage 4 (Severe)"
    if egfr < EGFR_G3A:
        return 3, "Stage 3b (Moderate to Severe)"
    if egfr < EGFR_G2:
        return 3, "Stage 3a (Mild to Moderate)"
    if uacr >= UACR_A2:
        if egfr < EGFR_G1:
            return 2, "Stage 2 (Mild Decrease with Damage)"
        return 1, "Stage 1 (Normal Function with Damage)"
    return None, "No CKD"


def risk_level(gfr: GFRCategory, alb: AlbuminuriaCategory) -> RiskLevel:
    """KDIGO 2024 risk stratification matrix."""
    A1, A2, A3 = AlbuminuriaCategory.A1, AlbuminuriaCategory.A2, AlbuminuriaCategory.A3

    if gfr in (GFRCategory.G4, GFRCategory.G5):
        return RiskLevel.VERY_HIGH
    if gfr == GFRCategory.G3B:
        return RiskLevel.HIGH if alb == A1 else RiskLevel.VERY_HIGH
    if gfr == GFRCategory.G3A:
        return {A1: RiskLevel.MODERATE, A2: RiskLevel.HIGH, A3: RiskLevel.VERY_HIGH}[alb]
    # G1 / G2
    return {A1: RiskLevel.LOW, A2: RiskLevel.MODERATE, A3: RiskLevel.HIGH}[alb]


# ── Classification ────────────────────────────────────────────────────────────

def classify(egfr: float, uacr: float) -> Classification:
    """
    Complete KDIGO classification of one measurement pair.

    Total and deterministic over finite non-negative inputs: the same pair
    always yields an equal Classification.
    """
    gfr = gfr_category(egfr)
    alb = albuminuria_category(uacr)
    stage, stage_name = ckd_stage(egfr, uacr)
    risk = risk_level(gfr, alb)
    interval, monitoring_category = _MONITORING[risk]

    requires_nephrology = (
        gfr in (GFRCategory.G3B, GFRCategory.G4, GFRCategory.G5)
        or alb == AlbuminuriaCategory.A3
    )
    requires_dialysis = gfr == GFRCategory.G5 or (
        gfr == GFRCategory.G4 and egfr < EGFR_DIALYSIS_PLANNING
    )

    return Classification(
        egfr=float(egfr),
        uacr=float(uacr),
        gfr_category=gfr,
        gfr_description=_GFR_DESCRIPTIONS[gfr],
        albuminuria_category=alb,
        albuminuria_description=_ALBUMINURIA_DESCRIPTIONS[alb],
        health_state=f"{gfr.value}-{alb.value}",
        risk_level=risk,
        risk_color=_RISK_COLORS[risk],
        has_ckd=stage is not None,
        ckd_stage=stage,
        ckd_stage_name=stage_name,
        requires_nephrology_referral=requires_nephrology,
        requires_dialysis_planning=requires_dialysis,
        recommend_ras_inhibitor=alb in (AlbuminuriaCategory.A2, AlbuminuriaCategory.A3),
        recommend_sglt2i=stage is not None and 2 <= stage <= 4,
        target_bp="<140/90 mmHg" if alb == AlbuminuriaCategory.A1 else "<130/80 mmHg",
        monitoring_frequency=interval,
        monitoring_category=monitoring_category,
    )


# ── Comparison ────────────────────────────────────────────────────────────────

def _burden(c: Classification) -> Tuple[int, int]:
    """Ordering key: risk first, then combined category depth."""
    return c.risk_level.rank, c.gfr_category.rank + c.albuminuria_category.rank


def crossed_thresholds(prev_egfr: float, curr_egfr: float) -> List[int]:
    """Critical eGFR thresholds crossed downward between two readings."""
    return [t for t in CRITICAL_EGFR_THRESHOLDS if prev_egfr >= t > curr_egfr]


def compare(prev: Classification, curr: Classification) -> Comparison:
    """
    Decide whether moving from ``prev`` to ``curr`` is clinically meaningful.

    The reason strings are the contract with the alert detector: severity is
    chosen from them without re-deriving clinical logic.
    """
    reasons: List[str] = []

    state_changed = prev.health_state != curr.health_state
    risk_up = curr.risk_level.rank > prev.risk_level.rank
    risk_down = curr.risk_level.rank < prev.risk_level.rank
    thresholds = crossed_thresholds(prev.egfr, curr.egfr)

    if thresholds:
        change_type = ChangeType.WORSENED
    elif _burden(curr) > _burden(prev):
        change_type = ChangeType.WORSENED
    elif _burden(curr) < _burden(prev):
        change_type = ChangeType.IMPROVED
    else:
        change_type = ChangeType.STABLE

    transition = f"{prev.health_state} → {curr.health_state}"
    category_worsened = state_changed and change_type == ChangeType.WORSENED
    if category_worsened:
        reasons.append(f"Category changed: {transition}")
    elif state_changed and change_type == ChangeType.IMPROVED:
        reasons.append(f"Health state improved: {transition}")
    elif state_changed:
        reasons.append(f"Health state shifted: {transition}")

    if risk_up:
        reasons.append(f"Risk level increased: {prev.risk_level.value} → {curr.risk_level.value}")
    elif risk_down:
        reasons.append(f"Risk level decreased: {prev.risk_level.value} → {curr.risk_level.value}")

    for t in thresholds:
        reasons.append(f"Critical threshold crossed: eGFR below {t}")

    has_changed = state_changed or risk_up or bool(thresholds)

    return Comparison(
        has_changed=has_changed,
        change_type=change_type,
        category_changed=category_worsened,
        risk_increased=risk_up,
        critical_threshold_crossed=bool(thresholds),
        needs_alert=has_changed and change_type != ChangeType.STABLE,
        reasons=reasons if has_changed else [],
    )
