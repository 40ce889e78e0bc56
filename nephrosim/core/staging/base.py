"""
KDIGO Staging - Base Types

Data contracts produced by the staging classifier and consumed by the cycle
generator, the transition detector and downstream narrative/notification
consumers. Everything serialises to flat dictionaries.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class GFRCategory(str, Enum):
    """KDIGO filtration-rate buckets, best to worst."""
    G1  = "G1"
    G2  = "G2"
    G3A = "G3a"
    G3B = "G3b"
    G4  = "G4"
    G5  = "G5"

    @property
    def rank(self) -> int:
        return list(GFRCategory).index(self)


class AlbuminuriaCategory(str, Enum):
    """KDIGO albuminuria buckets, best to worst."""
    A1 = "A1"
    A2 = "A2"
    A3 = "A3"

    @property
    def rank(self) -> int:
        return list(AlbuminuriaCategory).index(self)


class RiskLevel(str, Enum):
    """
    KDIGO heat-map risk.

    LOW        – green
    MODERATE   – yellow
    HIGH       – orange
    VERY_HIGH  – red
    """
    LOW       = "low"
    MODERATE  = "moderate"
    HIGH      = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)


class ChangeType(str, Enum):
    IMPROVED = "improved"
    WORSENED = "worsened"
    STABLE   = "stable"


@dataclass(frozen=True)
class Classification:
    """Complete KDIGO classification for one (eGFR, uACR) pair."""
    egfr: float
    uacr: float

    gfr_category: GFRCategory
    gfr_description: str
    albuminuria_category: AlbuminuriaCategory
    albuminuria_description: str
    health_state: str                      # e.g. "G3a-A2"

    risk_level: RiskLevel
    risk_color: str

    has_ckd: bool
    ckd_stage: Optional[int]               # 1-5, None when no CKD
    ckd_stage_name: str

    requires_nephrology_referral: bool
    requires_dialysis_planning: bool
    recommend_ras_inhibitor: bool
    recommend_sglt2i: bool

    target_bp: str
    monitoring_frequency: str              # human-readable interval
    monitoring_category: str               # monthly | quarterly | biannually | annually

    @property
    def severity(self) -> Optional[str]:
        """mild / moderate / severe / kidney_failure, None without CKD."""
        if self.ckd_stage is None:
            return None
        return {1: "mild", 2: "mild", 3: "moderate", 4: "severe", 5: "kidney_failure"}[self.ckd_stage]

    @property
    def risk_category_label(self) -> str:
        """Patient-list grouping label."""
        if not self.has_ckd:
            if self.risk_level in (RiskLevel.HIGH, RiskLevel.VERY_HIGH):
                return "High Risk"
            return f"{self.risk_level.value.capitalize()} Risk"
        return {
            "mild": "Mild CKD",
            "moderate": "Moderate CKD",
            "severe": "Severe CKD",
            "kidney_failure": "Kidney Failure",
        }[self.severity]

    def treatment_recommendations(self) -> Dict[str, Any]:
        return {
            "ras_inhibitor": self.recommend_ras_inhibitor,
            "sglt2_inhibitor": self.recommend_sglt2i,
            "bp_target": self.target_bp,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "egfr": round(self.egfr, 2),
            "uacr": round(self.uacr, 2),
            "gfr_category": self.gfr_category.value,
            "gfr_description": self.gfr_description,
            "albuminuria_category": self.albuminuria_category.value,
            "albuminuria_description": self.albuminuria_description,
            "health_state": self.health_state,
            "risk_level": self.risk_level.value,
            "risk_color": self.risk_color,
            "has_ckd": self.has_ckd,
            "ckd_stage": self.ckd_stage,
            "ckd_stage_name": self.ckd_stage_name,
            "severity": self.severity,
            "risk_category_label": self.risk_category_label,
            "requires_nephrology_referral": self.requires_nephrology_referral,
            "requires_dialysis_planning": self.requires_dialysis_planning,
            "recommend_ras_inhibitor": self.recommend_ras_inhibitor,
            "recommend_sglt2i": self.recommend_sglt2i,
            "target_bp": self.target_bp,
            "monitoring_frequency": self.monitoring_frequency,
            "monitoring_category": self.monitoring_category,
        }


@dataclass
class Comparison:
    """Outcome of comparing two consecutive classifications."""
    has_changed: bool
    change_type: ChangeType
    category_changed: bool = False
    risk_increased: bool = False
    critical_threshold_crossed: bool = False
    needs_alert: bool = False
    # Structured reasons, e.g. "Risk level increased: moderate → high"
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_changed": self.has_changed,
            "change_type": self.change_type.value,
            "category_changed": self.category_changed,
            "risk_increased": self.risk_increased,
            "critical_threshold_crossed": self.critical_threshold_crossed,
            "needs_alert": self.needs_alert,
            "reasons": list(self.reasons),
        }
