"""
Progression Engine - Base Types

Records owned by the progression engine. All of them serialise to flat
dictionaries through ``to_dict()`` so that narrative and notification
consumers never need to understand engine internals.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from nephrosim.core.staging import ChangeType, Classification


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return round(value, digits) if value is not None else None


class ProgressionType(str, Enum):
    """
    Frozen long-run archetype. The labels are speed categories: every
    archetype declines without treatment, "improving" just declines slowest.
    """
    RAPID       = "rapid"
    PROGRESSIVE = "progressive"
    STABLE      = "stable"
    IMPROVING   = "improving"

    @property
    def speed_label(self) -> str:
        return {
            ProgressionType.RAPID: "rapid decline",
            ProgressionType.PROGRESSIVE: "progressive decline",
            ProgressionType.STABLE: "moderate decline",
            ProgressionType.IMPROVING: "slow decline",
        }[self]


class MedicationClass(str, Enum):
    RAS_INHIBITOR = "RAS_INHIBITOR"
    SGLT2I        = "SGLT2I"
    GLP1_RA       = "GLP1_RA"


class TreatmentStatus(str, Enum):
    ACTIVE       = "active"
    DISCONTINUED = "discontinued"


class AdherenceTier(str, Enum):
    EXCELLENT = "excellent"
    GOOD      = "good"
    FAIR      = "fair"
    POOR      = "poor"
    VERY_POOR = "very_poor"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING  = "warning"
    INFO     = "info"

    @property
    def priority(self) -> int:
        """1 = most urgent."""
        return {AlertSeverity.CRITICAL: 1, AlertSeverity.WARNING: 2, AlertSeverity.INFO: 3}[self]


class AlertStatus(str, Enum):
    ACTIVE       = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED     = "resolved"
    DISMISSED    = "dismissed"


# ── Patients and trajectories ────────────────────────────────────────────────

@dataclass
class Patient:
    """Upstream patient identity plus the most recent known labs."""
    patient_id: str
    medical_record_number: str = ""
    latest_egfr: Optional[float] = None
    latest_uacr: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "medical_record_number": self.medical_record_number,
            "latest_egfr": self.latest_egfr,
            "latest_uacr": self.latest_uacr,
        }


@dataclass(frozen=True)
class ProgressionState:
    """Per-patient trajectory parameters, sampled once and never changed."""
    patient_id: str
    progression_type: ProgressionType
    baseline_egfr: float
    baseline_uacr: float
    egfr_decline_rate: float      # mL/min/month, always <= 0
    uacr_change_rate: float       # fraction/month, always >= 0
    natural_trajectory: str = "worsening"
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "progression_type": self.progression_type.value,
            "speed_label": self.progression_type.speed_label,
            "baseline_egfr": round(self.baseline_egfr, 2),
            "baseline_uacr": round(self.baseline_uacr, 2),
            "egfr_decline_rate": round(self.egfr_decline_rate, 4),
            "uacr_change_rate": round(self.uacr_change_rate, 4),
            "natural_trajectory": self.natural_trajectory,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Treatment:
    id: str
    patient_id: str
    medication_name: str
    medication_class: MedicationClass
    current_adherence: float
    started_cycle: int
    baseline_adherence: Optional[float] = None
    status: TreatmentStatus = TreatmentStatus.ACTIVE
    expected_egfr_benefit: Optional[float] = None
    expected_uacr_reduction: Optional[float] = None

    def __post_init__(self):
        if self.baseline_adherence is None:
            self.baseline_adherence = self.current_adherence

    @property
    def is_active(self) -> bool:
        return self.status == TreatmentStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "medication_name": self.medication_name,
            "medication_class": self.medication_class.value,
            "current_adherence": round(self.current_adherence, 3),
            "baseline_adherence": _round(self.baseline_adherence, 3),
            "started_cycle": self.started_cycle,
            "status": self.status.value,
            "expected_egfr_benefit": self.expected_egfr_benefit,
            "expected_uacr_reduction": self.expected_uacr_reduction,
        }


# ── Cycle records ────────────────────────────────────────────────────────────

@dataclass
class CycleRecord:
    """One measurement per patient per cycle; append-only."""
    patient_id: str
    cycle_number: int
    egfr: float
    uacr: float

    gfr_category: str
    albuminuria_category: str
    health_state: str
    risk_level: str
    risk_color: str
    ckd_stage: Optional[int]
    ckd_stage_name: str
    monitoring_frequency: str
    nephrology_referral_needed: bool
    dialysis_planning_needed: bool
    recommend_ras_inhibitor: bool
    recommend_sglt2i: bool
    target_bp: str

    is_treated: bool = False
    active_medication_classes: List[str] = field(default_factory=list)
    average_adherence: Optional[float] = None
    treatment_effect_egfr: Optional[float] = None
    treatment_effect_uacr: Optional[float] = None
    measured_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_classification(
        cls,
        patient_id: str,
        cycle_number: int,
        classification: Classification,
        **treatment_fields: Any,
    ) -> "CycleRecord":
        return cls(
            patient_id=patient_id,
            cycle_number=cycle_number,
            egfr=classification.egfr,
            uacr=classification.uacr,
            gfr_category=classification.gfr_category.value,
            albuminuria_category=classification.albuminuria_category.value,
            health_state=classification.health_state,
            risk_level=classification.risk_level.value,
            risk_color=classification.risk_color,
            ckd_stage=classification.ckd_stage,
            ckd_stage_name=classification.ckd_stage_name,
            monitoring_frequency=classification.monitoring_category,
            nephrology_referral_needed=classification.requires_nephrology_referral,
            dialysis_planning_needed=classification.requires_dialysis_planning,
            recommend_ras_inhibitor=classification.recommend_ras_inhibitor,
            recommend_sglt2i=classification.recommend_sglt2i,
            target_bp=classification.target_bp,
            **treatment_fields,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "cycle_number": self.cycle_number,
            "egfr": round(self.egfr, 2),
            "uacr": round(self.uacr, 2),
            "gfr_category": self.gfr_category,
            "albuminuria_category": self.albuminuria_category,
            "health_state": self.health_state,
            "risk_level": self.risk_level,
            "risk_color": self.risk_color,
            "ckd_stage": self.ckd_stage,
            "ckd_stage_name": self.ckd_stage_name,
            "monitoring_frequency": self.monitoring_frequency,
            "nephrology_referral_needed": self.nephrology_referral_needed,
            "dialysis_planning_needed": self.dialysis_planning_needed,
            "recommend_ras_inhibitor": self.recommend_ras_inhibitor,
            "recommend_sglt2i": self.recommend_sglt2i,
            "target_bp": self.target_bp,
            "is_treated": self.is_treated,
            "active_medication_classes": list(self.active_medication_classes),
            "average_adherence": _round(self.average_adherence, 3),
            "treatment_effect_egfr": _round(self.treatment_effect_egfr, 3),
            "treatment_effect_uacr": _round(self.treatment_effect_uacr, 3),
            "measured_at": _iso(self.measured_at),
        }


@dataclass
class AdherenceHistoryEntry:
    """Adherence snapshot for one treatment at one cycle (upsert key: treatment+cycle)."""
    treatment_id: str
    patient_id: str
    cycle_number: int
    adherence_score: float
    adherence_indicator: AdherenceTier
    egfr: float
    uacr: float
    egfr_change: float
    uacr_change: float
    calculation_method: str = "lab_trend"
    measured_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "treatment_id": self.treatment_id,
            "patient_id": self.patient_id,
            "cycle_number": self.cycle_number,
            "adherence_score": round(self.adherence_score, 3),
            "adherence_indicator": self.adherence_indicator.value,
            "egfr": round(self.egfr, 2),
            "uacr": round(self.uacr, 2),
            "egfr_change": round(self.egfr_change, 2),
            "uacr_change": round(self.uacr_change, 2),
            "calculation_method": self.calculation_method,
            "measured_at": _iso(self.measured_at),
        }


# ── Transitions and alerts ───────────────────────────────────────────────────

@dataclass
class TransitionRecord:
    patient_id: str
    from_cycle: int
    to_cycle: int
    from_health_state: str
    to_health_state: str
    from_gfr_category: str
    to_gfr_category: str
    from_albuminuria_category: str
    to_albuminuria_category: str
    from_risk_level: str
    to_risk_level: str
    change_type: ChangeType
    from_egfr: float
    to_egfr: float
    from_uacr: float
    to_uacr: float
    category_changed: bool = False
    risk_increased: bool = False
    crossed_critical_threshold: bool = False
    alert_generated: bool = False
    alert_severity: Optional[AlertSeverity] = None
    id: Optional[str] = None
    transition_date: datetime = field(default_factory=utcnow)

    @property
    def egfr_change(self) -> float:
        return self.to_egfr - self.from_egfr

    @property
    def uacr_change(self) -> float:
        return self.to_uacr - self.from_uacr

    @property
    def egfr_trend(self) -> str:
        if self.to_egfr > self.from_egfr:
            return "improving"
        return "declining" if self.to_egfr < self.from_egfr else "stable"

    @property
    def uacr_trend(self) -> str:
        # Rising albuminuria is the bad direction
        if self.to_uacr > self.from_uacr:
            return "worsening"
        return "improving" if self.to_uacr < self.from_uacr else "stable"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "from_cycle": self.from_cycle,
            "to_cycle": self.to_cycle,
            "from_health_state": self.from_health_state,
            "to_health_state": self.to_health_state,
            "from_gfr_category": self.from_gfr_category,
            "to_gfr_category": self.to_gfr_category,
            "from_albuminuria_category": self.from_albuminuria_category,
            "to_albuminuria_category": self.to_albuminuria_category,
            "from_risk_level": self.from_risk_level,
            "to_risk_level": self.to_risk_level,
            "change_type": self.change_type.value,
            "egfr_change": round(self.egfr_change, 2),
            "uacr_change": round(self.uacr_change, 2),
            "egfr_trend": self.egfr_trend,
            "uacr_trend": self.uacr_trend,
            "category_changed": self.category_changed,
            "risk_increased": self.risk_increased,
            "crossed_critical_threshold": self.crossed_critical_threshold,
            "alert_generated": self.alert_generated,
            "alert_severity": self.alert_severity.value if self.alert_severity else None,
            "from_egfr": round(self.from_egfr, 2),
            "to_egfr": round(self.to_egfr, 2),
            "from_uacr": round(self.from_uacr, 2),
            "to_uacr": round(self.to_uacr, 2),
            "transition_date": _iso(self.transition_date),
        }


@dataclass
class AlertRecord:
    patient_id: str
    transition_id: Optional[str]
    severity: AlertSeverity
    title: str
    reasons: List[str]
    current_health_state: str
    previous_health_state: str
    egfr: float
    uacr: float
    alert_type: str = "state_transition"
    status: AlertStatus = AlertStatus.ACTIVE
    id: Optional[str] = None
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def priority(self) -> int:
        return self.severity.priority

    @property
    def requires_action(self) -> bool:
        return self.severity in (AlertSeverity.CRITICAL, AlertSeverity.WARNING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "transition_id": self.transition_id,
            "alert_type": self.alert_type,
            "severity": self.severity.value,
            "priority": self.priority,
            "title": self.title,
            "reasons": list(self.reasons),
            "current_health_state": self.current_health_state,
            "previous_health_state": self.previous_health_state,
            "egfr": round(self.egfr, 2),
            "uacr": round(self.uacr, 2),
            "requires_action": self.requires_action,
            "status": self.status.value,
            "generated_at": _iso(self.generated_at),
        }


# ── Engine results ───────────────────────────────────────────────────────────

@dataclass
class TransitionDetails:
    from_state: str
    to_state: str
    change_type: ChangeType
    alert_generated: bool
    alert_severity: Optional[AlertSeverity] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state,
            "to_state": self.to_state,
            "change_type": self.change_type.value,
            "alert_generated": self.alert_generated,
            "alert_severity": self.alert_severity.value if self.alert_severity else None,
        }


@dataclass
class CycleResult:
    patient_id: str
    cycle_number: int
    egfr: float
    uacr: float
    classification: Classification
    measured_at: datetime
    is_treated: bool
    average_adherence: Optional[float] = None
    treatment_effect_egfr: Optional[float] = None
    treatment_effect_uacr: Optional[float] = None
    transition: Optional[TransitionDetails] = None

    @property
    def transition_detected(self) -> bool:
        return self.transition is not None

    @property
    def alert_generated(self) -> bool:
        return self.transition is not None and self.transition.alert_generated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "cycle_number": self.cycle_number,
            "egfr": round(self.egfr, 2),
            "uacr": round(self.uacr, 2),
            "classification": self.classification.to_dict(),
            "measured_at": _iso(self.measured_at),
            "is_treated": self.is_treated,
            "average_adherence": _round(self.average_adherence, 3),
            "treatment_effect_egfr": _round(self.treatment_effect_egfr, 3),
            "treatment_effect_uacr": _round(self.treatment_effect_uacr, 3),
            "transition_detected": self.transition_detected,
            "transition": self.transition.to_dict() if self.transition else None,
        }


@dataclass
class PatientFailure:
    patient_id: str
    error_code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"patient_id": self.patient_id, "error_code": self.error_code, "message": self.message}


@dataclass
class CohortSummary:
    new_cycle: int
    patients_processed: int = 0
    transitions_detected: int = 0
    alerts_generated: int = 0
    treatment_changes: int = 0
    failures: List[PatientFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "new_cycle": self.new_cycle,
            "patients_processed": self.patients_processed,
            "transitions_detected": self.transitions_detected,
            "alerts_generated": self.alerts_generated,
            "treatment_changes": self.treatment_changes,
            "failures": [f.to_dict() for f in self.failures],
        }
