"""
Progression Engine

Per-patient stochastic CKD trajectories, treatment/adherence effects,
cycle generation, transition/alert detection and the cohort batch driver.
"""
from .base import (
    AdherenceHistoryEntry,
    AdherenceTier,
    AlertRecord,
    AlertSeverity,
    AlertStatus,
    CohortSummary,
    CycleRecord,
    CycleResult,
    MedicationClass,
    Patient,
    PatientFailure,
    ProgressionState,
    ProgressionType,
    TransitionDetails,
    TransitionRecord,
    Treatment,
    TreatmentStatus,
)
from .treatment import TreatmentEffect, compose, adherence_tier, TREATMENT_EFFECTS
from .state import ProgressionStateManager
from .transitions import TransitionDetector, severity_for
from .generator import CycleGenerator
from .orchestrator import CohortOrchestrator

__all__ = [
    "AdherenceHistoryEntry",
    "AdherenceTier",
    "AlertRecord",
    "AlertSeverity",
    "AlertStatus",
    "CohortSummary",
    "CycleRecord",
    "CycleResult",
    "MedicationClass",
    "Patient",
    "PatientFailure",
    "ProgressionState",
    "ProgressionType",
    "TransitionDetails",
    "TransitionRecord",
    "Treatment",
    "TreatmentStatus",
    "TreatmentEffect",
    "compose",
    "adherence_tier",
    "TREATMENT_EFFECTS",
    "ProgressionStateManager",
    "TransitionDetector",
    "severity_for",
    "CycleGenerator",
    "CohortOrchestrator",
]
