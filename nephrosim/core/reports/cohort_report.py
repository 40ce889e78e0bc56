"""
Cohort and Patient Reports

Read-only views over a repository for dashboards and the narrative
consumer: a patient's cycle history as a DataFrame, their eGFR slope, and
a cohort-wide summary of risk, transitions and alerts.
"""
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import pandas as pd
from scipy import stats

from nephrosim.core.progression.base import AlertSeverity, AlertStatus, ChangeType
from nephrosim.core.staging import RiskLevel
from nephrosim.utils import get_logger, NotFoundError

if TYPE_CHECKING:
    from nephrosim.core.persistence import ProgressionRepository

logger = get_logger(__name__)

RISK_ORDER = [level.value for level in RiskLevel]


def patient_history_frame(repository: "ProgressionRepository", patient_id: str) -> pd.DataFrame:
    """All cycle records for a patient, one row per cycle, ordered by cycle."""
    if repository.get_patient(patient_id) is None:
        raise NotFoundError(f"Patient {patient_id} not found", entity="patient", entity_id=patient_id)

    rows = [record.to_dict() for record in repository.list_cycles(patient_id)]
    if not rows:
        return pd.DataFrame(columns=["cycle_number", "egfr", "uacr", "health_state", "risk_level"])
    return pd.DataFrame(rows).sort_values("cycle_number").reset_index(drop=True)


def egfr_trend(repository: "ProgressionRepository", patient_id: str) -> Optional[float]:
    """
    Least-squares eGFR slope in mL/min per cycle.

    Returns None with fewer than two cycles.
    """
    history = patient_history_frame(repository, patient_id)
    if len(history) < 2:
        return None
    fit = stats.linregress(history["cycle_number"].astype(float), history["egfr"].astype(float))
    return float(fit.slope)


def _risk_distribution(repository: "ProgressionRepository") -> List[Dict[str, Any]]:
    latest = [repository.latest_cycle(pid) for pid in repository.list_patient_ids()]
    levels = pd.Series([r.risk_level for r in latest if r is not None], dtype="object")
    counts = levels.value_counts()
    return [
        {"risk_level": level, "patient_count": int(counts.get(level, 0))}
        for level in RISK_ORDER
        if counts.get(level, 0) > 0
    ]


def cohort_summary(repository: "ProgressionRepository") -> Dict[str, Any]:
    """
    System-wide progression summary.

    Example output:
    {
        "current_cycle": 6,
        "risk_distribution": [{"risk_level": "low", "patient_count": 12}, ...],
        "transition_stats": {"total_transitions": 9, "worsening_count": 7, ...},
        "alert_stats": {"active_alerts": 6, "critical_alerts": 1, "warning_alerts": 4},
        "patients_requiring_urgent_attention": [{"patient_id": ..., "alert_count": 1}]
    }
    """
    transitions = pd.DataFrame([t.to_dict() for t in repository.list_transitions()])
    if transitions.empty:
        transition_stats = {
            "total_transitions": 0,
            "worsening_count": 0,
            "improving_count": 0,
            "critical_threshold_count": 0,
        }
    else:
        transition_stats = {
            "total_transitions": int(len(transitions)),
            "worsening_count": int((transitions["change_type"] == ChangeType.WORSENED.value).sum()),
            "improving_count": int((transitions["change_type"] == ChangeType.IMPROVED.value).sum()),
            "critical_threshold_count": int(transitions["crossed_critical_threshold"].sum()),
        }

    active = repository.list_alerts(status=AlertStatus.ACTIVE)
    critical = [a for a in active if a.severity == AlertSeverity.CRITICAL]
    alert_stats = {
        "active_alerts": len(active),
        "critical_alerts": len(critical),
        "warning_alerts": sum(1 for a in active if a.severity == AlertSeverity.WARNING),
    }

    urgent: List[Dict[str, Any]] = []
    if critical:
        per_patient = pd.Series([a.patient_id for a in critical]).value_counts()
        for patient_id, count in per_patient.items():
            patient = repository.get_patient(patient_id)
            urgent.append({
                "patient_id": patient_id,
                "medical_record_number": patient.medical_record_number if patient else None,
                "alert_count": int(count),
            })

    logger.debug(
        f"Cohort summary: {transition_stats['total_transitions']} transition(s), "
        f"{alert_stats['active_alerts']} active alert(s), {len(urgent)} urgent patient(s)"
    )
    return {
        "current_cycle": repository.get_clock().current_cycle,
        "risk_distribution": _risk_distribution(repository),
        "transition_stats": transition_stats,
        "alert_stats": alert_stats,
        "patients_requiring_urgent_attention": urgent[:20],
    }
