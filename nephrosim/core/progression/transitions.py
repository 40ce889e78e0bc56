"""
Transition & Alert Detection

Persists a TransitionRecord for every meaningful classification change and,
when the comparison asks for it, an AlertRecord. Severity is read from the
comparison's reason list only:

    CRITICAL – a reason mentions a critical / low eGFR threshold
    WARNING  – a reason mentions a category change or risk escalation
    INFO     – anything else (e.g. improvement)

Persistence errors propagate: a half-recorded transition is worse than a
failed cycle.
"""
from __future__ import annotations

from typing import Optional, Sequence, TYPE_CHECKING

from nephrosim.core.staging import Classification, Comparison
from nephrosim.utils import get_logger
from .base import AlertRecord, AlertSeverity, TransitionRecord

if TYPE_CHECKING:
    from nephrosim.core.persistence import ProgressionRepository

logger = get_logger(__name__)

CRITICAL_MARKERS = ("Critical", "below 30", "below 15")
WARNING_MARKERS = ("Category changed", "Risk level increased")


def severity_for(reasons: Sequence[str]) -> AlertSeverity:
    if any(marker in reason for reason in reasons for marker in CRITICAL_MARKERS):
        return AlertSeverity.CRITICAL
    if any(marker in reason for reason in reasons for marker in WARNING_MARKERS):
        return AlertSeverity.WARNING
    return AlertSeverity.INFO


class TransitionDetector:
    """Records transitions and alerts for one repository."""

    def __init__(self, repository: "ProgressionRepository"):
        self.repository = repository

    def detect(
        self,
        patient_id: str,
        from_cycle: int,
        to_cycle: int,
        prev: Classification,
        curr: Classification,
        comparison: Comparison,
    ) -> Optional[AlertRecord]:
        """
        Record the transition; return the persisted alert, if any.

        Callers are expected to have filtered on ``comparison.has_changed``.
        """
        severity = severity_for(comparison.reasons) if comparison.needs_alert else None

        transition = self.repository.add_transition(TransitionRecord(
            patient_id=patient_id,
            from_cycle=from_cycle,
            to_cycle=to_cycle,
            from_health_state=prev.health_state,
            to_health_state=curr.health_state,
            from_gfr_category=prev.gfr_category.value,
            to_gfr_category=curr.gfr_category.value,
            from_albuminuria_category=prev.albuminuria_category.value,
            to_albuminuria_category=curr.albuminuria_category.value,
            from_risk_level=prev.risk_level.value,
            to_risk_level=curr.risk_level.value,
            change_type=comparison.change_type,
            from_egfr=prev.egfr,
            to_egfr=curr.egfr,
            from_uacr=prev.uacr,
            to_uacr=curr.uacr,
            category_changed=comparison.category_changed,
            risk_increased=comparison.risk_increased,
            crossed_critical_threshold=comparison.critical_threshold_crossed,
            alert_generated=comparison.needs_alert,
            alert_severity=severity,
        ))

        logger.info(
            f"Transition {prev.health_state} → {curr.health_state} "
            f"({comparison.change_type.value}, cycle {from_cycle}→{to_cycle})",
            extra={"patient_id": patient_id, "cycle": to_cycle},
        )

        if severity is None:
            return None

        alert = self.repository.add_alert(AlertRecord(
            patient_id=patient_id,
            transition_id=transition.id,
            severity=severity,
            title=f"Health State Transition: {prev.health_state} → {curr.health_state}",
            reasons=list(comparison.reasons),
            current_health_state=curr.health_state,
            previous_health_state=prev.health_state,
            egfr=curr.egfr,
            uacr=curr.uacr,
        ))

        log = logger.warning if alert.requires_action else logger.info
        log(
            f"{severity.value.upper()} alert: " + "; ".join(comparison.reasons),
            extra={"patient_id": patient_id, "cycle": to_cycle},
        )
        return alert
