"""
In-Memory Repository

Process-local implementation of ProgressionRepository. Cycle records live
in a per-patient list whose index is the cycle number, so "previous cycle"
is a positional lookup rather than a timestamp query. All mutations take a
single re-entrant lock; the clock increment is atomic under it.
"""
from __future__ import annotations

import threading
import uuid
from typing import Dict, List, Optional, Tuple

from nephrosim.config import settings
from nephrosim.core.progression.base import (
    AdherenceHistoryEntry,
    AlertRecord,
    AlertSeverity,
    AlertStatus,
    CycleRecord,
    Patient,
    ProgressionState,
    Treatment,
    TreatmentStatus,
    TransitionRecord,
    utcnow,
)
from nephrosim.utils import get_logger, NotFoundError, PersistenceFailure, SequenceError
from .base import CohortClock, ProgressionRepository

logger = get_logger(__name__)


class InMemoryRepository(ProgressionRepository):
    """Thread-safe dictionary-backed storage."""

    def __init__(self, max_cycles: Optional[int] = None):
        if max_cycles is None:
            max_cycles = settings.max_cycles
        self._lock = threading.RLock()
        self._patients: Dict[str, Patient] = {}
        self._states: Dict[str, ProgressionState] = {}
        self._cycles: Dict[str, List[CycleRecord]] = {}
        self._treatments: Dict[str, Treatment] = {}
        self._adherence: Dict[Tuple[str, int], AdherenceHistoryEntry] = {}
        self._transitions: List[TransitionRecord] = []
        self._alerts: Dict[str, AlertRecord] = {}
        self._clock = CohortClock(current_cycle=0, max_cycles=max_cycles)
        logger.debug(f"InMemoryRepository initialized (max_cycles={max_cycles})")

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    # ── Patients ──────────────────────────────────────────────────────────

    def add_patient(self, patient: Patient) -> Patient:
        with self._lock:
            if patient.patient_id in self._patients:
                raise PersistenceFailure(
                    f"Patient {patient.patient_id} already exists",
                    operation="add_patient",
                    details={"patient_id": patient.patient_id},
                )
            self._patients[patient.patient_id] = patient
            return patient

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self._patients.get(patient_id)

    def list_patient_ids(self) -> List[str]:
        with self._lock:
            return list(self._patients.keys())

    # ── Progression state ─────────────────────────────────────────────────

    def get_progression_state(self, patient_id: str) -> Optional[ProgressionState]:
        return self._states.get(patient_id)

    def create_progression_state(self, state: ProgressionState) -> ProgressionState:
        with self._lock:
            if state.patient_id in self._states:
                raise PersistenceFailure(
                    f"Progression state for {state.patient_id} already exists",
                    operation="create_progression_state",
                    details={"patient_id": state.patient_id},
                )
            self._states[state.patient_id] = state
            return state

    # ── Cycle records ─────────────────────────────────────────────────────

    def append_cycle(self, record: CycleRecord) -> CycleRecord:
        with self._lock:
            chain = self._cycles.setdefault(record.patient_id, [])
            expected = len(chain)
            if record.cycle_number != expected:
                raise SequenceError(
                    f"Cannot append cycle {record.cycle_number} for {record.patient_id}: "
                    f"next cycle in chain is {expected}",
                    patient_id=record.patient_id,
                    requested_cycle=record.cycle_number,
                    details={"expected_cycle": expected},
                )
            chain.append(record)
            return record

    def get_cycle(self, patient_id: str, cycle_number: int) -> Optional[CycleRecord]:
        chain = self._cycles.get(patient_id, [])
        if 0 <= cycle_number < len(chain):
            return chain[cycle_number]
        return None

    def latest_cycle(self, patient_id: str) -> Optional[CycleRecord]:
        chain = self._cycles.get(patient_id)
        return chain[-1] if chain else None

    def list_cycles(self, patient_id: str) -> List[CycleRecord]:
        with self._lock:
            return list(self._cycles.get(patient_id, []))

    # ── Treatments ────────────────────────────────────────────────────────

    def add_treatment(self, treatment: Treatment) -> Treatment:
        with self._lock:
            if not treatment.id:
                treatment.id = self._new_id()
            self._treatments[treatment.id] = treatment
            return treatment

    def get_treatment(self, treatment_id: str) -> Treatment:
        treatment = self._treatments.get(treatment_id)
        if treatment is None:
            raise NotFoundError(
                f"Treatment {treatment_id} not found",
                entity="treatment",
                entity_id=treatment_id,
            )
        return treatment

    def active_treatments(self, patient_id: str) -> List[Treatment]:
        with self._lock:
            return [
                t for t in self._treatments.values()
                if t.patient_id == patient_id and t.is_active
            ]

    def list_treatments(self, patient_id: str) -> List[Treatment]:
        with self._lock:
            treatments = [t for t in self._treatments.values() if t.patient_id == patient_id]
        return sorted(treatments, key=lambda t: t.started_cycle, reverse=True)

    def update_adherence(self, treatment_id: str, adherence: float) -> Treatment:
        with self._lock:
            treatment = self.get_treatment(treatment_id)
            treatment.current_adherence = adherence
            return treatment

    def discontinue_treatment(self, treatment_id: str) -> Treatment:
        with self._lock:
            treatment = self.get_treatment(treatment_id)
            treatment.status = TreatmentStatus.DISCONTINUED
            return treatment

    # ── Adherence history ─────────────────────────────────────────────────

    def upsert_adherence_history(self, entry: AdherenceHistoryEntry) -> AdherenceHistoryEntry:
        with self._lock:
            self._adherence[(entry.treatment_id, entry.cycle_number)] = entry
            return entry

    def list_adherence_history(self, patient_id: str) -> List[AdherenceHistoryEntry]:
        with self._lock:
            entries = [e for e in self._adherence.values() if e.patient_id == patient_id]
        return sorted(entries, key=lambda e: e.cycle_number, reverse=True)

    # ── Transitions and alerts ────────────────────────────────────────────

    def add_transition(self, transition: TransitionRecord) -> TransitionRecord:
        with self._lock:
            transition.id = transition.id or self._new_id()
            self._transitions.append(transition)
            return transition

    def list_transitions(self, patient_id: Optional[str] = None) -> List[TransitionRecord]:
        with self._lock:
            return [
                t for t in self._transitions
                if patient_id is None or t.patient_id == patient_id
            ]

    def add_alert(self, alert: AlertRecord) -> AlertRecord:
        with self._lock:
            alert.id = alert.id or self._new_id()
            self._alerts[alert.id] = alert
            return alert

    def list_alerts(
        self,
        patient_id: Optional[str] = None,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
    ) -> List[AlertRecord]:
        with self._lock:
            alerts = [
                a for a in self._alerts.values()
                if (patient_id is None or a.patient_id == patient_id)
                and (severity is None or a.severity == severity)
                and (status is None or a.status == status)
            ]
        # Most urgent first, newest first within a priority
        return sorted(alerts, key=lambda a: (a.priority, -a.generated_at.timestamp()))

    def update_alert_status(self, alert_id: str, status: AlertStatus) -> AlertRecord:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise NotFoundError(f"Alert {alert_id} not found", entity="alert", entity_id=alert_id)
            alert.status = status
            return alert

    # ── Cohort clock ──────────────────────────────────────────────────────

    def get_clock(self) -> CohortClock:
        with self._lock:
            return CohortClock(
                current_cycle=self._clock.current_cycle,
                max_cycles=self._clock.max_cycles,
                last_advanced_at=self._clock.last_advanced_at,
            )

    def increment_cycle_if(self, expected: int, maximum: int) -> Optional[int]:
        with self._lock:
            if self._clock.current_cycle != expected or expected >= maximum:
                return None
            self._clock.current_cycle += 1
            self._clock.last_advanced_at = utcnow()
            return self._clock.current_cycle
