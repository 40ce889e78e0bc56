"""
Persistence Contract

Everything the progression engine needs from storage. Implementations must
keep cycle records append-only and contiguous per patient (an arena indexed
by cycle number) and must make the cohort clock increment atomic.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from nephrosim.core.progression.base import (
    AdherenceHistoryEntry,
    AlertRecord,
    AlertSeverity,
    AlertStatus,
    CycleRecord,
    Patient,
    ProgressionState,
    Treatment,
    TransitionRecord,
)


@dataclass
class CohortClock:
    current_cycle: int = 0
    max_cycles: int = 24
    last_advanced_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_cycle": self.current_cycle,
            "max_cycles": self.max_cycles,
            "last_advanced_at": self.last_advanced_at.isoformat() if self.last_advanced_at else None,
        }


class ProgressionRepository(ABC):
    """Storage operations used by the engine."""

    # ── Patients ──────────────────────────────────────────────────────────
    @abstractmethod
    def add_patient(self, patient: Patient) -> Patient: ...

    @abstractmethod
    def get_patient(self, patient_id: str) -> Optional[Patient]: ...

    @abstractmethod
    def list_patient_ids(self) -> List[str]: ...

    # ── Progression state (create once, never update) ─────────────────────
    @abstractmethod
    def get_progression_state(self, patient_id: str) -> Optional[ProgressionState]: ...

    @abstractmethod
    def create_progression_state(self, state: ProgressionState) -> ProgressionState:
        """Raises PersistenceFailure if a state already exists for the patient."""

    # ── Cycle records ─────────────────────────────────────────────────────
    @abstractmethod
    def append_cycle(self, record: CycleRecord) -> CycleRecord:
        """Raises SequenceError unless record.cycle_number == latest + 1 (or 0 for a new chain)."""

    @abstractmethod
    def get_cycle(self, patient_id: str, cycle_number: int) -> Optional[CycleRecord]: ...

    @abstractmethod
    def latest_cycle(self, patient_id: str) -> Optional[CycleRecord]: ...

    @abstractmethod
    def list_cycles(self, patient_id: str) -> List[CycleRecord]: ...

    # ── Treatments ────────────────────────────────────────────────────────
    @abstractmethod
    def add_treatment(self, treatment: Treatment) -> Treatment: ...

    @abstractmethod
    def get_treatment(self, treatment_id: str) -> Treatment:
        """Raises NotFoundError for unknown ids."""

    @abstractmethod
    def active_treatments(self, patient_id: str) -> List[Treatment]: ...

    @abstractmethod
    def list_treatments(self, patient_id: str) -> List[Treatment]: ...

    @abstractmethod
    def update_adherence(self, treatment_id: str, adherence: float) -> Treatment: ...

    @abstractmethod
    def discontinue_treatment(self, treatment_id: str) -> Treatment: ...

    # ── Adherence history ─────────────────────────────────────────────────
    @abstractmethod
    def upsert_adherence_history(self, entry: AdherenceHistoryEntry) -> AdherenceHistoryEntry: ...

    @abstractmethod
    def list_adherence_history(self, patient_id: str) -> List[AdherenceHistoryEntry]: ...

    # ── Transitions and alerts ────────────────────────────────────────────
    @abstractmethod
    def add_transition(self, transition: TransitionRecord) -> TransitionRecord: ...

    @abstractmethod
    def list_transitions(self, patient_id: Optional[str] = None) -> List[TransitionRecord]: ...

    @abstractmethod
    def add_alert(self, alert: AlertRecord) -> AlertRecord: ...

    @abstractmethod
    def list_alerts(
        self,
        patient_id: Optional[str] = None,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
    ) -> List[AlertRecord]: ...

    @abstractmethod
    def update_alert_status(self, alert_id: str, status: AlertStatus) -> AlertRecord: ...

    # ── Cohort clock ──────────────────────────────────────────────────────
    @abstractmethod
    def get_clock(self) -> CohortClock: ...

    @abstractmethod
    def increment_cycle_if(self, expected: int, maximum: int) -> Optional[int]:
        """
        Atomically advance the clock from ``expected`` to ``expected + 1``.

        Returns the new cycle, or None (clock untouched) when the clock no
        longer reads ``expected`` or is already at ``maximum``.
        """
