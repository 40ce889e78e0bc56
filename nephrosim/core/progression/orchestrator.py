"""
Cohort Orchestrator

Batch driver: advances every patient by one cycle, probabilistically starts
recommended treatments, perturbs adherence, then moves the shared cohort
clock forward exactly once.

Patients are processed sequentially. A patient whose cycle fails is logged,
reported in the summary and skipped; on the next run it catches up by
generating every cycle it is missing, in order.

Usage:
    from nephrosim.core.persistence import InMemoryRepository
    from nephrosim.core.progression import CohortOrchestrator

    orchestrator = CohortOrchestrator(InMemoryRepository(), rng=np.random.default_rng(7))
    orchestrator.initialize_cohort()
    summary = orchestrator.advance_cohort()
"""
from __future__ import annotations

import threading
from typing import List, Optional, TYPE_CHECKING

import numpy as np

from nephrosim.config import settings
from nephrosim.core.staging import Classification
from nephrosim.utils import (
    get_logger,
    CycleLimitExceeded,
    InvalidInputError,
    NotFoundError,
    ProgressionEngineError,
    SequenceError,
)
from .base import (
    CohortSummary,
    CycleResult,
    MedicationClass,
    PatientFailure,
    Treatment,
)
from .generator import CycleGenerator
from .state import ProgressionStateManager
from .transitions import TransitionDetector
from .treatment import MEDICATIONS, expected_benefit

if TYPE_CHECKING:
    from nephrosim.core.persistence import ProgressionRepository

logger = get_logger(__name__)


class CohortOrchestrator:
    """
    Advances the whole cohort one cycle at a time.

    Args:
        repository: Persistence collaborator (also owns the cohort clock)
        rng: Seedable random source; defaults to settings.random_seed
    """

    def __init__(
        self,
        repository: "ProgressionRepository",
        rng: Optional[np.random.Generator] = None,
    ):
        self.repository = repository
        self.rng = rng if rng is not None else np.random.default_rng(settings.random_seed)
        self.state_manager = ProgressionStateManager(repository, self.rng)
        self.detector = TransitionDetector(repository)
        self.generator = CycleGenerator(
            repository, self.rng, state_manager=self.state_manager, detector=self.detector
        )
        self.max_cycles = settings.max_cycles
        self._advance_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def current_cycle(self) -> int:
        return self.repository.get_clock().current_cycle

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    def initialize_cohort(self) -> CohortSummary:
        """Generate the baseline (cycle 0) for every patient that has none."""
        summary = CohortSummary(new_cycle=0)
        for patient_id in self.repository.list_patient_ids():
            if self.repository.get_cycle(patient_id, 0) is not None:
                continue
            try:
                self.generator.generate(patient_id, 0)
                summary.patients_processed += 1
            except ProgressionEngineError as exc:
                self._record_failure(summary, patient_id, exc)
        logger.info(f"Cohort baseline initialized: {summary.patients_processed} patient(s)")
        return summary

    def advance_cohort(self) -> CohortSummary:
        with self._advance_lock:
            current = self.current_cycle()
            new_cycle = current + 1
            if new_cycle > self.max_cycles:
                raise CycleLimitExceeded(
                    f"Maximum cycles ({self.max_cycles}) reached",
                    current_cycle=current,
                    max_cycles=self.max_cycles,
                )

            summary = CohortSummary(new_cycle=new_cycle)
            patient_ids = self.repository.list_patient_ids()
            logger.info(f"Advancing cohort to cycle {new_cycle} ({len(patient_ids)} patients)")

            for patient_id in patient_ids:
                try:
                    if self._advance_patient(patient_id, new_cycle, summary):
                        summary.patients_processed += 1
                except ProgressionEngineError as exc:
                    self._record_failure(summary, patient_id, exc, cycle=new_cycle)

            advanced_to = self.repository.increment_cycle_if(current, self.max_cycles)
            if advanced_to is None:
                moved_to = self.current_cycle()
                if moved_to >= self.max_cycles:
                    raise CycleLimitExceeded(
                        f"Maximum cycles ({self.max_cycles}) reached",
                        current_cycle=moved_to,
                        max_cycles=self.max_cycles,
                    )
                raise SequenceError(
                    f"Cohort clock moved from {current} to {moved_to} during advance; "
                    f"cycle {new_cycle} belongs to another writer",
                    requested_cycle=new_cycle,
                    details={"expected_cycle": current, "clock_cycle": moved_to},
                )
            summary.new_cycle = advanced_to

            logger.info(
                f"Cycle {advanced_to} complete: {summary.patients_processed}/{len(patient_ids)} processed, "
                f"{summary.transitions_detected} transition(s), {summary.alerts_generated} alert(s), "
                f"{summary.treatment_changes} treatment change(s), {len(summary.failures)} failure(s)"
            )
            return summary

    def _advance_patient(self, patient_id: str, new_cycle: int, summary: CohortSummary) -> bool:
        """Generate every missing cycle up to ``new_cycle``; False if there was none."""
        latest = self.repository.latest_cycle(patient_id)
        start = 0 if latest is None else latest.cycle_number + 1
        if start > new_cycle:
            return False

        result: Optional[CycleResult] = None
        for cycle in range(start, new_cycle + 1):
            result = self.generator.generate(patient_id, cycle)
            if result.transition_detected:
                summary.transitions_detected += 1
                if result.alert_generated:
                    summary.alerts_generated += 1

        summary.treatment_changes += self._maybe_initiate_treatment(
            patient_id, result.classification, new_cycle
        )
        self._perturb_adherence(patient_id)
        return True

    @staticmethod
    def _record_failure(
        summary: CohortSummary,
        patient_id: str,
        exc: ProgressionEngineError,
        cycle: Optional[int] = None,
    ) -> None:
        summary.failures.append(PatientFailure(patient_id, exc.code, exc.message))
        logger.error(
            f"Patient cycle failed ({exc.code}): {exc.message}",
            exc_info=True,
            extra={"patient_id": patient_id, "cycle": cycle},
        )

    # ------------------------------------------------------------------
    # Treatment simulation
    # ------------------------------------------------------------------

    def _maybe_initiate_treatment(
        self,
        patient_id: str,
        classification: Classification,
        cycle: int,
    ) -> int:
        recommended: List[MedicationClass] = []
        if classification.recommend_ras_inhibitor:
            recommended.append(MedicationClass.RAS_INHIBITOR)
        if classification.recommend_sglt2i:
            recommended.append(MedicationClass.SGLT2I)
        if not recommended:
            return 0

        on_classes = {t.medication_class for t in self.repository.active_treatments(patient_id)}
        started = 0
        for medication_class in recommended:
            if medication_class in on_classes:
                continue
            if self.rng.random() < settings.treatment_initiation_probability:
                names = MEDICATIONS[medication_class]
                adherence = self.rng.uniform(settings.initial_adherence_min, settings.initial_adherence_max)
                self._add_treatment(
                    patient_id,
                    names[int(self.rng.integers(len(names)))],
                    medication_class,
                    float(adherence),
                    cycle,
                )
                started += 1
        return started

    def _perturb_adherence(self, patient_id: str) -> None:
        """Random walk on adherence for a subset of active treatments."""
        for treatment in self.repository.active_treatments(patient_id):
            if self.rng.random() >= settings.adherence_change_probability:
                continue
            change = self.rng.uniform(-settings.adherence_step, settings.adherence_step)
            new_adherence = float(np.clip(treatment.current_adherence + change, settings.adherence_floor, 1.0))
            self.repository.update_adherence(treatment.id, new_adherence)
            logger.debug(
                f"Adherence {treatment.medication_name}: {new_adherence:.2f} ({change:+.2f})",
                extra={"patient_id": patient_id},
            )

    def _add_treatment(
        self,
        patient_id: str,
        medication_name: str,
        medication_class: MedicationClass,
        adherence: float,
        cycle: int,
    ) -> Treatment:
        egfr_benefit, uacr_reduction = expected_benefit(medication_class)
        treatment = self.repository.add_treatment(Treatment(
            id="",
            patient_id=patient_id,
            medication_name=medication_name,
            medication_class=medication_class,
            current_adherence=adherence,
            started_cycle=cycle,
            expected_egfr_benefit=egfr_benefit,
            expected_uacr_reduction=uacr_reduction,
        ))
        logger.info(
            f"Treatment started: {medication_name} ({medication_class.value}), adherence {adherence:.2f}",
            extra={"patient_id": patient_id, "cycle": cycle},
        )
        return treatment

    # ------------------------------------------------------------------
    # Manual treatment management
    # ------------------------------------------------------------------

    def start_treatment(
        self,
        patient_id: str,
        medication_name: str,
        medication_class: str,
        adherence: float = 0.8,
    ) -> Treatment:
        """Start a treatment at the current cohort cycle."""
        if self.repository.get_patient(patient_id) is None:
            raise NotFoundError(f"Patient {patient_id} not found", entity="patient", entity_id=patient_id)
        try:
            med_class = MedicationClass(medication_class)
        except ValueError:
            raise InvalidInputError(
                f"Unknown medication class: {medication_class}",
                field="medication_class",
                value=medication_class,
            )
        if not 0.0 <= adherence <= 1.0:
            raise InvalidInputError("Adherence must be within [0, 1]", field="adherence", value=adherence)
        if not medication_name:
            raise InvalidInputError("medication_name is required", field="medication_name")

        return self._add_treatment(patient_id, medication_name, med_class, adherence, self.current_cycle())

    def discontinue_treatment(self, treatment_id: str) -> Treatment:
        treatment = self.repository.discontinue_treatment(treatment_id)
        logger.info(
            f"Treatment discontinued: {treatment.medication_name}",
            extra={"patient_id": treatment.patient_id},
        )
        return treatment
