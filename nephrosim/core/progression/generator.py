"""
Cycle Generator

Advances one patient by exactly one cycle. Cycles form a linear chain per
patient (cycle 0 → 1 → … → max); cycle 0 records the baseline, cycle n is
derived from the persisted cycle n-1 record.

Per cycle n > 0:
    delta_egfr = decline_rate (+ treatment benefit)
    ratio_uacr = (1 + change_rate) (× (1 - treatment reduction))
    poor adherence (< threshold): blend 70% natural / 30% treatment
    + bounded noise, clamped at the physiological floor
"""
from __future__ import annotations

import math
from typing import List, Optional, Tuple, TYPE_CHECKING

import numpy as np

from nephrosim.config import settings
from nephrosim.core.staging import classify, compare
from nephrosim.utils import get_logger, InvalidInputError, SequenceError
from .base import (
    AdherenceHistoryEntry,
    CycleRecord,
    CycleResult,
    ProgressionState,
    TransitionDetails,
    Treatment,
)
from .state import ProgressionStateManager
from .transitions import TransitionDetector
from .treatment import TreatmentEffect, adherence_tier, compose

if TYPE_CHECKING:
    from nephrosim.core.persistence import ProgressionRepository

logger = get_logger(__name__)


def _require_measurement(name: str, value: float) -> None:
    if value is None or not math.isfinite(value) or value < 0:
        raise InvalidInputError(f"{name} must be a finite non-negative number", field=name, value=value)


class CycleGenerator:
    """
    Generates and persists cycle records.

    Args:
        repository: Persistence collaborator
        rng: Seedable random source for biological noise
        state_manager: Optional shared state manager (defaults to one on the same rng)
        detector: Optional shared transition detector
    """

    def __init__(
        self,
        repository: "ProgressionRepository",
        rng: np.random.Generator,
        state_manager: Optional[ProgressionStateManager] = None,
        detector: Optional[TransitionDetector] = None,
    ):
        self.repository = repository
        self.rng = rng
        self.state_manager = state_manager or ProgressionStateManager(repository, rng)
        self.detector = detector or TransitionDetector(repository)
        self.max_cycles = settings.max_cycles

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(self, patient_id: str, target_cycle: int) -> CycleResult:
        if target_cycle < 0 or target_cycle > self.max_cycles:
            raise SequenceError(
                f"Cycle {target_cycle} outside 0..{self.max_cycles}",
                patient_id=patient_id,
                requested_cycle=target_cycle,
            )

        state = self.state_manager.get_or_create(patient_id)

        if self.repository.get_cycle(patient_id, target_cycle) is not None:
            raise SequenceError(
                f"Cycle {target_cycle} already exists for patient {patient_id}",
                patient_id=patient_id,
                requested_cycle=target_cycle,
            )

        previous = None
        if target_cycle > 0:
            previous = self.repository.get_cycle(patient_id, target_cycle - 1)
            if previous is None:
                raise SequenceError(
                    f"Previous cycle {target_cycle - 1} not found. Generate cycles sequentially.",
                    patient_id=patient_id,
                    requested_cycle=target_cycle,
                )

        treatments = self.repository.active_treatments(patient_id)
        is_treated = bool(treatments)
        effect = compose(treatments)

        if previous is None:
            new_egfr, new_uacr = state.baseline_egfr, state.baseline_uacr
        else:
            new_egfr, new_uacr = self._step(state, previous.egfr, previous.uacr, effect, is_treated)

        _require_measurement("egfr", new_egfr)
        _require_measurement("uacr", new_uacr)
        classification = classify(new_egfr, new_uacr)

        # The baseline carries no treatment effect even when a treatment is active
        effect_applied = is_treated and previous is not None

        record = self.repository.append_cycle(CycleRecord.from_classification(
            patient_id,
            target_cycle,
            classification,
            is_treated=is_treated,
            active_medication_classes=[t.medication_class.value for t in treatments],
            average_adherence=effect.average_adherence if is_treated else None,
            treatment_effect_egfr=effect.egfr_effect if effect_applied else None,
            treatment_effect_uacr=effect.uacr_effect if effect_applied else None,
        ))

        logger.debug(
            f"Cycle {target_cycle}: eGFR={new_egfr:.2f} uACR={new_uacr:.2f} "
            f"→ {classification.health_state} ({classification.risk_level.value})",
            extra={"patient_id": patient_id, "cycle": target_cycle},
        )

        if previous is not None and is_treated:
            self._record_adherence(treatments, record, previous)

        result = CycleResult(
            patient_id=patient_id,
            cycle_number=target_cycle,
            egfr=new_egfr,
            uacr=new_uacr,
            classification=classification,
            measured_at=record.measured_at,
            is_treated=is_treated,
            average_adherence=record.average_adherence,
            treatment_effect_egfr=record.treatment_effect_egfr,
            treatment_effect_uacr=record.treatment_effect_uacr,
        )

        if previous is not None:
            # Reclassifying is exact: classify() is deterministic
            prev_classification = classify(previous.egfr, previous.uacr)
            comparison = compare(prev_classification, classification)
            if comparison.has_changed:
                alert = self.detector.detect(
                    patient_id,
                    target_cycle - 1,
                    target_cycle,
                    prev_classification,
                    classification,
                    comparison,
                )
                result.transition = TransitionDetails(
                    from_state=prev_classification.health_state,
                    to_state=classification.health_state,
                    change_type=comparison.change_type,
                    alert_generated=alert is not None,
                    alert_severity=alert.severity if alert is not None else None,
                )

        return result

    # ------------------------------------------------------------------
    # Trajectory step
    # ------------------------------------------------------------------

    def _step(
        self,
        state: ProgressionState,
        prev_egfr: float,
        prev_uacr: float,
        effect: TreatmentEffect,
        is_treated: bool,
    ) -> Tuple[float, float]:
        natural_delta = state.egfr_decline_rate          # <= 0
        natural_rate = state.uacr_change_rate            # >= 0

        egfr_delta = natural_delta
        uacr_ratio = 1 + natural_rate

        if is_treated:
            egfr_delta += effect.egfr_effect
            uacr_ratio *= 1 - effect.uacr_effect

            if effect.average_adherence < settings.poor_adherence_threshold:
                # Poor adherence: the disease mostly wins
                w = settings.poor_adherence_natural_weight
                egfr_delta = natural_delta * w + effect.egfr_effect * (1 - w)
                uacr_ratio = 1 + natural_rate * w - effect.uacr_effect * (1 - w)

        egfr_noise = self.rng.uniform(-settings.egfr_noise, settings.egfr_noise)
        uacr_noise = 1 + self.rng.uniform(-settings.uacr_noise, settings.uacr_noise)

        floor = settings.biomarker_floor
        new_egfr = max(floor, prev_egfr + egfr_delta + float(egfr_noise))
        new_uacr = max(floor, prev_uacr * uacr_ratio * float(uacr_noise))
        return new_egfr, new_uacr

    def _record_adherence(
        self,
        treatments: List[Treatment],
        record: CycleRecord,
        previous: CycleRecord,
    ) -> None:
        for treatment in treatments:
            self.repository.upsert_adherence_history(AdherenceHistoryEntry(
                treatment_id=treatment.id,
                patient_id=record.patient_id,
                cycle_number=record.cycle_number,
                adherence_score=treatment.current_adherence,
                adherence_indicator=adherence_tier(treatment.current_adherence),
                egfr=record.egfr,
                uacr=record.uacr,
                egfr_change=record.egfr - previous.egfr,
                uacr_change=record.uacr - previous.uacr,
                measured_at=record.measured_at,
            ))
