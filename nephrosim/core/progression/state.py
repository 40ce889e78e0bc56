"""
Progression State Manager

Owns each patient's long-run trajectory parameters. A state is created
lazily on first use, sampled once from the archetype distribution, and
never modified afterwards.

Archetype distribution (all decline without treatment):
    5%  rapid        eGFR −0.80…−1.20 /month   uACR +4…10 %/month
    30% progressive  eGFR −0.30…−0.60 /month   uACR +1.5…4 %/month
    15% stable       eGFR −0.15…−0.30 /month   uACR +0.5…2 %/month
    50% improving    eGFR −0.05…−0.15 /month   uACR +0.1…1 %/month
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple, TYPE_CHECKING

import numpy as np

from nephrosim.utils import get_logger, NotFoundError, PersistenceFailure
from .base import ProgressionState, ProgressionType

if TYPE_CHECKING:
    from nephrosim.core.persistence import ProgressionRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArchetypeProfile:
    weight: float
    egfr_decline: Tuple[float, float]   # magnitude range, applied as negative
    uacr_increase: Tuple[float, float]  # fractional range


ARCHETYPES: Dict[ProgressionType, ArchetypeProfile] = {
    ProgressionType.RAPID:       ArchetypeProfile(0.05, (0.80, 1.20), (0.040, 0.100)),
    ProgressionType.PROGRESSIVE: ArchetypeProfile(0.30, (0.30, 0.60), (0.015, 0.040)),
    ProgressionType.STABLE:      ArchetypeProfile(0.15, (0.15, 0.30), (0.005, 0.020)),
    ProgressionType.IMPROVING:   ArchetypeProfile(0.50, (0.05, 0.15), (0.001, 0.010)),
}

# Defaults when a patient has no labs on file
DEFAULT_EGFR_RANGE = (60.0, 90.0)
DEFAULT_UACR_RANGE = (20.0, 70.0)


class ProgressionStateManager:
    """
    Creates and serves frozen ProgressionStates.

    Args:
        repository: Persistence collaborator
        rng: Seedable random source for archetype and rate sampling
    """

    def __init__(self, repository: "ProgressionRepository", rng: np.random.Generator):
        self.repository = repository
        self.rng = rng

    def get(self, patient_id: str) -> ProgressionState:
        """Existing state only; raises NotFoundError if none was created yet."""
        state = self.repository.get_progression_state(patient_id)
        if state is None:
            raise NotFoundError(
                f"No progression state for patient {patient_id}",
                entity="progression_state",
                entity_id=patient_id,
            )
        return state

    def get_or_create(self, patient_id: str) -> ProgressionState:
        existing = self.repository.get_progression_state(patient_id)
        if existing is not None:
            return existing

        patient = self.repository.get_patient(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found", entity="patient", entity_id=patient_id)

        baseline_egfr = patient.latest_egfr
        if baseline_egfr is None:
            baseline_egfr = float(self.rng.uniform(*DEFAULT_EGFR_RANGE))
        baseline_uacr = patient.latest_uacr
        if baseline_uacr is None:
            baseline_uacr = float(self.rng.uniform(*DEFAULT_UACR_RANGE))

        progression_type = self.sample_archetype()
        profile = ARCHETYPES[progression_type]

        state = ProgressionState(
            patient_id=patient_id,
            progression_type=progression_type,
            baseline_egfr=float(baseline_egfr),
            baseline_uacr=float(baseline_uacr),
            egfr_decline_rate=-float(self.rng.uniform(*profile.egfr_decline)),
            uacr_change_rate=float(self.rng.uniform(*profile.uacr_increase)),
        )
        try:
            self.repository.create_progression_state(state)
        except PersistenceFailure:
            # Lost a concurrent create; the stored state wins
            existing = self.repository.get_progression_state(patient_id)
            if existing is None:
                raise
            return existing

        logger.info(
            f"Progression state created: {progression_type.value} "
            f"(eGFR {state.egfr_decline_rate:+.3f}/mo, uACR {state.uacr_change_rate:+.2%}/mo, "
            f"baseline {state.baseline_egfr:.1f}/{state.baseline_uacr:.1f})",
            extra={"patient_id": patient_id},
        )
        return state

    def sample_archetype(self) -> ProgressionType:
        types = list(ARCHETYPES.keys())
        weights = np.array([ARCHETYPES[t].weight for t in types])
        index = self.rng.choice(len(types), p=weights / weights.sum())
        return types[int(index)]
