"""
Synthetic Cohort Generator

Populates a repository with plausible CKD-screening patients. Lab values
span the KDIGO grid so every staging band is represented; a fraction of
patients has no labs on file so baseline defaults get exercised.
"""
from typing import List, TYPE_CHECKING

import numpy as np

from nephrosim.core.progression.base import Patient
from nephrosim.utils import get_logger, InvalidInputError

if TYPE_CHECKING:
    from nephrosim.core.persistence import ProgressionRepository

logger = get_logger(__name__)

EGFR_RANGE = (20.0, 100.0)     # mL/min/1.73m²
UACR_LOG_RANGE = (5.0, 600.0)  # mg/g, sampled log-uniformly


def generate_patients(
    size: int,
    rng: np.random.Generator,
    missing_labs_fraction: float = 0.1,
    id_prefix: str = "PT",
) -> List[Patient]:
    """Build ``size`` patients without touching storage."""
    if size < 0:
        raise InvalidInputError("Cohort size must be non-negative", field="size", value=size)
    if not 0.0 <= missing_labs_fraction <= 1.0:
        raise InvalidInputError(
            "missing_labs_fraction must be within [0, 1]",
            field="missing_labs_fraction",
            value=missing_labs_fraction,
        )

    egfr = rng.uniform(*EGFR_RANGE, size=size)
    log_low, log_high = np.log(UACR_LOG_RANGE)
    uacr = np.exp(rng.uniform(log_low, log_high, size=size))
    missing = rng.random(size) < missing_labs_fraction

    patients = []
    for i in range(size):
        patients.append(Patient(
            patient_id=f"{id_prefix}-{i + 1:04d}",
            medical_record_number=f"MRN{i + 1:04d}",
            latest_egfr=None if missing[i] else round(float(egfr[i]), 1),
            latest_uacr=None if missing[i] else round(float(uacr[i]), 1),
        ))
    return patients


def seed_synthetic_cohort(
    repository: "ProgressionRepository",
    size: int,
    rng: np.random.Generator,
    missing_labs_fraction: float = 0.1,
) -> List[Patient]:
    """Generate and store a cohort; returns the stored patients."""
    patients = [
        repository.add_patient(p)
        for p in generate_patients(size, rng, missing_labs_fraction)
    ]
    without_labs = sum(1 for p in patients if p.latest_egfr is None)
    logger.info(f"Seeded synthetic cohort: {len(patients)} patients ({without_labs} without labs)")
    return patients
