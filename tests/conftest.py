"""
Pytest Configuration and Fixtures

Shared fixtures for progression engine tests.
"""
import pytest
import numpy as np
from pathlib import Path
import sys

# Add nephrosim to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from nephrosim.core.persistence import InMemoryRepository
from nephrosim.core.progression import Patient, ProgressionState, ProgressionType


@pytest.fixture
def repository() -> InMemoryRepository:
    """Empty in-memory repository."""
    return InMemoryRepository()


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random source."""
    return np.random.default_rng(42)


@pytest.fixture
def add_patient(repository):
    """Factory: store a patient with optional labs."""
    def _add(patient_id: str = "PT-0001", egfr=None, uacr=None) -> Patient:
        return repository.add_patient(Patient(
            patient_id=patient_id,
            medical_record_number=f"MRN-{patient_id}",
            latest_egfr=egfr,
            latest_uacr=uacr,
        ))
    return _add


@pytest.fixture
def add_state(repository, add_patient):
    """
    Factory: store a patient together with a fixed progression state, so
    generated cycles draw only noise from the rng.
    """
    def _add(
        patient_id: str = "PT-0001",
        egfr: float = 65.0,
        uacr: float = 20.0,
        egfr_rate: float = -0.4,
        uacr_rate: float = 0.01,
        progression_type: ProgressionType = ProgressionType.PROGRESSIVE,
    ) -> ProgressionState:
        add_patient(patient_id, egfr, uacr)
        return repository.create_progression_state(ProgressionState(
            patient_id=patient_id,
            progression_type=progression_type,
            baseline_egfr=egfr,
            baseline_uacr=uacr,
            egfr_decline_rate=egfr_rate,
            uacr_change_rate=uacr_rate,
        ))
    return _add
