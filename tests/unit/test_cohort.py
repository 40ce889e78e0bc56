"""
Unit Tests for Synthetic Cohort Generation
"""
import pytest
import numpy as np

from nephrosim.core.cohort import generate_patients, seed_synthetic_cohort
from nephrosim.utils import InvalidInputError


class TestGeneratePatients:
    """Tests for generate_patients()."""

    def test_identifiers(self, rng):
        """Test ids and record numbers are unique and formatted."""
        patients = generate_patients(25, rng)

        assert len(patients) == 25
        assert patients[0].patient_id == "PT-0001"
        assert patients[0].medical_record_number == "MRN0001"
        assert len({p.patient_id for p in patients}) == 25

    def test_lab_ranges(self, rng):
        """Test labs stay inside the sampling ranges."""
        patients = generate_patients(200, rng, missing_labs_fraction=0.0)

        for p in patients:
            assert 20.0 <= p.latest_egfr <= 100.0
            assert 5.0 <= p.latest_uacr <= 600.0

    def test_all_missing(self, rng):
        """Test fraction 1.0 leaves every patient without labs."""
        patients = generate_patients(10, rng, missing_labs_fraction=1.0)

        assert all(p.latest_egfr is None and p.latest_uacr is None for p in patients)

    def test_reproducible(self):
        """Test the same seed gives the same cohort."""
        a = generate_patients(5, np.random.default_rng(9))
        b = generate_patients(5, np.random.default_rng(9))

        assert [p.to_dict() for p in a] == [p.to_dict() for p in b]

    @pytest.mark.parametrize("size,fraction", [(-1, 0.1), (5, 1.5)])
    def test_invalid_arguments(self, rng, size, fraction):
        """Test bad arguments are rejected."""
        with pytest.raises(InvalidInputError):
            generate_patients(size, rng, missing_labs_fraction=fraction)


class TestSeedSyntheticCohort:
    """Tests for seed_synthetic_cohort()."""

    def test_stores_patients(self, repository, rng):
        """Test every generated patient is persisted."""
        patients = seed_synthetic_cohort(repository, 12, rng)

        assert repository.list_patient_ids() == [p.patient_id for p in patients]
