"""
Unit Tests for the Progression State Manager
"""
import pytest
import numpy as np

from nephrosim.core.progression import ProgressionStateManager, ProgressionType
from nephrosim.core.progression.state import (
    ARCHETYPES,
    DEFAULT_EGFR_RANGE,
    DEFAULT_UACR_RANGE,
)
from nephrosim.utils import NotFoundError


class TestGetOrCreate:
    """Tests for lazy state creation."""

    def test_uses_patient_labs_as_baseline(self, repository, rng, add_patient):
        """Test baseline comes from the patient's latest labs."""
        add_patient("PT-0001", egfr=52.5, uacr=140.0)
        state = ProgressionStateManager(repository, rng).get_or_create("PT-0001")

        assert state.baseline_egfr == 52.5
        assert state.baseline_uacr == 140.0
        assert state.natural_trajectory == "worsening"

    def test_idempotent(self, repository, rng, add_patient):
        """Test a second call returns the stored state unchanged."""
        add_patient("PT-0001", egfr=70.0, uacr=15.0)
        manager = ProgressionStateManager(repository, rng)

        first = manager.get_or_create("PT-0001")
        second = manager.get_or_create("PT-0001")

        assert second is first
        assert repository.get_progression_state("PT-0001") is first

    def test_defaults_without_labs(self, repository, rng, add_patient):
        """Test missing labs fall back to the default baseline ranges."""
        add_patient("PT-0001")
        state = ProgressionStateManager(repository, rng).get_or_create("PT-0001")

        assert DEFAULT_EGFR_RANGE[0] <= state.baseline_egfr <= DEFAULT_EGFR_RANGE[1]
        assert DEFAULT_UACR_RANGE[0] <= state.baseline_uacr <= DEFAULT_UACR_RANGE[1]

    def test_unknown_patient(self, repository, rng):
        """Test NotFoundError for a patient that does not exist."""
        with pytest.raises(NotFoundError) as exc_info:
            ProgressionStateManager(repository, rng).get_or_create("nobody")

        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.entity == "patient"

    def test_rates_inside_archetype_ranges(self, repository, rng, add_patient):
        """Test sampled rates always decline and fit their archetype."""
        manager = ProgressionStateManager(repository, rng)
        for i in range(200):
            add_patient(f"PT-{i:04d}", egfr=60.0, uacr=30.0)
            state = manager.get_or_create(f"PT-{i:04d}")
            profile = ARCHETYPES[state.progression_type]

            assert state.egfr_decline_rate <= 0
            assert state.uacr_change_rate >= 0
            assert profile.egfr_decline[0] <= -state.egfr_decline_rate <= profile.egfr_decline[1]
            assert profile.uacr_increase[0] <= state.uacr_change_rate <= profile.uacr_increase[1]

    def test_lost_create_race(self, repository, rng, add_patient, monkeypatch):
        """Test a concurrent create by another writer returns the stored state."""
        add_patient("PT-0001", egfr=70.0, uacr=15.0)
        other = ProgressionStateManager(repository, np.random.default_rng(99))
        original_create = repository.create_progression_state

        def create_after_other_writer(state):
            monkeypatch.setattr(repository, "create_progression_state", original_create)
            winner = other.get_or_create("PT-0001")
            original_create(state)
            return winner

        monkeypatch.setattr(repository, "create_progression_state", create_after_other_writer)

        state = ProgressionStateManager(repository, rng).get_or_create("PT-0001")

        assert state is repository.get_progression_state("PT-0001")
        assert state is other.get_or_create("PT-0001")


class TestGet:
    """Tests for reading existing states."""

    def test_missing_state(self, repository, rng, add_patient):
        """Test get() never creates a state."""
        add_patient("PT-0001", egfr=70.0, uacr=15.0)

        with pytest.raises(NotFoundError):
            ProgressionStateManager(repository, rng).get("PT-0001")
        assert repository.get_progression_state("PT-0001") is None


class TestArchetypeSampling:
    """Tests for the archetype distribution."""

    def test_distribution(self, repository):
        """Test sampled frequencies follow the configured weights."""
        manager = ProgressionStateManager(repository, np.random.default_rng(0))
        draws = [manager.sample_archetype() for _ in range(4000)]

        for progression_type, profile in ARCHETYPES.items():
            frequency = draws.count(progression_type) / len(draws)
            assert frequency == pytest.approx(profile.weight, abs=0.03)

    def test_weights_sum_to_one(self):
        """Test archetype weights form a distribution."""
        assert sum(p.weight for p in ARCHETYPES.values()) == pytest.approx(1.0)

    def test_speed_labels(self):
        """Test every archetype is labelled as a decline speed."""
        for progression_type in ProgressionType:
            assert progression_type.speed_label.endswith("decline")
