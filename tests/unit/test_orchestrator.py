"""
Unit Tests for the Cohort Orchestrator

Tests for cohort initialisation, batch advancement, the cycle bound,
failure isolation, catch-up and treatment management.
"""
import threading

import pytest
import numpy as np

from nephrosim.config import settings
from nephrosim.core.progression import (
    CohortOrchestrator,
    CohortSummary,
    MedicationClass,
    TreatmentStatus,
)
from nephrosim.utils import CycleLimitExceeded, InvalidInputError, NotFoundError, SequenceError


@pytest.fixture
def orchestrator(repository) -> CohortOrchestrator:
    return CohortOrchestrator(repository, rng=np.random.default_rng(3))


@pytest.fixture
def cohort(add_patient):
    """Three patients across the staging grid."""
    add_patient("PT-0001", egfr=85.0, uacr=12.0)
    add_patient("PT-0002", egfr=50.0, uacr=100.0)
    add_patient("PT-0003", egfr=28.0, uacr=450.0)
    return ["PT-0001", "PT-0002", "PT-0003"]


class TestInitializeCohort:
    """Tests for baseline generation."""

    def test_baselines(self, orchestrator, repository, cohort):
        """Test every patient receives cycle 0."""
        summary = orchestrator.initialize_cohort()

        assert summary.new_cycle == 0
        assert summary.patients_processed == 3
        for patient_id in cohort:
            assert repository.latest_cycle(patient_id).cycle_number == 0
        assert orchestrator.current_cycle() == 0

    def test_idempotent(self, orchestrator, cohort):
        """Test a second run skips patients that already have a baseline."""
        orchestrator.initialize_cohort()
        summary = orchestrator.initialize_cohort()

        assert summary.patients_processed == 0
        assert summary.failures == []


class TestAdvanceCohort:
    """Tests for advance_cohort()."""

    def test_single_advance(self, orchestrator, repository, cohort):
        """Test one advance moves clock and every patient by one cycle."""
        orchestrator.initialize_cohort()
        summary = orchestrator.advance_cohort()

        assert summary.new_cycle == 1
        assert summary.patients_processed == 3
        assert orchestrator.current_cycle() == 1
        for patient_id in cohort:
            assert repository.latest_cycle(patient_id).cycle_number == 1

    def test_summary_counts_match_storage(self, orchestrator, repository, cohort):
        """Test summary counters agree with what was persisted."""
        orchestrator.initialize_cohort()
        summary = orchestrator.advance_cohort()

        treatments = sum(len(repository.list_treatments(p)) for p in cohort)
        assert summary.transitions_detected == len(repository.list_transitions())
        assert summary.alerts_generated == len(repository.list_alerts())
        assert summary.treatment_changes == treatments

    def test_cycle_limit(self, orchestrator, repository, cohort):
        """Test the clock stops at the maximum and the overflow mutates nothing."""
        orchestrator.initialize_cohort()
        for _ in range(settings.max_cycles):
            orchestrator.advance_cohort()

        transitions_before = len(repository.list_transitions())
        with pytest.raises(CycleLimitExceeded) as exc_info:
            orchestrator.advance_cohort()

        assert exc_info.value.current_cycle == settings.max_cycles
        assert orchestrator.current_cycle() == settings.max_cycles
        assert len(repository.list_transitions()) == transitions_before
        for patient_id in cohort:
            records = repository.list_cycles(patient_id)
            assert [r.cycle_number for r in records] == list(range(settings.max_cycles + 1))

    def test_catch_up_without_initialize(self, orchestrator, repository, cohort):
        """Test advancing generates a missing baseline first."""
        orchestrator.advance_cohort()

        for patient_id in cohort:
            assert [r.cycle_number for r in repository.list_cycles(patient_id)] == [0, 1]

    def test_late_patient_catches_up(self, orchestrator, repository, add_patient):
        """Test a patient added mid-run is brought up to the cohort cycle."""
        add_patient("PT-0001", egfr=70.0, uacr=20.0)
        orchestrator.initialize_cohort()
        orchestrator.advance_cohort()
        orchestrator.advance_cohort()

        add_patient("PT-0009", egfr=60.0, uacr=40.0)
        summary = orchestrator.advance_cohort()

        assert summary.patients_processed == 2
        assert [r.cycle_number for r in repository.list_cycles("PT-0009")] == [0, 1, 2, 3]

    def test_failure_isolation(self, orchestrator, repository, add_patient):
        """Test one bad patient does not stop the batch."""
        add_patient("PT-0001", egfr=70.0, uacr=20.0)
        add_patient("PT-BAD", egfr=-5.0, uacr=20.0)

        init = orchestrator.initialize_cohort()
        assert [f.patient_id for f in init.failures] == ["PT-BAD"]

        summary = orchestrator.advance_cohort()

        assert summary.patients_processed == 1
        assert len(summary.failures) == 1
        assert summary.failures[0].patient_id == "PT-BAD"
        assert summary.failures[0].error_code == "INVALID_INPUT"
        assert orchestrator.current_cycle() == 1
        assert repository.latest_cycle("PT-0001").cycle_number == 1
        assert repository.list_cycles("PT-BAD") == []

    def test_concurrent_advance_respects_limit(self, repository, cohort, monkeypatch):
        """Test racing callers at the limit get exactly one success."""
        monkeypatch.setattr(settings, "max_cycles", 3)
        orchestrator = CohortOrchestrator(repository, rng=np.random.default_rng(1))
        orchestrator.initialize_cohort()
        orchestrator.advance_cohort()
        orchestrator.advance_cohort()

        outcomes = []

        def worker():
            try:
                outcomes.append(orchestrator.advance_cohort().new_cycle)
            except CycleLimitExceeded:
                outcomes.append("limit")

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes, key=str) == [3, "limit"]
        assert orchestrator.current_cycle() == 3


class TestTreatmentSimulation:
    """Tests for probabilistic initiation and adherence drift."""

    def test_initiates_recommended_classes(self, repository, add_patient, monkeypatch):
        """Test recommended classes start once and are not duplicated."""
        monkeypatch.setattr(settings, "treatment_initiation_probability", 1.0)
        monkeypatch.setattr(settings, "adherence_change_probability", 0.0)
        add_patient("PT-0001", egfr=50.0, uacr=100.0)
        orchestrator = CohortOrchestrator(repository, rng=np.random.default_rng(2))
        orchestrator.initialize_cohort()

        first = orchestrator.advance_cohort()
        classes = {t.medication_class for t in repository.active_treatments("PT-0001")}
        assert first.treatment_changes == 2
        assert classes == {MedicationClass.RAS_INHIBITOR, MedicationClass.SGLT2I}
        for treatment in repository.active_treatments("PT-0001"):
            assert settings.initial_adherence_min <= treatment.current_adherence <= settings.initial_adherence_max
            assert treatment.started_cycle == 1

        second = orchestrator.advance_cohort()
        assert second.treatment_changes == 0

    def test_no_recommendation_no_treatment(self, repository, add_patient, monkeypatch):
        """Test healthy patients are never started on treatment."""
        monkeypatch.setattr(settings, "treatment_initiation_probability", 1.0)
        add_patient("PT-0001", egfr=95.0, uacr=5.0)
        orchestrator = CohortOrchestrator(repository, rng=np.random.default_rng(2))

        summary = orchestrator.advance_cohort()

        assert summary.treatment_changes == 0
        assert repository.list_treatments("PT-0001") == []

    def test_adherence_drift_bounded(self, orchestrator, repository, add_patient, monkeypatch):
        """Test adherence moves by at most one step and stays in range."""
        monkeypatch.setattr(settings, "adherence_change_probability", 1.0)
        monkeypatch.setattr(settings, "treatment_initiation_probability", 0.0)
        add_patient("PT-0001", egfr=70.0, uacr=20.0)
        treatment = orchestrator.start_treatment("PT-0001", "Losartan", "RAS_INHIBITOR", adherence=0.8)

        orchestrator.advance_cohort()

        assert treatment.current_adherence != 0.8
        assert abs(treatment.current_adherence - 0.8) <= settings.adherence_step
        assert settings.adherence_floor <= treatment.current_adherence <= 1.0
        assert treatment.baseline_adherence == 0.8


class TestManualTreatment:
    """Tests for start_treatment() and discontinue_treatment()."""

    def test_start(self, orchestrator, add_patient):
        """Test a manual start records the current cycle and midpoint benefit."""
        add_patient("PT-0001", egfr=50.0, uacr=100.0)
        treatment = orchestrator.start_treatment("PT-0001", "Lisinopril", "RAS_INHIBITOR")

        assert treatment.id
        assert treatment.started_cycle == 0
        assert treatment.current_adherence == 0.8
        assert treatment.expected_egfr_benefit == pytest.approx(1.0)
        assert treatment.expected_uacr_reduction == pytest.approx(0.30)
        assert treatment.status == TreatmentStatus.ACTIVE

    def test_unknown_patient(self, orchestrator):
        """Test NotFoundError for a missing patient."""
        with pytest.raises(NotFoundError):
            orchestrator.start_treatment("nobody", "Lisinopril", "RAS_INHIBITOR")

    def test_invalid_class(self, orchestrator, add_patient):
        """Test unknown medication classes are rejected."""
        add_patient("PT-0001")
        with pytest.raises(InvalidInputError) as exc_info:
            orchestrator.start_treatment("PT-0001", "Aspirin", "NSAID")
        assert exc_info.value.field == "medication_class"

    def test_invalid_adherence(self, orchestrator, add_patient):
        """Test adherence outside [0, 1] is rejected."""
        add_patient("PT-0001")
        with pytest.raises(InvalidInputError):
            orchestrator.start_treatment("PT-0001", "Lisinopril", "RAS_INHIBITOR", adherence=1.5)

    def test_discontinue(self, orchestrator, repository, add_patient):
        """Test discontinued treatments no longer affect the patient."""
        add_patient("PT-0001", egfr=50.0, uacr=100.0)
        treatment = orchestrator.start_treatment("PT-0001", "Lisinopril", "RAS_INHIBITOR")

        orchestrator.discontinue_treatment(treatment.id)

        assert repository.active_treatments("PT-0001") == []
        assert repository.get_treatment(treatment.id).status == TreatmentStatus.DISCONTINUED

    def test_discontinue_unknown(self, orchestrator):
        """Test NotFoundError for a missing treatment."""
        with pytest.raises(NotFoundError):
            orchestrator.discontinue_treatment("missing")


class TestSharedRepository:
    """Tests for several orchestrators writing to one repository."""

    def test_clock_moved_during_advance(self, repository, cohort):
        """Test a run whose starting cycle was taken by another writer fails."""
        orchestrator = CohortOrchestrator(repository, rng=np.random.default_rng(4))
        original = orchestrator._advance_patient
        moved = []

        def advance_after_other_writer(patient_id, new_cycle, summary):
            if not moved:
                moved.append(repository.increment_cycle_if(0, settings.max_cycles))
            return original(patient_id, new_cycle, summary)

        orchestrator._advance_patient = advance_after_other_writer

        with pytest.raises(SequenceError) as exc_info:
            orchestrator.advance_cohort()

        assert exc_info.value.requested_cycle == 1
        assert exc_info.value.details["clock_cycle"] == 1
        assert orchestrator.current_cycle() == 1

    def test_caught_up_patients_not_counted(self, repository, cohort):
        """Test patients already at the target cycle are not reported as processed."""
        first = CohortOrchestrator(repository, rng=np.random.default_rng(5))
        second = CohortOrchestrator(repository, rng=np.random.default_rng(6))
        first.advance_cohort()

        summary = CohortSummary(new_cycle=1)
        for patient_id in cohort:
            assert second._advance_patient(patient_id, 1, summary) is False
        assert summary.transitions_detected == 0

    def test_two_orchestrators_race(self, repository, add_patient):
        """Test the clock never runs ahead of the stored cycles."""
        for i in range(200):
            add_patient(f"PT-{i:04d}", egfr=60.0, uacr=40.0)
        orchestrators = [
            CohortOrchestrator(repository, rng=np.random.default_rng(seed))
            for seed in (10, 11)
        ]
        barrier = threading.Barrier(len(orchestrators))
        summaries, errors = [], []

        def worker(orchestrator):
            barrier.wait()
            try:
                summaries.append(orchestrator.advance_cohort())
            except SequenceError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(o,)) for o in orchestrators]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        clock = repository.get_clock().current_cycle
        newest = max(repository.latest_cycle(p).cycle_number for p in repository.list_patient_ids())
        assert newest == clock
        assert sorted(s.new_cycle for s in summaries) == list(range(1, clock + 1))
        assert len(summaries) + len(errors) == 2
        for patient_id in repository.list_patient_ids():
            assert [r.cycle_number for r in repository.list_cycles(patient_id)] == list(range(clock + 1))
        for summary in summaries:
            assert all(f.error_code != "PERSISTENCE_FAILURE" for f in summary.failures)
