"""
End-to-End Demo Script for the CKD Progression Engine

This script runs a complete simulation on a synthetic cohort:
1. Seed a cohort with plausible screening labs
2. Record baselines (cycle 0)
3. Advance the cohort month by month up to the cycle limit
4. Print per-cycle summaries, the alert queue and one patient's history

Run: python demo.py [cohort_size] [seed]
"""
import sys
from pathlib import Path

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from nephrosim.config import settings
from nephrosim.core.cohort import seed_synthetic_cohort
from nephrosim.core.persistence import InMemoryRepository
from nephrosim.core.progression import AlertStatus, CohortOrchestrator
from nephrosim.core.reports import cohort_summary, egfr_trend, patient_history_frame
from nephrosim.utils import CycleLimitExceeded


def main(cohort_size: int = 50, seed: int = 2024) -> None:
    print("=" * 60)
    print("CKD PROGRESSION ENGINE - END-TO-END DEMO")
    print("=" * 60)
    print()

    rng = np.random.default_rng(seed)
    repository = InMemoryRepository(max_cycles=settings.max_cycles)

    print(f"[1/4] Seeding synthetic cohort ({cohort_size} patients)...")
    patients = seed_synthetic_cohort(repository, cohort_size, rng)
    print(f"   ✓ {len(patients)} patients stored")

    print()
    print("[2/4] Recording baselines...")
    orchestrator = CohortOrchestrator(repository, rng=rng)
    baseline = orchestrator.initialize_cohort()
    print(f"   ✓ {baseline.patients_processed} baselines, {len(baseline.failures)} failure(s)")

    print()
    print(f"[3/4] Advancing to cycle {settings.max_cycles}...")
    while True:
        try:
            summary = orchestrator.advance_cohort()
        except CycleLimitExceeded as e:
            print(f"   ✓ Stopped: {e.message}")
            break
        print(
            f"   cycle {summary.new_cycle:2d}: "
            f"{summary.transitions_detected:3d} transitions, "
            f"{summary.alerts_generated:3d} alerts, "
            f"{summary.treatment_changes:2d} new treatments"
        )

    print()
    print("[4/4] Results")
    report = cohort_summary(repository)
    print("   Risk distribution:")
    for row in report["risk_distribution"]:
        print(f"     {row['risk_level']:<10} {row['patient_count']}")
    stats = report["transition_stats"]
    print(
        f"   Transitions: {stats['total_transitions']} "
        f"({stats['worsening_count']} worsening, {stats['improving_count']} improving, "
        f"{stats['critical_threshold_count']} critical crossings)"
    )
    alerts = report["alert_stats"]
    print(f"   Active alerts: {alerts['active_alerts']} ({alerts['critical_alerts']} critical)")

    for alert in repository.list_alerts(status=AlertStatus.ACTIVE)[:5]:
        print(f"     [{alert.severity.value.upper():8}] {alert.patient_id}: {alert.title}")

    first = patients[0].patient_id
    history = patient_history_frame(repository, first)
    print()
    print(f"   History for {first} (trend {egfr_trend(repository, first):+.2f} mL/min per cycle):")
    print(history[["cycle_number", "egfr", "uacr", "health_state", "risk_level", "is_treated"]].to_string(index=False))


if __name__ == "__main__":
    size = int(sys.argv[1]) if len(sys.argv) > 1 else 50
    seed = int(sys.argv[2]) if len(sys.argv) > 2 else 2024
    main(size, seed)
