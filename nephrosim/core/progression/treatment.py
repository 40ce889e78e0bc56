"""
Treatment Effect Composition

Turns a patient's active treatments into a net modifier on the natural
trajectory. Each medication class has a fixed benefit envelope; adherence
interpolates linearly inside it (0 → minimum, 1 → maximum benefit).

Pure functions, no I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from nephrosim.config import settings
from .base import AdherenceTier, MedicationClass, Treatment


@dataclass(frozen=True)
class EffectEnvelope:
    egfr_benefit_min: float      # mL/min/month of slowed decline
    egfr_benefit_max: float
    uacr_reduction_min: float    # fractional reduction per cycle
    uacr_reduction_max: float

    def at(self, adherence: float) -> Tuple[float, float]:
        """(eGFR benefit, uACR reduction) at the given adherence."""
        egfr = self.egfr_benefit_min + (self.egfr_benefit_max - self.egfr_benefit_min) * adherence
        uacr = self.uacr_reduction_min + (self.uacr_reduction_max - self.uacr_reduction_min) * adherence
        return egfr, uacr

    @property
    def midpoint(self) -> Tuple[float, float]:
        return self.at(0.5)


TREATMENT_EFFECTS: Dict[MedicationClass, EffectEnvelope] = {
    # ACE-I / ARB: slow eGFR decline, reduce proteinuria
    MedicationClass.RAS_INHIBITOR: EffectEnvelope(0.5, 1.5, 0.20, 0.40),
    # SGLT2 inhibitors: strongest kidney protection
    MedicationClass.SGLT2I:        EffectEnvelope(1.0, 2.5, 0.25, 0.50),
    # GLP-1 receptor agonists: moderate benefit
    MedicationClass.GLP1_RA:       EffectEnvelope(0.3, 1.0, 0.15, 0.30),
}

MEDICATIONS: Dict[MedicationClass, List[str]] = {
    MedicationClass.RAS_INHIBITOR: ["Lisinopril", "Enalapril", "Losartan", "Valsartan"],
    MedicationClass.SGLT2I:        ["Empagliflozin", "Dapagliflozin", "Canagliflozin"],
    MedicationClass.GLP1_RA:       ["Semaglutide", "Liraglutide", "Dulaglutide"],
}

# Lower bound of each adherence tier, best first
ADHERENCE_TIERS: Sequence[Tuple[float, AdherenceTier]] = (
    (0.9, AdherenceTier.EXCELLENT),
    (0.7, AdherenceTier.GOOD),
    (0.5, AdherenceTier.FAIR),
    (0.3, AdherenceTier.POOR),
)


@dataclass(frozen=True)
class TreatmentEffect:
    egfr_effect: float = 0.0
    uacr_effect: float = 0.0
    average_adherence: float = 0.0


def compose(
    treatments: Sequence[Treatment],
    combination_bonus: Optional[float] = None,
) -> TreatmentEffect:
    """
    Net effect of a set of concurrent treatments.

    Contributions are summed; with more than one treatment the total is
    scaled by (1 + combination_bonus). average_adherence is the arithmetic
    mean over all given treatments.
    """
    if not treatments:
        return TreatmentEffect()

    bonus = settings.combination_bonus if combination_bonus is None else combination_bonus

    total_egfr = 0.0
    total_uacr = 0.0
    adherence_sum = 0.0
    for treatment in treatments:
        egfr, uacr = TREATMENT_EFFECTS[treatment.medication_class].at(treatment.current_adherence)
        total_egfr += egfr
        total_uacr += uacr
        adherence_sum += treatment.current_adherence

    if len(treatments) > 1:
        total_egfr *= 1 + bonus
        total_uacr *= 1 + bonus

    return TreatmentEffect(
        egfr_effect=total_egfr,
        uacr_effect=total_uacr,
        average_adherence=adherence_sum / len(treatments),
    )


def adherence_tier(score: float) -> AdherenceTier:
    for lower_bound, tier in ADHERENCE_TIERS:
        if score >= lower_bound:
            return tier
    return AdherenceTier.VERY_POOR


def expected_benefit(medication_class: MedicationClass) -> Tuple[float, float]:
    """Envelope midpoint, stored on new treatments for display."""
    return TREATMENT_EFFECTS[medication_class].midpoint
