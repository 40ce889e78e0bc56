"""
Synthetic Cohort

Seeds a repository with simulated patients for cohort runs.
"""
from .synthetic import generate_patients, seed_synthetic_cohort

__all__ = [
    "generate_patients",
    "seed_synthetic_cohort",
]
