"""
Report Module

Patient history frames, eGFR trend and cohort-wide summaries.
"""
from .cohort_report import cohort_summary, egfr_trend, patient_history_frame

__all__ = [
    "cohort_summary",
    "egfr_trend",
    "patient_history_frame",
]
