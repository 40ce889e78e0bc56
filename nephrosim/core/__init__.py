"""
Core engine: staging, progression, persistence, cohort seeding and reports.
"""
