"""
Central Hospital Data Backend
Integrity-enforcing data layer for departments, staff, patients, admissions and billing.
NOTE: Package initialization for clinical data integrity requirements
"""

__version__ = "1.0.0"
__author__ = "Central Hospital Data Team"
__description__ = "Hospital data layer with FastAPI, SQLAlchemy and PostgreSQL"
