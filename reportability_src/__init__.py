"""Reportability Engine - public health reportability determination.

Classifies a structured clinical record as reportable, potentially
reportable, or not reportable against a catalog of reporting rules, and
traces every match back to the record item that caused it.
"""

from .models import (
    Demographics,
    Pregnancy,
    DiagnosisItem,
    ProblemItem,
    LabObservation,
    MedicationItem,
    PatientRecord,
)
from .rules import (
    Catalog,
    EvaluationResult,
    ReportabilityEvaluator,
    ReportabilityStatus,
    evaluate,
    load_catalog,
)

__all__ = [
    # Models
    "Demographics",
    "Pregnancy",
    "DiagnosisItem",
    "ProblemItem",
    "LabObservation",
    "MedicationItem",
    "PatientRecord",
    # Engine
    "Catalog",
    "EvaluationResult",
    "ReportabilityEvaluator",
    "ReportabilityStatus",
    "evaluate",
    "load_catalog",
]
