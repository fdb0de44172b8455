"""Reportability rules engine.

This module classifies a patient record as reportable, potentially
reportable, or not reportable against a catalog of public-health reporting
rules, and explains which record items triggered each decision.

Architecture:
    Rule tables -> Catalog Loader -> Catalog
    Form data -> Record Adapter (+ Terminology Classifier) -> PatientRecord
    Catalog x PatientRecord -> Evaluator -> EvaluationResult

The catalog is built once and shared read-only; each evaluation is a pure
function of the catalog and one record.
"""

from .criteria import (
    CriterionType,
    CLINICAL_CRITERION_TYPES,
    parse_criterion_type,
)
from .schemas import (
    RuleCriterion,
    CriterionGroup,
    ReportabilityRule,
    ReportableCondition,
    LoadStats,
    Catalog,
    ReportabilityStatus,
    MatchedData,
    CriterionMatch,
    GroupResult,
    RuleResult,
    ConditionResult,
    EvaluationResult,
)
from .catalog_loader import (
    CatalogSourceError,
    load_catalog,
    load_catalog_from_csv,
    load_catalog_from_json,
    load_catalog_from_config,
)
from .engine import ReportabilityEvaluator, evaluate
from .trace import EvaluationEvent, EventKind, EventCollector, log_event, null_hook

__all__ = [
    # Criteria
    "CriterionType",
    "CLINICAL_CRITERION_TYPES",
    "parse_criterion_type",
    # Catalog
    "RuleCriterion",
    "CriterionGroup",
    "ReportabilityRule",
    "ReportableCondition",
    "LoadStats",
    "Catalog",
    "CatalogSourceError",
    "load_catalog",
    "load_catalog_from_csv",
    "load_catalog_from_json",
    "load_catalog_from_config",
    # Results
    "ReportabilityStatus",
    "MatchedData",
    "CriterionMatch",
    "GroupResult",
    "RuleResult",
    "ConditionResult",
    "EvaluationResult",
    # Evaluator
    "ReportabilityEvaluator",
    "evaluate",
    # Tracing
    "EvaluationEvent",
    "EventKind",
    "EventCollector",
    "log_event",
    "null_hook",
]
