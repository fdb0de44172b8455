"""Schemas for the reportability rules engine.

This module defines:
- The rule catalog: ReportableCondition -> ReportabilityRule -> CriterionGroup
  -> RuleCriterion, built once by the catalog loader and read-only afterward
- Evaluation results: what the evaluator returns for one patient record

Rule logic is two-level: a rule passes when ALL of its criterion groups pass
(AND), and a group passes when ANY of its criteria matches (OR).
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .criteria import CriterionType, is_clinical_type


# ============================================================================
# Rule Catalog
# ============================================================================

@dataclass(frozen=True)
class RuleCriterion:
    """A single criterion row from the rule tables.

    value is stored lowercased so status comparisons are case-insensitive.
    raw_type keeps the untouched criteria_type cell for data-quality warnings.
    """
    condition_id: str
    rule_id: str
    group_id: str
    sequence: str
    type: CriterionType
    raw_type: str = ""
    value_set_oid: str = ""
    value_set_name: str = ""
    code_system: str = ""
    source_field: str = ""  # ecelerate_field: form field the criterion was authored against
    operator: str = ""  # in_valueset, equals, <, <=, >, >=
    value: str = ""

    @property
    def is_clinical(self) -> bool:
        return is_clinical_type(self.type)

    def to_dict(self) -> dict:
        return {
            "condition_id": self.condition_id,
            "rule_id": self.rule_id,
            "group_id": self.group_id,
            "sequence": self.sequence,
            "type": self.type.value,
            "raw_type": self.raw_type,
            "value_set_oid": self.value_set_oid,
            "value_set_name": self.value_set_name,
            "code_system": self.code_system,
            "source_field": self.source_field,
            "operator": self.operator,
            "value": self.value,
        }


@dataclass(frozen=True)
class CriterionGroup:
    """OR-group of criteria. Criteria keep their source order."""
    group_id: str
    criteria: tuple[RuleCriterion, ...] = ()

    @property
    def has_clinical_criteria(self) -> bool:
        return any(c.is_clinical for c in self.criteria)


@dataclass(frozen=True)
class ReportabilityRule:
    """A reporting rule: all groups must pass for the rule to pass."""
    id: str
    condition_id: str
    name: str = ""
    description: str = ""
    groups: tuple[CriterionGroup, ...] = ()

    @property
    def criteria_groups(self) -> Mapping[str, tuple[RuleCriterion, ...]]:
        """Read-only view of group id -> criteria, in source order."""
        return MappingProxyType({g.group_id: g.criteria for g in self.groups})

    @property
    def all_criteria(self) -> tuple[RuleCriterion, ...]:
        return tuple(c for g in self.groups for c in g.criteria)

    @property
    def is_actionable(self) -> bool:
        """False when no criterion in any group is clinically typed."""
        return any(c.is_clinical for c in self.all_criteria)

    def to_dict(self) -> dict:
        return {
            "rule_id": self.id,
            "condition_id": self.condition_id,
            "rule_name": self.name,
            "rule_description": self.description,
            "groups": {
                g.group_id: [c.to_dict() for c in g.criteria] for g in self.groups
            },
        }


@dataclass(frozen=True)
class ReportableCondition:
    """A reportable condition and its rules, in catalog order."""
    id: str
    name: str = ""
    snomed_code: str = ""
    rules: tuple[ReportabilityRule, ...] = ()

    def to_dict(self) -> dict:
        return {
            "condition_id": self.id,
            "condition_name": self.name,
            "condition_snomed": self.snomed_code,
            "rule_count": len(self.rules),
        }


@dataclass(frozen=True)
class LoadStats:
    """Diagnostics from catalog loading. Skipped rows never abort a load."""
    skipped_conditions: int = 0
    skipped_rules: int = 0
    skipped_criteria: int = 0
    unknown_criterion_types: int = 0

    @property
    def skipped_rows(self) -> int:
        return self.skipped_conditions + self.skipped_rules + self.skipped_criteria

    def to_dict(self) -> dict:
        return {
            "skipped_conditions": self.skipped_conditions,
            "skipped_rules": self.skipped_rules,
            "skipped_criteria": self.skipped_criteria,
            "unknown_criterion_types": self.unknown_criterion_types,
            "skipped_rows": self.skipped_rows,
        }


@dataclass(frozen=True)
class Catalog:
    """Immutable rule catalog shared by every evaluation."""
    conditions: tuple[ReportableCondition, ...] = ()
    stats: LoadStats = field(default_factory=LoadStats)

    def __post_init__(self):
        index = {c.id: c for c in self.conditions}
        object.__setattr__(self, "_index", MappingProxyType(index))

    def get_condition(self, condition_id: str) -> ReportableCondition | None:
        return self._index.get(condition_id)

    @property
    def skipped_rows(self) -> int:
        return self.stats.skipped_rows

    @property
    def condition_count(self) -> int:
        return len(self.conditions)

    @property
    def rule_count(self) -> int:
        return sum(len(c.rules) for c in self.conditions)

    @property
    def criterion_count(self) -> int:
        return sum(len(r.all_criteria) for c in self.conditions for r in c.rules)

    def to_dict(self) -> dict:
        return {
            "condition_count": self.condition_count,
            "rule_count": self.rule_count,
            "criterion_count": self.criterion_count,
            "load_stats": self.stats.to_dict(),
            "conditions": [c.to_dict() for c in self.conditions],
        }


# ============================================================================
# Evaluation Results
# ============================================================================

class ReportabilityStatus(str, Enum):
    """Overall outcome for one patient record."""
    REPORTABLE = "reportable"
    POTENTIALLY_REPORTABLE = "potentially_reportable"
    NOT_REPORTABLE = "not_reportable"


@dataclass(frozen=True)
class MatchedData:
    """The concrete record item that satisfied a criterion.

    Which fields are populated depends on the criterion type; unused fields
    stay None and are left out of to_dict().
    """
    type: str
    code: str | None = None
    display: str | None = None
    code_system: str | None = None
    value_set_name: str | None = None
    status: str | None = None  # problem
    test_code: str | None = None  # lab_result
    test_display: str | None = None
    result_code: str | None = None
    result_display: str | None = None
    patient_age: int | None = None  # demographic_age
    operator: str | None = None
    limit: str | None = None
    limit_years: float | None = None
    unit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            key: value for key, value in (
                ("type", self.type),
                ("code", self.code),
                ("display", self.display),
                ("code_system", self.code_system),
                ("value_set_name", self.value_set_name),
                ("status", self.status),
                ("test_code", self.test_code),
                ("test_display", self.test_display),
                ("result_code", self.result_code),
                ("result_display", self.result_display),
                ("patient_age", self.patient_age),
                ("operator", self.operator),
                ("limit", self.limit),
                ("limit_years", self.limit_years),
                ("unit", self.unit),
            )
            if value is not None
        }


@dataclass(frozen=True)
class CriterionMatch:
    """Outcome of checking one criterion against a record."""
    matched: bool
    matched_data: MatchedData | None = None


NO_MATCH = CriterionMatch(matched=False)


@dataclass
class GroupResult:
    """Result of one OR-group: the first criterion that matched, if any."""
    group_id: str
    passed: bool
    matched_criterion: RuleCriterion | None = None
    matched_data: MatchedData | None = None

    def to_dict(self) -> dict:
        result = {"group_id": self.group_id, "passed": self.passed}
        if self.matched_criterion is not None:
            result["matched_criterion"] = self.matched_criterion.to_dict()
        if self.matched_data is not None:
            result["matched_data"] = self.matched_data.to_dict()
        return result


@dataclass
class RuleResult:
    """Result of one rule (AND across groups)."""
    rule_id: str
    rule_name: str
    rule_description: str
    passed: bool = False
    partial_match: bool = False
    groups: list[GroupResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "rule_description": self.rule_description,
            "passed": self.passed,
            "partial_match": self.partial_match,
            "groups": [g.to_dict() for g in self.groups],
        }


@dataclass
class ConditionResult:
    """Per-condition result.

    matched_rules holds the fully passed rules for a triggered condition, and
    the partially matched rules for a potential one.
    """
    condition_id: str
    condition_name: str
    condition_snomed: str = ""
    matched_rules: list[RuleResult] = field(default_factory=list)
    is_reportable: bool = False
    has_partial_match: bool = False

    def to_dict(self) -> dict:
        return {
            "condition_id": self.condition_id,
            "condition_name": self.condition_name,
            "condition_snomed": self.condition_snomed,
            "is_reportable": self.is_reportable,
            "has_partial_match": self.has_partial_match,
            "matched_rules": [r.to_dict() for r in self.matched_rules],
        }


@dataclass
class EvaluationResult:
    """Output of the evaluator for one patient record."""
    is_reportable: bool = False
    triggered_conditions: list[ConditionResult] = field(default_factory=list)
    potential_conditions: list[ConditionResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def status(self) -> ReportabilityStatus:
        if self.is_reportable:
            return ReportabilityStatus.REPORTABLE
        if self.potential_conditions:
            return ReportabilityStatus.POTENTIALLY_REPORTABLE
        return ReportabilityStatus.NOT_REPORTABLE

    def summary(self) -> str:
        """One-line status for status indicators and logs."""
        if self.is_reportable:
            names = [c.condition_name or c.condition_id for c in self.triggered_conditions]
            if len(names) <= 3:
                return f"REPORTABLE: {', '.join(names)}"
            return f"REPORTABLE: {len(names)} conditions"
        if self.potential_conditions:
            return "POTENTIALLY REPORTABLE"
        return "NOT REPORTABLE"

    def to_dict(self) -> dict:
        return {
            "is_reportable": self.is_reportable,
            "status": self.status.value,
            "triggered_conditions": [c.to_dict() for c in self.triggered_conditions],
            "potential_conditions": [c.to_dict() for c in self.potential_conditions],
            "warnings": list(self.warnings),
        }
