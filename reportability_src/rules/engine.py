"""Reportability rules engine.

Applies the rule catalog to a patient record and decides, per condition,
whether the record is reportable.

Decision Flow (per rule):
1. Rule has no criterion groups?
   -> Never passes
2. No clinically typed criterion anywhere in the rule (demographics only)?
   -> Non-actionable: neither passes nor partially matches
3. Evaluate each group (OR): first matching criterion satisfies the group
4. All groups satisfied?
   -> Rule PASSES
5. Otherwise, at least one satisfied group contains a clinical criterion?
   -> PARTIAL MATCH

A condition is triggered when any of its rules passes, and potential when
none passes but at least one partially matches. The record is reportable
when any condition is triggered.

Evaluation never raises for record content: anything that cannot be
checked is a non-match. Every match carries the record item that caused it.
"""

import logging

from ..models import PatientRecord
from .criteria import (
    CriterionType,
    age_limit_in_years,
    compare_age,
    parse_age_limit,
)
from .schemas import (
    NO_MATCH,
    Catalog,
    ConditionResult,
    CriterionGroup,
    CriterionMatch,
    EvaluationResult,
    GroupResult,
    MatchedData,
    ReportabilityRule,
    ReportableCondition,
    RuleCriterion,
    RuleResult,
)
from .trace import EvaluationEvent, EventHook, EventKind, log_event


class _EvaluationRun:
    """Per-call state: the event hook and warnings for one evaluation."""

    def __init__(self, hook: EventHook):
        self.hook = hook
        self.warnings: list[str] = []

    def emit(
        self,
        kind: str,
        level: int,
        message: str,
        criterion: RuleCriterion | None = None,
        rule: ReportabilityRule | None = None,
        group_id: str | None = None,
        **data,
    ) -> None:
        if criterion is not None:
            condition_id, rule_id = criterion.condition_id, criterion.rule_id
            group_id = group_id or criterion.group_id
            criterion_type = criterion.raw_type or criterion.type.value
        elif rule is not None:
            condition_id, rule_id, criterion_type = rule.condition_id, rule.id, None
        else:
            condition_id = rule_id = criterion_type = None
        self.hook(EvaluationEvent(
            kind=kind,
            level=level,
            message=message,
            condition_id=condition_id,
            rule_id=rule_id,
            group_id=group_id,
            criterion_type=criterion_type,
            data=data,
        ))

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)


class ReportabilityEvaluator:
    """Evaluate patient records against a rule catalog.

    The evaluator holds only the (immutable) catalog and the event hook, so a
    single instance can serve concurrent calls.
    """

    # Every CriterionType must have a checker; see the check below the class.
    _CHECKERS = {
        CriterionType.DIAGNOSIS: "_check_diagnosis",
        CriterionType.PROBLEM: "_check_problem",
        CriterionType.DEMOGRAPHIC_AGE: "_check_age",
        CriterionType.LAB_TEST: "_check_lab_test",
        CriterionType.LAB_ORDER: "_check_lab_test",
        CriterionType.LAB_RESULT: "_check_lab_result",
        CriterionType.MEDICATION: "_check_medication",
        CriterionType.UNKNOWN: "_check_unknown",
    }

    def __init__(self, catalog: Catalog, on_event: EventHook | None = None):
        self.catalog = catalog
        self.on_event = on_event or log_event

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(self, record: PatientRecord) -> EvaluationResult:
        """Evaluate a record against every condition in the catalog.

        Args:
            record: Patient record with value-set memberships resolved

        Returns:
            EvaluationResult with triggered and potential conditions
        """
        run = _EvaluationRun(self.on_event)
        result = EvaluationResult()

        for condition in self.catalog.conditions:
            condition_result = self._evaluate_condition(condition, record, run)
            if condition_result.is_reportable:
                result.is_reportable = True
                result.triggered_conditions.append(condition_result)
            elif condition_result.has_partial_match:
                result.potential_conditions.append(condition_result)

        result.warnings = run.warnings
        return result

    def evaluate_condition(
        self, condition: ReportableCondition, record: PatientRecord
    ) -> ConditionResult:
        return self._evaluate_condition(condition, record, _EvaluationRun(self.on_event))

    def evaluate_rule(self, rule: ReportabilityRule, record: PatientRecord) -> RuleResult:
        return self._evaluate_rule(rule, record, _EvaluationRun(self.on_event))

    def evaluate_group(self, group: CriterionGroup, record: PatientRecord) -> GroupResult:
        return self._evaluate_group(group, record, _EvaluationRun(self.on_event))

    def check_criterion(self, criterion: RuleCriterion, record: PatientRecord) -> CriterionMatch:
        return self._check_criterion(criterion, record, _EvaluationRun(self.on_event))

    # ------------------------------------------------------------------
    # Condition / rule / group logic
    # ------------------------------------------------------------------

    def _evaluate_condition(
        self,
        condition: ReportableCondition,
        record: PatientRecord,
        run: _EvaluationRun,
    ) -> ConditionResult:
        passed_rules = []
        partial_rules = []
        for rule in condition.rules:
            rule_result = self._evaluate_rule(rule, record, run)
            if rule_result.passed:
                passed_rules.append(rule_result)
            elif rule_result.partial_match:
                partial_rules.append(rule_result)

        is_reportable = bool(passed_rules)
        return ConditionResult(
            condition_id=condition.id,
            condition_name=condition.name,
            condition_snomed=condition.snomed_code,
            matched_rules=passed_rules if is_reportable else partial_rules,
            is_reportable=is_reportable,
            has_partial_match=bool(partial_rules),
        )

    def _evaluate_rule(
        self,
        rule: ReportabilityRule,
        record: PatientRecord,
        run: _EvaluationRun,
    ) -> RuleResult:
        result = RuleResult(
            rule_id=rule.id,
            rule_name=rule.name,
            rule_description=rule.description,
        )

        if not rule.groups:
            run.emit(EventKind.RULE_SKIPPED_EMPTY, logging.DEBUG,
                     "Rule has no criteria groups", rule=rule)
            return result

        # Demographic-only rules are parsing artifacts, not reporting triggers
        if not rule.is_actionable:
            run.emit(EventKind.RULE_NON_ACTIONABLE, logging.DEBUG,
                     "Rule has no clinical criteria", rule=rule)
            return result

        passed_groups = 0
        passed_clinical_groups = 0
        for group in rule.groups:
            group_result = self._evaluate_group(group, record, run)
            result.groups.append(group_result)
            if group_result.passed:
                passed_groups += 1
                if group.has_clinical_criteria:
                    passed_clinical_groups += 1

        result.passed = passed_groups == len(rule.groups)
        result.partial_match = not result.passed and passed_clinical_groups > 0

        if result.passed:
            run.emit(EventKind.RULE_PASSED, logging.INFO,
                     f"Rule passed ({passed_groups}/{len(rule.groups)} groups)", rule=rule)
        elif result.partial_match:
            run.emit(EventKind.RULE_PARTIAL_MATCH, logging.DEBUG,
                     f"Partial match ({passed_groups}/{len(rule.groups)} groups, "
                     f"{passed_clinical_groups} clinical)",
                     rule=rule,
                     passed_groups=passed_groups,
                     passed_clinical_groups=passed_clinical_groups)
        return result

    def _evaluate_group(
        self,
        group: CriterionGroup,
        record: PatientRecord,
        run: _EvaluationRun,
    ) -> GroupResult:
        for criterion in group.criteria:
            match = self._check_criterion(criterion, record, run)
            if match.matched:
                return GroupResult(
                    group_id=group.group_id,
                    passed=True,
                    matched_criterion=criterion,
                    matched_data=match.matched_data,
                )

        if group.criteria:
            first = group.criteria[0]
            run.emit(EventKind.GROUP_FAILED, logging.DEBUG,
                     f"No criterion matched ({len(group.criteria)} checked)",
                     criterion=first, group_id=group.group_id)
        return GroupResult(group_id=group.group_id, passed=False)

    def _check_criterion(
        self,
        criterion: RuleCriterion,
        record: PatientRecord,
        run: _EvaluationRun,
    ) -> CriterionMatch:
        checker = getattr(self, self._CHECKERS[criterion.type])
        try:
            match = checker(criterion, record, run)
        except (AttributeError, TypeError, ValueError) as e:
            run.emit(EventKind.CRITERION_ERROR, logging.WARNING,
                     f"Error checking criterion: {e}", criterion=criterion)
            return NO_MATCH

        if match.matched:
            run.emit(EventKind.CRITERION_MATCHED, logging.DEBUG,
                     f"Matched {criterion.type.value} {criterion.value_set_oid or criterion.value}",
                     criterion=criterion,
                     matched_data=match.matched_data.to_dict() if match.matched_data else {})
        return match

    # ------------------------------------------------------------------
    # Criterion checkers
    # ------------------------------------------------------------------

    def _check_diagnosis(self, criterion, record, run) -> CriterionMatch:
        if not criterion.value_set_oid:
            return NO_MATCH
        for diagnosis in record.diagnoses or ():
            if criterion.value_set_oid in diagnosis.value_sets:
                return CriterionMatch(True, MatchedData(
                    type=CriterionType.DIAGNOSIS.value,
                    code=diagnosis.code,
                    display=diagnosis.name or diagnosis.code,
                    code_system=diagnosis.code_system,
                    value_set_name=criterion.value_set_name or None,
                ))
        return NO_MATCH

    def _check_problem(self, criterion, record, run) -> CriterionMatch:
        if not criterion.value_set_oid:
            return NO_MATCH
        for problem in record.problems or ():
            if criterion.value_set_oid not in problem.value_sets:
                continue
            # criterion.value is lowercased at load time
            status = (problem.status or "").strip().lower()
            if criterion.value and status != criterion.value:
                continue
            return CriterionMatch(True, MatchedData(
                type=CriterionType.PROBLEM.value,
                code=problem.code,
                display=problem.name or problem.code,
                status=problem.status,
                value_set_name=criterion.value_set_name or None,
            ))
        return NO_MATCH

    def _check_age(self, criterion, record, run) -> CriterionMatch:
        demographics = record.demographics
        if demographics is None or demographics.age is None:
            return NO_MATCH

        limit = parse_age_limit(criterion.value)
        if limit is None:
            return NO_MATCH

        limit_years, unit = age_limit_in_years(limit, criterion.value_set_name)
        if not compare_age(demographics.age, criterion.operator, limit_years):
            return NO_MATCH

        return CriterionMatch(True, MatchedData(
            type=CriterionType.DEMOGRAPHIC_AGE.value,
            patient_age=demographics.age,
            operator=criterion.operator,
            limit=criterion.value,
            limit_years=limit_years,
            unit=unit,
        ))

    def _check_lab_test(self, criterion, record, run) -> CriterionMatch:
        """Lab test and lab order criteria match on the test code's value sets."""
        if not criterion.value_set_oid:
            return NO_MATCH
        for lab in record.labs or ():
            if criterion.value_set_oid in lab.test_value_sets:
                return CriterionMatch(True, MatchedData(
                    type=criterion.type.value,
                    code=lab.test_code,
                    display=lab.test_name or lab.test_code,
                    value_set_name=criterion.value_set_name or None,
                ))
        return NO_MATCH

    def _check_lab_result(self, criterion, record, run) -> CriterionMatch:
        """Lab result criteria match only on the result value's value sets."""
        if not criterion.value_set_oid:
            return NO_MATCH
        for lab in record.labs or ():
            if criterion.value_set_oid in lab.result_value_sets:
                return CriterionMatch(True, MatchedData(
                    type=CriterionType.LAB_RESULT.value,
                    test_code=lab.test_code,
                    test_display=lab.test_name or lab.test_code,
                    result_code=lab.result_code,
                    result_display=lab.result_display,
                    value_set_name=criterion.value_set_name or None,
                ))
        return NO_MATCH

    def _check_medication(self, criterion, record, run) -> CriterionMatch:
        if not criterion.value_set_oid:
            return NO_MATCH
        for medication in record.medications or ():
            if criterion.value_set_oid in medication.value_sets:
                return CriterionMatch(True, MatchedData(
                    type=CriterionType.MEDICATION.value,
                    code=medication.code,
                    display=medication.name or medication.code,
                    value_set_name=criterion.value_set_name or None,
                ))
        return NO_MATCH

    def _check_unknown(self, criterion, record, run) -> CriterionMatch:
        message = (
            f"Unknown criterion type '{criterion.raw_type}' in "
            f"{criterion.condition_id}/{criterion.rule_id}"
        )
        run.warn(message)
        run.emit(EventKind.UNKNOWN_CRITERION_TYPE, logging.WARNING, message,
                 criterion=criterion)
        return NO_MATCH


_unhandled = set(CriterionType) - set(ReportabilityEvaluator._CHECKERS)
if _unhandled:
    raise RuntimeError(
        f"No checker for criterion types: {sorted(t.value for t in _unhandled)}"
    )


def evaluate(
    record: PatientRecord,
    catalog: Catalog,
    on_event: EventHook | None = None,
) -> EvaluationResult:
    """Evaluate one record against a catalog."""
    return ReportabilityEvaluator(catalog, on_event=on_event).evaluate(record)
