"""Unit tests for the reportability rules engine.

Tests cover the two-level rule logic and its guards:
- AND across criterion groups, OR within a group
- Partial matches only when a clinical group is satisfied
- Demographic-only rules are never actionable
- Age limits expressed in days/weeks/months
- Lab test vs lab result value sets are never conflated
- Every match explains which record item caused it
"""

import json
import logging

import pytest

from reportability_src.models import (
    Demographics,
    DiagnosisItem,
    LabObservation,
    MedicationItem,
    PatientRecord,
    ProblemItem,
)
from reportability_src.rules import (
    CriterionType,
    EventCollector,
    EventKind,
    ReportabilityEvaluator,
    ReportabilityStatus,
    evaluate,
    load_catalog,
    null_hook,
)


def condition_row(condition_id, name, snomed=""):
    return {"condition_id": condition_id, "condition_name": name, "condition_snomed": snomed}


def rule_row(condition_id, rule_id, name="", description=""):
    return {
        "condition_id": condition_id,
        "rule_id": rule_id,
        "rule_name": name or f"Rule {rule_id}",
        "rule_description": description,
    }


def criterion_row(
    condition_id,
    rule_id,
    group,
    criteria_type,
    oid="",
    value_set_name="",
    operator="in_valueset",
    value="",
    sequence="1",
):
    return {
        "condition_id": condition_id,
        "rule_id": rule_id,
        "criteria_group": group,
        "criteria_sequence": sequence,
        "criteria_type": criteria_type,
        "value_set_oid": oid,
        "value_set_name": value_set_name,
        "code_system": "",
        "ecelerate_field": "",
        "operator": operator,
        "value": value,
    }


def record(age=None, diagnoses=(), problems=(), labs=(), medications=()):
    return PatientRecord(
        demographics=Demographics(patient_id="P1", age=age),
        diagnoses=tuple(diagnoses),
        problems=tuple(problems),
        labs=tuple(labs),
        medications=tuple(medications),
    )


def evaluator_for(conditions, rules, criteria, hook=null_hook):
    return ReportabilityEvaluator(load_catalog(conditions, rules, criteria), on_event=hook)


@pytest.fixture
def spina_bifida_evaluator():
    """Condition SB with one single-group diagnosis rule."""
    return evaluator_for(
        [condition_row("SB", "Spina Bifida", "67531005")],
        [rule_row("SB", "R1", "Spina bifida diagnosis")],
        [criterion_row("SB", "R1", "1", "diagnosis", oid="VS-SB",
                       value_set_name="Spina Bifida (Diagnosis)")],
    )


@pytest.fixture
def partial_evaluator():
    """Rule R2: diagnosis in VS-A AND age < 18 years."""
    return evaluator_for(
        [condition_row("C2", "Pediatric Condition")],
        [rule_row("C2", "R2")],
        [
            criterion_row("C2", "R2", "G1", "diagnosis", oid="VS-A"),
            criterion_row("C2", "R2", "G2", "demographic_age",
                          value_set_name="Age Under 18 Years", operator="<", value="18"),
        ],
    )


class TestScenarios:
    """End-to-end scenarios from the reporting rule tables."""

    def test_full_match_triggers_condition(self, spina_bifida_evaluator):
        """A diagnosis in the rule's value set triggers the condition."""
        rec = record(diagnoses=[
            DiagnosisItem(code="67531005", name="Spina bifida", value_sets=frozenset({"VS-SB"})),
        ])

        result = spina_bifida_evaluator.evaluate(rec)

        assert result.is_reportable is True
        assert result.status == ReportabilityStatus.REPORTABLE
        assert len(result.triggered_conditions) == 1
        condition = result.triggered_conditions[0]
        assert condition.condition_id == "SB"
        assert condition.condition_name == "Spina Bifida"
        rule = condition.matched_rules[0]
        assert rule.rule_id == "R1"
        assert rule.passed is True
        assert rule.partial_match is False
        assert result.potential_conditions == []

    def test_age_limit_in_days(self):
        """Age 0 years is below a 28 day limit (28 / 365.25 years)."""
        ev = evaluator_for(
            [condition_row("N", "Neonatal Condition")],
            [rule_row("N", "R1")],
            [
                criterion_row("N", "R1", "1", "diagnosis", oid="VS-N"),
                criterion_row("N", "R1", "2", "demographic_age",
                              value_set_name="Age Less Than 28 Days", operator="<", value="28"),
            ],
        )
        rec = record(age=0, diagnoses=[
            DiagnosisItem(code="X", value_sets=frozenset({"VS-N"})),
        ])

        result = ev.evaluate(rec)

        assert result.is_reportable is True
        age_group = result.triggered_conditions[0].matched_rules[0].groups[1]
        assert age_group.passed is True
        assert age_group.matched_data.unit == "days"
        assert age_group.matched_data.patient_age == 0
        assert age_group.matched_data.limit == "28"
        assert age_group.matched_data.limit_years == pytest.approx(28 / 365.25)

    def test_partial_match(self, partial_evaluator):
        """Clinical group met but age group not met -> potential condition."""
        rec = record(age=40, diagnoses=[
            DiagnosisItem(code="A1", value_sets=frozenset({"VS-A"})),
        ])

        result = partial_evaluator.evaluate(rec)

        assert result.is_reportable is False
        assert result.status == ReportabilityStatus.POTENTIALLY_REPORTABLE
        assert result.triggered_conditions == []
        assert len(result.potential_conditions) == 1
        potential = result.potential_conditions[0]
        assert potential.has_partial_match is True
        rule = potential.matched_rules[0]
        assert rule.passed is False
        assert rule.partial_match is True
        assert [g.passed for g in rule.groups] == [True, False]

    def test_no_clinical_data(self, spina_bifida_evaluator, partial_evaluator):
        """A record without clinical items is never reportable or potential."""
        for ev in (spina_bifida_evaluator, partial_evaluator):
            result = ev.evaluate(record(age=5))
            assert result.is_reportable is False
            assert result.potential_conditions == []
            assert result.status == ReportabilityStatus.NOT_REPORTABLE

    def test_lab_result_ignores_test_value_sets(self):
        """A lab result criterion never matches on the test code's value sets."""
        ev = evaluator_for(
            [condition_row("L", "Lab Condition")],
            [rule_row("L", "R1")],
            [criterion_row("L", "R1", "1", "lab_result", oid="VS-Y")],
        )
        rec = record(labs=[
            LabObservation(
                test_code="600-7",
                test_value_sets=frozenset({"VS-Y"}),
                result_value_sets=frozenset({"VS-OTHER"}),
            ),
        ])

        result = ev.evaluate(rec)

        assert result.is_reportable is False


class TestRuleLogic:
    """AND-of-OR semantics and the guards around it."""

    @pytest.fixture
    def two_group_evaluator(self):
        """Rule R1: (diagnosis VS-A OR medication VS-M) AND (lab test VS-L)."""
        return evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [
                criterion_row("C", "R1", "1", "diagnosis", oid="VS-A", sequence="1"),
                criterion_row("C", "R1", "1", "medication", oid="VS-M", sequence="2"),
                criterion_row("C", "R1", "2", "lab_test", oid="VS-L"),
            ],
        )

    def test_all_groups_required(self, two_group_evaluator):
        """Passing one group of two is not a pass."""
        rec = record(diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))])

        rule_result = two_group_evaluator.evaluate_rule(
            two_group_evaluator.catalog.conditions[0].rules[0], rec
        )

        assert rule_result.passed is False
        assert rule_result.partial_match is True

    def test_any_criterion_satisfies_group(self, two_group_evaluator):
        """The second criterion of a group can satisfy it."""
        rec = record(
            medications=[MedicationItem(code="123", name="Drug", value_sets=frozenset({"VS-M"}))],
            labs=[LabObservation(test_code="L1", test_value_sets=frozenset({"VS-L"}))],
        )

        result = two_group_evaluator.evaluate(rec)

        assert result.is_reportable is True
        first_group = result.triggered_conditions[0].matched_rules[0].groups[0]
        assert first_group.matched_criterion.type == CriterionType.MEDICATION
        assert first_group.matched_data.code == "123"
        assert first_group.matched_data.display == "Drug"

    def test_first_matching_criterion_reported(self, two_group_evaluator):
        """When several criteria match, the first in source order is reported."""
        rec = record(
            diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))],
            medications=[MedicationItem(code="123", value_sets=frozenset({"VS-M"}))],
            labs=[LabObservation(test_code="L1", test_value_sets=frozenset({"VS-L"}))],
        )

        result = two_group_evaluator.evaluate(rec)

        first_group = result.triggered_conditions[0].matched_rules[0].groups[0]
        assert first_group.matched_criterion.type == CriterionType.DIAGNOSIS

    def test_rule_without_groups_never_passes(self):
        """A rule with no criteria cannot pass."""
        ev = evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "EMPTY")],
            [],
        )
        result = ev.evaluate(record(age=1, diagnoses=[DiagnosisItem(code="A")]))

        assert result.is_reportable is False
        assert result.potential_conditions == []

    def test_demographic_only_rule_never_actionable(self):
        """A rule made only of age criteria neither passes nor partially matches."""
        ev = evaluator_for(
            [condition_row("D", "Demographic Artifact")],
            [rule_row("D", "R1")],
            [
                criterion_row("D", "R1", "1", "demographic_age",
                              value_set_name="Age Under 18 Years", operator="<", value="18"),
                criterion_row("D", "R1", "2", "demographic",
                              value_set_name="Age Over 1 Year", operator=">", value="1"),
            ],
        )

        for age in (0, 5, 17, 40, None):
            result = ev.evaluate(record(age=age))
            assert result.is_reportable is False
            assert result.potential_conditions == []

        rule_result = ev.evaluate_rule(ev.catalog.conditions[0].rules[0], record(age=5))
        assert rule_result.passed is False
        assert rule_result.partial_match is False
        assert rule_result.groups == []

    def test_demographic_group_alone_is_not_partial(self, partial_evaluator):
        """Only the age group passing does not make a partial match."""
        result = partial_evaluator.evaluate(record(age=10))

        assert result.is_reportable is False
        assert result.potential_conditions == []

    def test_mixed_rule_passes_normally(self, partial_evaluator):
        """Clinical and demographic groups both met -> rule passes."""
        rec = record(age=10, diagnoses=[DiagnosisItem(code="A1", value_sets=frozenset({"VS-A"}))])

        result = partial_evaluator.evaluate(rec)

        assert result.is_reportable is True

    def test_medication_group_counts_as_clinical(self):
        """A satisfied medication group produces a partial match."""
        ev = evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [
                criterion_row("C", "R1", "1", "medication", oid="VS-M"),
                criterion_row("C", "R1", "2", "lab_order", oid="VS-L"),
            ],
        )
        rec = record(medications=[MedicationItem(code="9", value_sets=frozenset({"VS-M"}))])

        result = ev.evaluate(rec)

        assert result.potential_conditions[0].matched_rules[0].partial_match is True

    def test_triggered_condition_lists_only_passed_rules(self):
        """A triggered condition does not list its partially matched rules."""
        ev = evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1"), rule_row("C", "R2")],
            [
                criterion_row("C", "R1", "1", "diagnosis", oid="VS-A"),
                criterion_row("C", "R1", "2", "diagnosis", oid="VS-MISSING"),
                criterion_row("C", "R2", "1", "diagnosis", oid="VS-A"),
            ],
        )
        rec = record(diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))])

        result = ev.evaluate(rec)

        condition = result.triggered_conditions[0]
        assert [r.rule_id for r in condition.matched_rules] == ["R2"]
        assert condition.has_partial_match is True
        assert result.potential_conditions == []

    @pytest.mark.parametrize("rec,passed,partial", [
        (record(age=10, diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))],
                labs=[LabObservation(test_code="L", test_value_sets=frozenset({"VS-L"}))]),
         True, False),
        (record(age=40, diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))]),
         False, True),
        (record(age=40), False, False),
    ])
    def test_group_order_does_not_change_outcome(self, rec, passed, partial):
        """Reversing the group order gives the same pass/partial outcome."""
        groups = [
            criterion_row("C", "R1", "1", "diagnosis", oid="VS-A"),
            criterion_row("C", "R1", "2", "demographic_age",
                          value_set_name="Age Under 18 Years", operator="<", value="18"),
            criterion_row("C", "R1", "3", "lab_test", oid="VS-L"),
        ]
        forward = evaluator_for([condition_row("C", "Condition")], [rule_row("C", "R1")], groups)
        reverse = evaluator_for([condition_row("C", "Condition")], [rule_row("C", "R1")],
                                list(reversed(groups)))

        for ev in (forward, reverse):
            rule_result = ev.evaluate_rule(ev.catalog.conditions[0].rules[0], rec)
            assert rule_result.passed is passed
            assert rule_result.partial_match is partial

        reverse_rule = reverse.catalog.conditions[0].rules[0]
        assert [g.group_id for g in reverse_rule.groups] == ["3", "2", "1"]

    def test_conditions_follow_catalog_order(self):
        """Triggered conditions appear in catalog order."""
        conditions = [condition_row(cid, cid) for cid in ("Z", "A", "M")]
        rules = [rule_row(cid, "R1") for cid in ("Z", "A", "M")]
        criteria = [criterion_row(cid, "R1", "1", "diagnosis", oid="VS-X") for cid in ("Z", "A", "M")]
        ev = evaluator_for(conditions, rules, criteria)
        rec = record(diagnoses=[DiagnosisItem(code="X", value_sets=frozenset({"VS-X"}))])

        result = ev.evaluate(rec)

        assert [c.condition_id for c in result.triggered_conditions] == ["Z", "A", "M"]


class TestCriterionMatching:
    """Per-type criterion checks and their explanations."""

    def _single(self, criteria_type, **kwargs):
        return evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [criterion_row("C", "R1", "1", criteria_type, **kwargs)],
        )

    def _criterion(self, ev):
        return ev.catalog.conditions[0].rules[0].groups[0].criteria[0]

    def test_diagnosis_explanation(self):
        """Diagnosis match reports code, display and value set name."""
        ev = self._single("diagnosis", oid="VS-D", value_set_name="Disease (Diagnosis)")
        rec = record(diagnoses=[
            DiagnosisItem(code="B05.9", name="Measles", code_system="ICD-10-CM",
                          value_sets=frozenset({"VS-D"})),
        ])

        match = ev.check_criterion(self._criterion(ev), rec)

        assert match.matched is True
        assert match.matched_data.to_dict() == {
            "type": "diagnosis",
            "code": "B05.9",
            "display": "Measles",
            "code_system": "ICD-10-CM",
            "value_set_name": "Disease (Diagnosis)",
        }

    def test_diagnosis_display_falls_back_to_code(self):
        """Unnamed diagnoses display their code."""
        ev = self._single("diagnosis", oid="VS-D")
        rec = record(diagnoses=[DiagnosisItem(code="B05.9", value_sets=frozenset({"VS-D"}))])

        match = ev.check_criterion(self._criterion(ev), rec)

        assert match.matched_data.display == "B05.9"

    def test_problem_status_case_insensitive(self):
        """Problem status comparison ignores case."""
        ev = self._single("problem", oid="VS-P", operator="equals", value="Active")
        rec = record(problems=[
            ProblemItem(code="P1", status="ACTIVE", value_sets=frozenset({"VS-P"})),
        ])

        match = ev.check_criterion(self._criterion(ev), rec)

        assert match.matched is True
        assert match.matched_data.status == "ACTIVE"

    def test_problem_status_mismatch(self):
        """A problem with a different status does not match."""
        ev = self._single("problem", oid="VS-P", operator="equals", value="active")
        rec = record(problems=[
            ProblemItem(code="P1", status="completed", value_sets=frozenset({"VS-P"})),
        ])

        assert ev.check_criterion(self._criterion(ev), rec).matched is False

    def test_problem_without_status_value_matches_any_status(self):
        """No comparison value -> any status matches."""
        ev = self._single("problem", oid="VS-P")
        rec = record(problems=[
            ProblemItem(code="P1", status=None, value_sets=frozenset({"VS-P"})),
        ])

        assert ev.check_criterion(self._criterion(ev), rec).matched is True

    @pytest.mark.parametrize("operator,value,age,expected", [
        ("<", "18", 17, True),
        ("<", "18", 18, False),
        ("<=", "18", 18, True),
        (">", "65", 66, True),
        (">", "65", 65, False),
        (">=", "65", 65, True),
        ("in_valueset", "65", 70, False),
    ])
    def test_age_operators(self, operator, value, age, expected):
        """Age comparisons against limits in years."""
        ev = self._single("demographic_age", value_set_name="Age In Years",
                          operator=operator, value=value)

        match = ev.check_criterion(self._criterion(ev), record(age=age))

        assert match.matched is expected

    def test_age_limit_in_months(self):
        """Age 1 is not below 6 months; age 0 is."""
        ev = self._single("demographic_age", value_set_name="Age < 6 Months",
                          operator="<", value="6")

        assert ev.check_criterion(self._criterion(ev), record(age=1)).matched is False
        match = ev.check_criterion(self._criterion(ev), record(age=0))
        assert match.matched is True
        assert match.matched_data.unit == "months"
        assert match.matched_data.limit_years == pytest.approx(0.5)

    def test_age_limit_in_weeks(self):
        """Week limits divide by 52.14."""
        ev = self._single("demographic_age", value_set_name="Age <= 104 weeks",
                          operator="<=", value="104")

        match = ev.check_criterion(self._criterion(ev), record(age=1))

        assert match.matched is True
        assert match.matched_data.unit == "weeks"
        assert match.matched_data.limit_years == pytest.approx(104 / 52.14)

    def test_age_non_numeric_limit(self):
        """Unparsable limits never match."""
        ev = self._single("demographic_age", operator="<", value="eighteen")

        assert ev.check_criterion(self._criterion(ev), record(age=1)).matched is False

    def test_age_limit_with_trailing_text(self):
        """A limit such as "18 years" uses its leading number."""
        ev = evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [
                criterion_row("C", "R1", "1", "diagnosis", oid="VS"),
                criterion_row("C", "R1", "2", "demographic_age",
                              value_set_name="Age Under 18", operator="<", value="18 years"),
            ],
        )
        rec = record(age=5, diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS"}))])

        result = ev.evaluate(rec)

        assert result.is_reportable is True
        assert result.potential_conditions == []

    def test_age_unknown(self):
        """A record without an age never matches an age criterion."""
        ev = self._single("demographic_age", operator="<", value="18")

        assert ev.check_criterion(self._criterion(ev), record(age=None)).matched is False

    def test_lab_test_and_lab_order(self):
        """Lab test and lab order both match on test value sets."""
        rec = record(labs=[
            LabObservation(test_code="94500-6", test_name="SARS-CoV-2 RNA",
                           test_value_sets=frozenset({"VS-T"})),
        ])
        for criteria_type in ("lab_test", "lab_order"):
            ev = self._single(criteria_type, oid="VS-T")
            match = ev.check_criterion(self._criterion(ev), rec)
            assert match.matched is True
            assert match.matched_data.type == criteria_type
            assert match.matched_data.code == "94500-6"
            assert match.matched_data.display == "SARS-CoV-2 RNA"

    def test_lab_test_ignores_result_value_sets(self):
        """A lab test criterion never matches on result value sets."""
        ev = self._single("lab_test", oid="VS-R")
        rec = record(labs=[
            LabObservation(test_code="T", result_value_sets=frozenset({"VS-R"})),
        ])

        assert ev.check_criterion(self._criterion(ev), rec).matched is False

    def test_lab_result_explanation(self):
        """Lab result match reports both the test and the result."""
        ev = self._single("lab_result", oid="VS-R")
        rec = record(labs=[
            LabObservation(
                test_code="625-4",
                test_name="Stool culture",
                result_value="27268008",
                result_kind="coded",
                result_display="Salmonella",
                result_value_sets=frozenset({"VS-R"}),
            ),
        ])

        match = ev.check_criterion(self._criterion(ev), rec)

        assert match.matched is True
        data = match.matched_data
        assert data.test_code == "625-4"
        assert data.test_display == "Stool culture"
        assert data.result_code == "27268008"
        assert data.result_display == "Salmonella"

    def test_lab_result_code_only_for_coded_results(self):
        """A quantity result is never reported as a result code."""
        ev = self._single("lab_result", oid="VS-R")
        rec = record(labs=[
            LabObservation(
                test_code="2345-7",
                result_value="7.2",
                result_kind="quantity",
                result_display="7.2 mmol/L",
                result_value_sets=frozenset({"VS-R"}),
            ),
        ])

        match = ev.check_criterion(self._criterion(ev), rec)

        assert match.matched is True
        assert match.matched_data.result_code is None
        assert match.matched_data.result_display == "7.2 mmol/L"
        assert "result_code" not in match.matched_data.to_dict()

    def test_blank_value_set_never_matches(self):
        """Criteria without a value set id cannot match anything."""
        ev = self._single("diagnosis", oid="")
        rec = record(diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({""}))])

        assert ev.check_criterion(self._criterion(ev), rec).matched is False


class TestUnknownCriterionTypes:
    """Unknown criterion types are warnings, never failures."""

    @pytest.fixture
    def collector(self):
        return EventCollector()

    @pytest.fixture
    def evaluator(self, collector):
        return evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [
                criterion_row("C", "R1", "1", "immunization", oid="VS-I"),
                criterion_row("C", "R1", "1", "diagnosis", oid="VS-A", sequence="2"),
            ],
            hook=collector,
        )

    def test_unknown_type_is_non_match_with_warning(self, evaluator, collector):
        """The unknown criterion is skipped and reported once."""
        rec = record(diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))])

        result = evaluator.evaluate(rec)

        assert result.is_reportable is True
        assert result.warnings == ["Unknown criterion type 'immunization' in C/R1"]
        events = collector.of_kind(EventKind.UNKNOWN_CRITERION_TYPE)
        assert len(events) == 1
        assert events[0].level == logging.WARNING
        assert events[0].criterion_type == "immunization"

    def test_unknown_type_alone_never_matches(self, collector):
        """A group with only an unknown criterion fails."""
        ev = evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [
                criterion_row("C", "R1", "1", "diagnosis", oid="VS-A"),
                criterion_row("C", "R1", "2", "vaccine", oid="VS-V"),
            ],
            hook=collector,
        )
        rec = record(diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))])

        result = ev.evaluate(rec)

        assert result.is_reportable is False
        assert result.potential_conditions[0].condition_id == "C"


class TestEvaluationContract:
    """Purity, idempotence and observability."""

    @pytest.fixture
    def evaluator(self):
        return evaluator_for(
            [condition_row("C1", "First"), condition_row("C2", "Second")],
            [rule_row("C1", "R1"), rule_row("C2", "R1")],
            [
                criterion_row("C1", "R1", "1", "diagnosis", oid="VS-A"),
                criterion_row("C2", "R1", "1", "problem", oid="VS-P", value="active"),
                criterion_row("C2", "R1", "2", "lab_result", oid="VS-R"),
            ],
        )

    @pytest.fixture
    def rec(self):
        return record(
            age=3,
            diagnoses=[DiagnosisItem(code="A", value_sets=frozenset({"VS-A"}))],
            problems=[ProblemItem(code="P", status="active", value_sets=frozenset({"VS-P"}))],
        )

    def test_idempotent(self, evaluator, rec):
        """Repeated evaluation yields byte-identical JSON."""
        first = json.dumps(evaluator.evaluate(rec).to_dict(), sort_keys=True)
        second = json.dumps(evaluator.evaluate(rec).to_dict(), sort_keys=True)

        assert first == second

    def test_inputs_not_mutated(self, evaluator, rec):
        """Neither the record nor the catalog changes during evaluation."""
        record_before = json.dumps(rec.to_dict(), sort_keys=True)
        catalog_before = json.dumps(evaluator.catalog.to_dict(), sort_keys=True)
        rules_before = [r.to_dict() for c in evaluator.catalog.conditions for r in c.rules]

        evaluator.evaluate(rec)

        assert json.dumps(rec.to_dict(), sort_keys=True) == record_before
        assert json.dumps(evaluator.catalog.to_dict(), sort_keys=True) == catalog_before
        assert [r.to_dict() for c in evaluator.catalog.conditions for r in c.rules] == rules_before

    def test_module_level_evaluate(self, evaluator, rec):
        """evaluate() matches the evaluator method."""
        direct = evaluator.evaluate(rec).to_dict()
        functional = evaluate(rec, evaluator.catalog, on_event=null_hook).to_dict()

        assert direct == functional

    def test_result_shape(self, evaluator, rec):
        """Triggered and potential conditions are reported separately."""
        result = evaluator.evaluate(rec)
        data = result.to_dict()

        assert data["is_reportable"] is True
        assert data["status"] == "reportable"
        assert [c["condition_id"] for c in data["triggered_conditions"]] == ["C1"]
        assert [c["condition_id"] for c in data["potential_conditions"]] == ["C2"]
        group = data["triggered_conditions"][0]["matched_rules"][0]["groups"][0]
        assert group["passed"] is True
        assert group["matched_criterion"]["value_set_oid"] == "VS-A"
        assert group["matched_data"]["code"] == "A"
        failed = data["potential_conditions"][0]["matched_rules"][0]["groups"][1]
        assert failed == {"group_id": "2", "passed": False}

    def test_summary(self, evaluator, rec):
        """Summary names triggered conditions."""
        assert evaluator.evaluate(rec).summary() == "REPORTABLE: First"
        assert evaluator.evaluate(record()).summary() == "NOT REPORTABLE"

    def test_events_emitted(self, rec):
        """Matches and rule outcomes are reported through the hook."""
        collector = EventCollector()
        ev = evaluator_for(
            [condition_row("C1", "First")],
            [rule_row("C1", "R1")],
            [criterion_row("C1", "R1", "1", "diagnosis", oid="VS-A")],
            hook=collector,
        )

        ev.evaluate(rec)

        matched = collector.of_kind(EventKind.CRITERION_MATCHED)
        assert len(matched) == 1
        assert matched[0].condition_id == "C1"
        assert matched[0].rule_id == "R1"
        assert matched[0].data["matched_data"]["code"] == "A"
        assert matched[0].to_dict()["level"] == "DEBUG"
        assert len(collector.of_kind(EventKind.RULE_PASSED)) == 1

    def test_malformed_record_item_is_non_match(self):
        """A record item of the wrong shape is reported, not raised."""
        collector = EventCollector()
        ev = evaluator_for(
            [condition_row("C", "Condition")],
            [rule_row("C", "R1")],
            [criterion_row("C", "R1", "1", "diagnosis", oid="VS-A")],
            hook=collector,
        )
        rec = PatientRecord(diagnoses=("not-a-diagnosis",))

        result = ev.evaluate(rec)

        assert result.is_reportable is False
        assert len(collector.of_kind(EventKind.CRITERION_ERROR)) == 1
