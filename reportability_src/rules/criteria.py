"""Criterion reference data and helpers.

Criterion types, the set of types that count as clinical evidence, and the
age-limit conversion used by demographic age criteria. Rule tables express
age limits in days, weeks, months or years; the unit is not a column of its
own and is inferred from the value set display name (e.g. "Age < 28 Days").
"""

import re
from enum import Enum


# =============================================================================
# Criterion Types
# =============================================================================

class CriterionType(str, Enum):
    """Closed set of criterion types found in the rule tables."""
    DIAGNOSIS = "diagnosis"
    PROBLEM = "problem"
    DEMOGRAPHIC_AGE = "demographic_age"
    LAB_TEST = "lab_test"
    LAB_ORDER = "lab_order"
    LAB_RESULT = "lab_result"
    MEDICATION = "medication"
    UNKNOWN = "unknown"  # Unrecognized type string; never matches


# Alternate spellings seen in authored rule tables
CRITERION_TYPE_ALIASES = {
    "demographic": CriterionType.DEMOGRAPHIC_AGE,
}

# Types whose presence makes a rule (or group) clinically meaningful.
# A rule built only from demographic criteria is a parsing artifact of the
# source tables and is never actionable.
CLINICAL_CRITERION_TYPES = frozenset({
    CriterionType.DIAGNOSIS,
    CriterionType.PROBLEM,
    CriterionType.LAB_TEST,
    CriterionType.LAB_ORDER,
    CriterionType.LAB_RESULT,
    CriterionType.MEDICATION,
})


def parse_criterion_type(raw: str | None) -> CriterionType:
    """Map a raw criteria_type cell onto CriterionType (UNKNOWN if unrecognized)."""
    text = (raw or "").strip().lower()
    if text in CRITERION_TYPE_ALIASES:
        return CRITERION_TYPE_ALIASES[text]
    try:
        return CriterionType(text)
    except ValueError:
        return CriterionType.UNKNOWN


def is_clinical_type(criterion_type: CriterionType) -> bool:
    return criterion_type in CLINICAL_CRITERION_TYPES


# =============================================================================
# Demographic Age Criteria
# =============================================================================

DAYS_PER_YEAR = 365.25
WEEKS_PER_YEAR = 52.14
MONTHS_PER_YEAR = 12.0

# Searched in order against the lowercased value set name; first hit wins.
AGE_UNIT_DIVISORS = (
    ("day", "days", DAYS_PER_YEAR),
    ("week", "weeks", WEEKS_PER_YEAR),
    ("month", "months", MONTHS_PER_YEAR),
)
DEFAULT_AGE_UNIT = "years"

# Authored limits may carry trailing text ("28days", "18 years")
_LEADING_NUMBER = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

AGE_OPERATORS = {
    "<": lambda age, limit: age < limit,
    "<=": lambda age, limit: age <= limit,
    ">": lambda age, limit: age > limit,
    ">=": lambda age, limit: age >= limit,
}


def parse_age_limit(value: str | None) -> float | None:
    """Parse the leading number of an age limit ("18 years" -> 18.0).

    Returns None when the value does not start with a number.
    """
    if value is None:
        return None
    match = _LEADING_NUMBER.match(str(value))
    if match is None:
        return None
    return float(match.group(0))


def infer_age_unit(value_set_name: str | None) -> tuple[str, float]:
    """Infer the unit of an age limit from the value set display name.

    Returns:
        (unit, divisor) where dividing the limit by divisor gives years
    """
    text = (value_set_name or "").lower()
    for needle, unit, divisor in AGE_UNIT_DIVISORS:
        if needle in text:
            return unit, divisor
    return DEFAULT_AGE_UNIT, 1.0


def age_limit_in_years(limit: float, value_set_name: str | None) -> tuple[float, str]:
    """Convert a raw age limit into years using the inferred unit."""
    unit, divisor = infer_age_unit(value_set_name)
    return limit / divisor, unit


def compare_age(age_years: int | float, operator: str, limit_years: float) -> bool:
    """Compare a patient's age against a limit. Unknown operators never match."""
    compare = AGE_OPERATORS.get((operator or "").strip())
    if compare is None:
        return False
    return compare(age_years, limit_years)
