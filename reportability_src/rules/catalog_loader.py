"""Rule catalog loading.

Builds the immutable Catalog from three flat tables:

    conditions: condition_id, condition_name, condition_snomed
    rules:      rule_id, condition_id, rule_name, rule_description
    criteria:   condition_id, rule_id, criteria_group, criteria_sequence,
                criteria_type, value_set_oid, value_set_name, code_system,
                ecelerate_field, operator, value

The tables are authored outside this project and may contain orphaned rows
(a rule whose condition is missing, a criterion whose rule is missing).
Such rows are skipped and counted; one bad row never aborts the load.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from ..config import Config
from .criteria import CriterionType, parse_criterion_type
from .schemas import (
    Catalog,
    CriterionGroup,
    LoadStats,
    ReportabilityRule,
    ReportableCondition,
    RuleCriterion,
)

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


class CatalogSourceError(Exception):
    """Raised when a catalog source file is missing or unreadable."""


def _cell(row: Row, key: str) -> str:
    """Read a cell as a stripped string; None/NaN become ""."""
    value = row.get(key)
    if value is None:
        return ""
    if isinstance(value, float) and value != value:  # NaN from pandas
        return ""
    return str(value).strip()


def build_criterion(row: Row) -> RuleCriterion:
    """Build a RuleCriterion from a criteria row."""
    raw_type = _cell(row, "criteria_type")
    return RuleCriterion(
        condition_id=_cell(row, "condition_id"),
        rule_id=_cell(row, "rule_id"),
        group_id=_cell(row, "criteria_group"),
        sequence=_cell(row, "criteria_sequence"),
        type=parse_criterion_type(raw_type),
        raw_type=raw_type,
        value_set_oid=_cell(row, "value_set_oid"),
        value_set_name=_cell(row, "value_set_name"),
        code_system=_cell(row, "code_system"),
        source_field=_cell(row, "ecelerate_field"),
        operator=_cell(row, "operator"),
        value=_cell(row, "value").lower(),
    )


class _RuleBuilder:
    """Mutable staging area for a rule while criteria rows are attached."""

    def __init__(self, rule_id: str, condition_id: str, name: str, description: str):
        self.rule_id = rule_id
        self.condition_id = condition_id
        self.name = name
        self.description = description
        self.groups: dict[str, list[RuleCriterion]] = {}

    def add_criterion(self, criterion: RuleCriterion) -> None:
        self.groups.setdefault(criterion.group_id, []).append(criterion)

    def build(self) -> ReportabilityRule:
        return ReportabilityRule(
            id=self.rule_id,
            condition_id=self.condition_id,
            name=self.name,
            description=self.description,
            groups=tuple(
                CriterionGroup(group_id=group_id, criteria=tuple(criteria))
                for group_id, criteria in self.groups.items()
            ),
        )


def load_catalog(
    condition_rows: Iterable[Row],
    rule_rows: Iterable[Row],
    criteria_rows: Iterable[Row],
) -> Catalog:
    """Build a Catalog in a single forward pass: conditions, rules, criteria.

    Args:
        condition_rows: Rows of the conditions table
        rule_rows: Rows of the rules table
        criteria_rows: Rows of the criteria table

    Returns:
        Immutable Catalog with LoadStats describing skipped rows
    """
    conditions: dict[str, dict[str, Any]] = {}
    rules: dict[tuple[str, str], _RuleBuilder] = {}
    skipped_conditions = skipped_rules = skipped_criteria = unknown_types = 0

    for row in condition_rows:
        if not isinstance(row, Mapping):
            logger.debug(f"Skipping condition row that is not a mapping: {row!r}")
            skipped_conditions += 1
            continue
        condition_id = _cell(row, "condition_id")
        if not condition_id or condition_id in conditions:
            logger.debug(f"Skipping condition row (blank or duplicate id): {condition_id!r}")
            skipped_conditions += 1
            continue
        conditions[condition_id] = {
            "name": _cell(row, "condition_name"),
            "snomed_code": _cell(row, "condition_snomed"),
            "rules": [],
        }

    for row in rule_rows:
        if not isinstance(row, Mapping):
            logger.debug(f"Skipping rule row that is not a mapping: {row!r}")
            skipped_rules += 1
            continue
        condition_id = _cell(row, "condition_id")
        rule_id = _cell(row, "rule_id")
        condition = conditions.get(condition_id)
        if condition is None:
            logger.debug(f"Skipping rule {rule_id!r}: unknown condition {condition_id!r}")
            skipped_rules += 1
            continue
        key = (condition_id, rule_id)
        if key in rules:
            logger.debug(f"Skipping duplicate rule {condition_id}/{rule_id}")
            skipped_rules += 1
            continue
        builder = _RuleBuilder(
            rule_id=rule_id,
            condition_id=condition_id,
            name=_cell(row, "rule_name"),
            description=_cell(row, "rule_description"),
        )
        rules[key] = builder
        condition["rules"].append(builder)

    for row in criteria_rows:
        if not isinstance(row, Mapping):
            logger.debug(f"Skipping criteria row that is not a mapping: {row!r}")
            skipped_criteria += 1
            continue
        key =(_cell(row, "condition_id"), _cell(row, "rule_id"))
        builder = rules.get(key)
        if builder is None:
            logger.debug(f"Skipping criterion: no rule {key[0]}/{key[1]}")
            skipped_criteria += 1
            continue
        criterion = build_criterion(row)
        if criterion.type is CriterionType.UNKNOWN:
            unknown_types += 1
            logger.debug(
                f"Criterion {key[0]}/{key[1]} has unrecognized type {criterion.raw_type!r}"
            )
        builder.add_criterion(criterion)

    stats = LoadStats(
        skipped_conditions=skipped_conditions,
        skipped_rules=skipped_rules,
        skipped_criteria=skipped_criteria,
        unknown_criterion_types=unknown_types,
    )
    catalog = Catalog(
        conditions=tuple(
            ReportableCondition(
                id=condition_id,
                name=data["name"],
                snomed_code=data["snomed_code"],
                rules=tuple(b.build() for b in data["rules"]),
            )
            for condition_id, data in conditions.items()
        ),
        stats=stats,
    )

    logger.info(
        f"Loaded {catalog.condition_count} conditions, {catalog.rule_count} rules, "
        f"{catalog.criterion_count} criteria"
    )
    if stats.skipped_rows or stats.unknown_criterion_types:
        logger.warning(
            f"Catalog load skipped {stats.skipped_rows} rows "
            f"({stats.skipped_conditions} conditions, {stats.skipped_rules} rules, "
            f"{stats.skipped_criteria} criteria); "
            f"{stats.unknown_criterion_types} criteria have unknown types"
        )
    return catalog


# =============================================================================
# File Sources
# =============================================================================

def read_table(path: str | Path) -> list[dict[str, str]]:
    """Read a CSV rule table as a list of row dicts with string values."""
    path = Path(path)
    if not path.exists():
        raise CatalogSourceError(f"Rule table not found: {path}")
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise CatalogSourceError(f"Could not read rule table {path}: {e}") from e
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient="records")


def load_catalog_from_csv(
    directory: str | Path,
    conditions_file: str | None = None,
    rules_file: str | None = None,
    criteria_file: str | None = None,
) -> Catalog:
    """Load the catalog from the three CSV tables in a directory."""
    directory = Path(directory)
    logger.info(f"Loading reportability rules from {directory}")
    return load_catalog(
        read_table(directory / (conditions_file or Config.CONDITIONS_FILE)),
        read_table(directory / (rules_file or Config.RULES_FILE)),
        read_table(directory / (criteria_file or Config.CRITERIA_FILE)),
    )


def load_catalog_from_json(path: str | Path) -> Catalog:
    """Load the catalog from one JSON document with conditions/rules/criteria arrays."""
    path = Path(path)
    if not path.exists():
        raise CatalogSourceError(f"Rules JSON not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CatalogSourceError(f"Invalid rules JSON {path}: {e}") from e
    if not isinstance(data, dict):
        raise CatalogSourceError(f"Rules JSON {path} must be an object")

    tables = {}
    for name in ("conditions", "rules", "criteria"):
        rows = data.get(name) or []
        if not isinstance(rows, list):
            raise CatalogSourceError(f"Rules JSON {path}: '{name}' must be an array")
        tables[name] = rows

    logger.info(f"Loading reportability rules from {path}")
    return load_catalog(tables["conditions"], tables["rules"], tables["criteria"])


def load_catalog_from_config() -> Catalog:
    """Load the catalog from whichever source Config points at.

    A JSON document takes precedence over a CSV directory.
    """
    logger.debug(f"Configured rules source: {Config.get_rules_source()}")
    if Config.is_json_catalog_configured():
        return load_catalog_from_json(Config.RULES_JSON_PATH)
    if Config.is_csv_catalog_configured():
        return load_catalog_from_csv(Config.RULES_DIR)
    raise CatalogSourceError(
        "No rules source configured: set REPORTABILITY_RULES_JSON or REPORTABILITY_RULES_DIR"
    )
