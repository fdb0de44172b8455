"""Patient record models for the reportability engine.

A PatientRecord is the normalized, read-only snapshot the evaluator works
against. Every clinical item already carries the value sets its code belongs
to; resolving codes to value sets is the job of a terminology classifier
(see reportability_src.data) and happens before a record reaches the engine.

Lab observations carry two independent membership sets: one for the test
code (LOINC) and one for the coded result value (e.g. an organism SNOMED
code). The two must never be merged.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

# SNOMED CT 77386006 |Pregnancy (finding)|
PREGNANT_STATUS_CODE = "77386006"


def _clean(value: Any) -> str:
    """Normalize a raw field value to a stripped string ("" when absent)."""
    if value is None:
        return ""
    return str(value).strip()


def _optional(value: Any) -> str | None:
    text = _clean(value)
    return text or None


def _value_sets(values: Any) -> frozenset[str]:
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(v.strip() for v in values if isinstance(v, str) and v.strip())


def parse_date(value: Any) -> date | None:
    """Parse an ISO date (or datetime) string. Returns None when unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def calculate_age(birth_date: date | None, as_of: date | None = None) -> int | None:
    """Whole years between birth_date and as_of (defaults to today).

    Returns None when there is no birth date or it lies in the future.
    """
    if birth_date is None:
        return None
    as_of = as_of or date.today()
    years = as_of.year - birth_date.year
    if (as_of.month, as_of.day) < (birth_date.month, birth_date.day):
        years -= 1
    if years < 0:
        return None
    return years


@dataclass(frozen=True)
class Demographics:
    """Patient demographics as captured on the case report form."""
    patient_id: str | None = None
    gender: str | None = None
    birth_date: date | None = None
    age: int | None = None  # Whole years
    state: str | None = None
    zip_code: str | None = None

    def to_dict(self) -> dict:
        return {
            "patient_id": self.patient_id,
            "gender": self.gender,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "age": self.age,
            "state": self.state,
            "zip_code": self.zip_code,
        }

    @classmethod
    def from_dict(cls, data: dict | None, as_of: date | None = None) -> "Demographics":
        data = data or {}
        birth_date = parse_date(data.get("birth_date") or data.get("dob"))
        age = data.get("age")
        if age is None or age == "":
            age = calculate_age(birth_date, as_of)
        else:
            try:
                age = int(age)
            except (TypeError, ValueError):
                age = calculate_age(birth_date, as_of)
        return cls(
            patient_id=_optional(data.get("patient_id") or data.get("id")),
            gender=_optional(data.get("gender")),
            birth_date=birth_date,
            age=age,
            state=_optional(data.get("state")),
            zip_code=_optional(data.get("zip_code") or data.get("zip")),
        )


@dataclass(frozen=True)
class Pregnancy:
    """Pregnancy status (SNOMED coded)."""
    status: str | None = None
    estimated_delivery_date: date | None = None

    @property
    def is_pregnant(self) -> bool:
        return self.status == PREGNANT_STATUS_CODE

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "is_pregnant": self.is_pregnant,
            "estimated_delivery_date": (
                self.estimated_delivery_date.isoformat()
                if self.estimated_delivery_date else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Pregnancy":
        data = data or {}
        return cls(
            status=_optional(data.get("status")),
            estimated_delivery_date=parse_date(data.get("estimated_delivery_date")),
        )


@dataclass(frozen=True)
class DiagnosisItem:
    """An encounter diagnosis (typically ICD-10-CM or SNOMED)."""
    code: str
    name: str | None = None
    code_system: str | None = None
    value_sets: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "code_system": self.code_system,
            "value_sets": sorted(self.value_sets),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DiagnosisItem":
        return cls(
            code=_clean(data.get("code")),
            name=_optional(data.get("name")),
            code_system=_optional(data.get("code_system")),
            value_sets=_value_sets(data.get("value_sets")),
        )


@dataclass(frozen=True)
class ProblemItem:
    """A problem list entry with its concern status (active, completed...)."""
    code: str
    name: str | None = None
    status: str | None = None
    value_sets: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "status": self.status,
            "value_sets": sorted(self.value_sets),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProblemItem":
        return cls(
            code=_clean(data.get("code")),
            name=_optional(data.get("name")),
            status=_optional(data.get("status")),
            value_sets=_value_sets(data.get("value_sets")),
        )


@dataclass(frozen=True)
class LabObservation:
    """A lab test with its result.

    test_value_sets classify the test code; result_value_sets classify the
    coded result value. They are resolved independently.
    """
    test_code: str
    test_name: str | None = None
    result_value: str | None = None
    result_kind: str | None = None  # coded, quantity, text
    result_display: str | None = None
    interpretation: str | None = None
    test_value_sets: frozenset[str] = field(default_factory=frozenset)
    result_value_sets: frozenset[str] = field(default_factory=frozenset)

    @property
    def result_code(self) -> str | None:
        """The coded result value, if the result is coded."""
        if self.result_kind == "coded":
            return self.result_value
        return None

    def to_dict(self) -> dict:
        return {
            "test_code": self.test_code,
            "test_name": self.test_name,
            "result_value": self.result_value,
            "result_kind": self.result_kind,
            "result_display": self.result_display,
            "interpretation": self.interpretation,
            "test_value_sets": sorted(self.test_value_sets),
            "result_value_sets": sorted(self.result_value_sets),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LabObservation":
        return cls(
            test_code=_clean(data.get("test_code")),
            test_name=_optional(data.get("test_name")),
            result_value=_optional(data.get("result_value")),
            result_kind=_optional(data.get("result_kind")),
            result_display=_optional(data.get("result_display")),
            interpretation=_optional(data.get("interpretation")),
            test_value_sets=_value_sets(data.get("test_value_sets")),
            result_value_sets=_value_sets(data.get("result_value_sets")),
        )


@dataclass(frozen=True)
class MedicationItem:
    """An administered or ordered medication (typically RxNorm)."""
    code: str
    name: str | None = None
    value_sets: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "value_sets": sorted(self.value_sets),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MedicationItem":
        return cls(
            code=_clean(data.get("code")),
            name=_optional(data.get("name")),
            value_sets=_value_sets(data.get("value_sets")),
        )


@dataclass(frozen=True)
class PatientRecord:
    """Normalized clinical record consumed by the reportability evaluator.

    Created fresh for each evaluation and never mutated by the engine.
    """
    demographics: Demographics = field(default_factory=Demographics)
    pregnancy: Pregnancy = field(default_factory=Pregnancy)
    diagnoses: tuple[DiagnosisItem, ...] = ()
    problems: tuple[ProblemItem, ...] = ()
    labs: tuple[LabObservation, ...] = ()
    medications: tuple[MedicationItem, ...] = ()

    @property
    def has_clinical_data(self) -> bool:
        return bool(self.diagnoses or self.problems or self.labs or self.medications)

    def to_dict(self) -> dict:
        return {
            "demographics": self.demographics.to_dict(),
            "pregnancy": self.pregnancy.to_dict(),
            "diagnoses": [d.to_dict() for d in self.diagnoses],
            "problems": [p.to_dict() for p in self.problems],
            "labs": [lab.to_dict() for lab in self.labs],
            "medications": [m.to_dict() for m in self.medications],
        }

    @classmethod
    def from_dict(cls, data: dict | None, as_of: date | None = None) -> "PatientRecord":
        """Build a record whose value-set memberships are already resolved.

        Items without a code are dropped.
        """
        data = data or {}
        return cls(
            demographics=Demographics.from_dict(data.get("demographics"), as_of=as_of),
            pregnancy=Pregnancy.from_dict(data.get("pregnancy")),
            diagnoses=tuple(
                item for item in (DiagnosisItem.from_dict(d) for d in data.get("diagnoses") or [])
                if item.code
            ),
            problems=tuple(
                item for item in (ProblemItem.from_dict(p) for p in data.get("problems") or [])
                if item.code
            ),
            labs=tuple(
                item for item in (LabObservation.from_dict(lab) for lab in data.get("labs") or [])
                if item.test_code
            ),
            medications=tuple(
                item for item in (MedicationItem.from_dict(m) for m in data.get("medications") or [])
                if item.code
            ),
        )
