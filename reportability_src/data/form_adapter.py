"""Patient record adapter for form-shaped data.

Turns the dict a case report form submits into a PatientRecord and resolves
every clinical code to its value sets through a terminology classifier:

- diagnosis, problem and medication codes
- lab test codes -> test_value_sets
- coded lab result values -> result_value_sets (a separate set; a lab item
  has two independently classified codes)

Expected shape (all keys optional):

    {
        "demographics": {"patient_id", "gender", "birth_date", "state", "zip_code"},
        "pregnancy": {"status", "estimated_delivery_date"},
        "diagnoses": [{"code", "name", "code_system"}],
        "problems": [{"code", "name", "status"}],
        "labs": [{"test_code", "test_name", "result_value", "result_kind",
                  "result_display", "interpretation"}],
        "medications": [{"code", "name"}],
    }
"""

import logging
from dataclasses import replace
from datetime import date

from ..models import PatientRecord
from .base import BasePatientRecordAdapter, BaseTerminologyClassifier

logger = logging.getLogger(__name__)


class FormDataAdapter(BasePatientRecordAdapter):
    """Build a resolved PatientRecord from form data.

    Args:
        form_data: Form-shaped dict (see module docstring)
        classifier: Terminology classifier used to resolve codes
        as_of: Date used to compute age (defaults to today)
    """

    def __init__(
        self,
        form_data: dict | None,
        classifier: BaseTerminologyClassifier,
        as_of: date | None = None,
    ):
        self.form_data = form_data or {}
        self.classifier = classifier
        self.as_of = as_of

    def capture(self) -> PatientRecord:
        record = PatientRecord.from_dict(self.form_data, as_of=self.as_of)
        lookup = self.classifier.lookup

        diagnoses = tuple(
            replace(d, value_sets=d.value_sets | lookup(d.code)) for d in record.diagnoses
        )
        problems = tuple(
            replace(p, value_sets=p.value_sets | lookup(p.code)) for p in record.problems
        )
        medications = tuple(
            replace(m, value_sets=m.value_sets | lookup(m.code)) for m in record.medications
        )
        labs = []
        for lab in record.labs:
            result_sets = lab.result_value_sets
            # Only coded results (e.g. organism SNOMED codes) can be classified
            if lab.result_kind == "coded" and lab.result_value:
                result_sets = result_sets | lookup(lab.result_value)
            labs.append(replace(
                lab,
                test_value_sets=lab.test_value_sets | lookup(lab.test_code),
                result_value_sets=result_sets,
            ))

        resolved = sum(1 for item in (*diagnoses, *problems, *medications) if item.value_sets)
        resolved += sum(1 for lab in labs if lab.test_value_sets or lab.result_value_sets)
        total = len(diagnoses) + len(problems) + len(medications) + len(labs)
        logger.debug(f"Resolved value sets for {resolved}/{total} clinical items")

        return replace(
            record,
            diagnoses=diagnoses,
            problems=problems,
            labs=tuple(labs),
            medications=medications,
        )
