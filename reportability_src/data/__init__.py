"""Record capture and terminology classification collaborators."""

from .base import BasePatientRecordAdapter, BaseTerminologyClassifier
from .form_adapter import FormDataAdapter
from .terminology import MappingTerminologyClassifier

__all__ = [
    "BasePatientRecordAdapter",
    "BaseTerminologyClassifier",
    "FormDataAdapter",
    "MappingTerminologyClassifier",
]
