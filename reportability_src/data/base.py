"""Abstract base classes for the engine's external collaborators."""

from abc import ABC, abstractmethod

from ..models import PatientRecord


class BaseTerminologyClassifier(ABC):
    """Abstract base class for code-to-value-set classification."""

    @abstractmethod
    def lookup(self, code: str) -> frozenset[str]:
        """Return the value set identifiers (OIDs) a clinical code belongs to.

        Args:
            code: Clinical code (ICD-10-CM, SNOMED CT, LOINC, RxNorm...)

        Returns:
            Value set OIDs; empty when the code is unknown
        """
        pass


class BasePatientRecordAdapter(ABC):
    """Abstract base class for producing patient records from a data-entry surface."""

    @abstractmethod
    def capture(self) -> PatientRecord:
        """Produce a PatientRecord with value-set memberships resolved."""
        pass
