"""In-memory terminology classifier."""

import logging
from typing import Iterable, Mapping

from .base import BaseTerminologyClassifier

logger = logging.getLogger(__name__)


class MappingTerminologyClassifier(BaseTerminologyClassifier):
    """Classify codes using a prebuilt code -> value set OIDs mapping.

    The mapping is copied on construction; lookups never mutate it.
    """

    def __init__(self, mapping: Mapping[str, Iterable[str]] | None = None):
        self._index: dict[str, frozenset[str]] = {}
        for code, oids in (mapping or {}).items():
            key = str(code).strip()
            if not key:
                continue
            if isinstance(oids, str):
                oids = [oids]
            members = frozenset(o.strip() for o in oids if o and o.strip())
            self._index[key] = self._index.get(key, frozenset()) | members
        logger.debug(f"Terminology classifier indexed {len(self._index)} codes")

    def lookup(self, code: str) -> frozenset[str]:
        if not code:
            return frozenset()
        return self._index.get(str(code).strip(), frozenset())

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.strip() in self._index
