"""
Query executor for get/query/count commands.

Reads raw store nodes and filters them in memory; the store has no indices
for the benefit columns, so every query is a full scan of one node.

Path probing:
    The benefit collection has lived under different roots over time. A
    query for ``<path>`` is tried against ``realtime/<path>``, then ``<path>``,
    then the fallback root (``firestore``), in that order; the first node that
    exists is scanned.

Filter semantics:
    - Filters are ANDed
    - A record without the filtered field never matches
    - Strings compare case-insensitively for = and !=
    - Booleans and numbers are distinct types
    - Ordering across types (string vs number) never matches
"""

import logging
import operator
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..core.exceptions import UnsupportedOperationError
from ..core.logging_config import get_logger
from ..core.settings import settings
from ..models.commands import Command, Filter, FilterValue, OperationKind, Operator
from ..services.record_store.client import RecordStore

_ORDERING: Dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.LT: operator.lt,
    Operator.LTE: operator.le,
    Operator.GT: operator.gt,
    Operator.GTE: operator.ge,
}


def _type_family(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


def _values_equal(actual: Any, expected: FilterValue) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.casefold() == expected.casefold()
    if _type_family(actual) != _type_family(expected):
        return False
    return actual == expected


def filter_matches(record: Mapping[str, Any], flt: Filter) -> bool:
    """
    Evaluate one filter against a raw record.

    Args:
        record: Raw store document
        flt: Filter clause

    Returns:
        True if the record satisfies the clause
    """
    if record.get(flt.field) is None:
        return False

    actual = record[flt.field]

    if flt.operator is Operator.EQ:
        return _values_equal(actual, flt.value)
    if flt.operator is Operator.NEQ:
        return not _values_equal(actual, flt.value)

    family = _type_family(actual)
    if family is None or family != _type_family(flt.value):
        return False
    return _ORDERING[flt.operator](actual, flt.value)


def record_matches(record: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    return all(filter_matches(record, flt) for flt in filters)


def _looks_like_record(node: Mapping[str, Any]) -> bool:
    """A document has scalar fields; a collection maps ids to documents."""
    return not node or not all(isinstance(v, Mapping) for v in node.values())


class QueryExecutor:
    """
    Executes read commands against the record store.

    Attributes:
        fallback_root (str): Last root probed by query/count
        _store (RecordStore): Source of the data
    """

    def __init__(
        self,
        store: RecordStore,
        fallback_root: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        self._store = store
        self.fallback_root = fallback_root or settings.query_fallback_root
        self._logger = logger or get_logger(__name__)

    def candidate_paths(self, path: str) -> List[str]:
        """Ordered, de-duplicated roots probed for ``path``."""
        clean = path.strip("/")
        ordered = [f"realtime/{clean}", clean, self.fallback_root]
        return list(dict.fromkeys(p for p in ordered if p))

    async def _resolve_collection(self, path: str) -> Optional[Mapping[str, Any]]:
        for candidate in self.candidate_paths(path):
            self._logger.debug(f"Probing path: {candidate}")
            node = await self._store.fetch(candidate)
            if node is None:
                self._logger.debug(f"No data at {candidate}")
                continue
            if not isinstance(node, Mapping):
                self._logger.warning(f"Node at {candidate} is not a collection, skipping")
                continue
            self._logger.info(f"Resolved {path} to {candidate}", extra={"path": candidate})
            return node

        self._logger.warning(f"No data found for {path} under any probed root")
        return None

    async def get(self, path: str) -> Any:
        """
        Read a collection or a single document.

        Args:
            path: "collection" or "collection/documentId"

        Returns:
            The document (with ``id``) for a document path, the raw collection
            mapping otherwise; None when the node does not exist
        """
        node = await self._store.fetch(path)
        if node is None:
            self._logger.info(f"Nothing stored at {path}")
            return None

        _, _, document_id = path.strip("/").rpartition("/")
        if "/" in path.strip("/") and isinstance(node, Mapping) and _looks_like_record(node):
            return {**node, "id": document_id}

        return node

    async def query(self, path: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        """
        Return every record under ``path`` satisfying all ``filters``.

        Args:
            path: Collection name (e.g. "userBenefits")
            filters: Conjunctive filter clauses

        Returns:
            Matching records, each with its store key under ``id``
        """
        collection = await self._resolve_collection(path)
        if collection is None:
            return []

        results = [
            {**record, "id": key}
            for key, record in collection.items()
            if isinstance(record, Mapping) and record_matches(record, filters)
        ]

        self._logger.info(
            f"Query on {path} returned {len(results)} of {len(collection)} records",
            extra={"filters": [f.to_expression() for f in filters]}
        )
        return results

    async def count(self, path: str, filters: Sequence[Filter]) -> Dict[str, int]:
        """Same filtering as ``query``; returns ``{"count": N}``."""
        collection = await self._resolve_collection(path)
        if collection is None:
            return {"count": 0}

        total = sum(
            1
            for record in collection.values()
            if isinstance(record, Mapping) and record_matches(record, filters)
        )
        return {"count": total}

    async def execute(self, command: Command) -> Any:
        """
        Dispatch a non-analytics command.

        Raises:
            UnsupportedOperationError: For set/update, and for analytics commands
        """
        if command.operation is OperationKind.GET:
            return await self.get(command.path)
        if command.operation is OperationKind.QUERY:
            return await self.query(command.path, command.filters)
        if command.operation is OperationKind.COUNT:
            return await self.count(command.path, command.filters)

        raise UnsupportedOperationError(
            f"Operation '{command.operation.value}' is not supported",
            details={"command": command.to_string()}
        )
