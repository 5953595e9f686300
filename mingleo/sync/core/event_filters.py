# =============================================================================
# File: mingleo/sync/core/event_filters.py
# Description: Row filtering for topics and change events
# =============================================================================

"""
RowFilter

Column criteria shared by topics, the durable store and the realtime hub.

Supported criteria:
- plain value: column must equal value
- None: column must be null/missing
- {"$in": [...]}: value must be in list
- {"$ne": value}: not equal

Example:
    ```python
    criteria = {"chat_id": "c1", "message_id": {"$in": ["m1", "m2"]}}

    if RowFilter.matches(record, criteria):
        ...
    ```
"""

import logging
from typing import Any, Mapping, Optional

log = logging.getLogger("mingleo.sync.filters")


class RowFilter:
    """Column criteria matching"""

    @staticmethod
    def matches(record: Mapping[str, Any], criteria: Optional[Mapping[str, Any]]) -> bool:
        """Check if a row matches filter criteria"""
        if not criteria:
            return True

        for column, expected in criteria.items():
            if not RowFilter._match_value(record.get(column), expected):
                return False
        return True

    @staticmethod
    def covers(record: Mapping[str, Any], criteria: Optional[Mapping[str, Any]]) -> bool:
        """True when the record carries every filtered column (delete payloads often carry only the key)"""
        if not criteria:
            return True
        return all(column in record for column in criteria)

    @staticmethod
    def _match_value(value: Any, expected: Any) -> bool:
        if isinstance(expected, Mapping):
            if '$in' in expected:
                return value in expected['$in']
            if '$ne' in expected:
                return value != expected['$ne']
            log.warning(f"Unsupported filter operator: {list(expected)}")
            return False
        if expected is None:
            return value is None
        return value == expected

    @staticmethod
    def describe(criteria: Optional[Mapping[str, Any]]) -> str:
        """Stable, PostgREST-like description: ``chat_id=eq.c1,id=in.(a,b)``"""
        if not criteria:
            return "*"

        parts = []
        for column in sorted(criteria):
            expected = criteria[column]
            if isinstance(expected, Mapping) and '$in' in expected:
                values = ",".join(str(v) for v in expected['$in'])
                parts.append(f"{column}=in.({values})")
            elif isinstance(expected, Mapping) and '$ne' in expected:
                parts.append(f"{column}=neq.{expected['$ne']}")
            elif expected is None:
                parts.append(f"{column}=is.null")
            else:
                parts.append(f"{column}=eq.{expected}")
        return ",".join(parts)


# =============================================================================
# EOF
# =============================================================================
