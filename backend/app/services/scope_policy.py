"""Scope authorization: which data categories a consent's scopes unlock.

Pure functions, no store access.
"""

import enum
from collections.abc import Iterable


class DataCategory(str, enum.Enum):
    documents = "documents"
    emergency = "emergency"
    insights = "insights"
    timeline = "timeline"


# The timeline view is a restricted view of the same documents.
_IMPLIED_BY: dict[str, frozenset[str]] = {
    DataCategory.documents.value: frozenset({"documents", "timeline"}),
}


def is_permitted(granted_scopes: Iterable[str], requested: DataCategory | str) -> bool:
    """True only if a granted scope covers the requested category.

    There is no default grant: an unknown category or an empty scope set
    is always denied.
    """
    category = requested.value if isinstance(requested, DataCategory) else str(requested)
    granted = {s.value if isinstance(s, enum.Enum) else str(s) for s in granted_scopes}
    if category not in DataCategory.__members__:
        return False
    covering = _IMPLIED_BY.get(category, frozenset({category}))
    return not granted.isdisjoint(covering)
