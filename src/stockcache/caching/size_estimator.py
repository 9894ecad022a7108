"""
Approximate byte footprint of cached values.

Values are serialized to JSON and measured as UTF-8. Values JSON cannot represent
(arbitrary objects, cyclic containers) fall back to a length-based estimate.
"""

import json
from typing import Any

from ..logging_config import get_logger

logger = get_logger(__name__, 'size_estimator')

# Used when even repr() of a value fails
DEFAULT_ENTRY_SIZE = 1024

# Serialization failures that trigger the length-based fallback:
# TypeError for unsupported types, ValueError for circular references.
SERIALIZATION_ERRORS = (TypeError, ValueError, RecursionError)


def estimate_size(value: Any) -> int:
    """Estimate how many bytes ``value`` occupies. Never raises."""
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, memoryview):
        return value.nbytes

    try:
        return len(json.dumps(value).encode('utf-8'))
    except SERIALIZATION_ERRORS as e:
        logger.debug(
            f"Value of type {type(value).__name__} is not serializable, using length estimate: {e}",
            operation="estimate_size"
        )
        return fallback_size(value)


def fallback_size(value: Any) -> int:
    """Rough estimate from the value's textual length, two bytes per character."""
    try:
        return len(repr(value)) * 2
    except Exception as e:
        logger.warning(f"Could not estimate size for {type(value).__name__}: {e}", operation="estimate_size")
        return DEFAULT_ENTRY_SIZE
