"""
Cache invalidation criteria.

Criteria select entries for grouped removal by key pattern, tag, age or explicit
key list. Supplied criteria are OR'ed. Only criteria with no field supplied at all
select everything; a supplied but empty tag or key list selects nothing.
"""

import re
from dataclasses import dataclass, fields
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Pattern, Union

from .cache_store import CacheEntry, CacheStore


@dataclass
class InvalidationCriteria:
    """Cache invalidation criteria configuration."""
    key_pattern: Optional[Union[str, Pattern]] = None
    tags: Optional[FrozenSet[str]] = None
    max_age: Optional[float] = None  # milliseconds
    keys: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        if isinstance(self.key_pattern, str):
            self.key_pattern = re.compile(self.key_pattern)
        self.tags = _as_frozenset(self.tags)
        self.keys = _as_frozenset(self.keys)

    @classmethod
    def from_value(cls, criteria: Any = None, **kwargs) -> 'InvalidationCriteria':
        """Build criteria from an instance, a mapping, or keyword arguments."""
        if isinstance(criteria, cls):
            if kwargs:
                raise TypeError("Pass either an InvalidationCriteria or keyword criteria, not both")
            return criteria

        if criteria is None:
            options = {}
        elif isinstance(criteria, Mapping):
            options = dict(criteria)
        else:
            raise TypeError(f"Unsupported invalidation criteria: {type(criteria).__name__}")
        options.update(kwargs)

        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise TypeError(f"Unknown invalidation criteria: {', '.join(sorted(unknown))}")

        return cls(**options)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def matches(self, key: str, entry: CacheEntry, now: float) -> bool:
        """Check whether an entry satisfies any of the criteria."""
        if self.is_empty():
            return True

        if self.key_pattern is not None and self.key_pattern.search(key):
            return True

        if self.tags is not None and not self.tags.isdisjoint(entry.tags):
            return True

        if self.max_age is not None and entry.age(now) > self.max_age:
            return True

        return self.keys is not None and key in self.keys

    def select(self, store: CacheStore, now: float) -> List[str]:
        """Keys of ``store`` selected by these criteria."""
        return [key for key, entry in store if self.matches(key, entry, now)]

    def describe(self) -> dict:
        return {
            'key_pattern': self.key_pattern.pattern if self.key_pattern is not None else None,
            'tags': sorted(self.tags) if self.tags is not None else None,
            'max_age': self.max_age,
            'keys': sorted(self.keys) if self.keys is not None else None,
        }


def _as_frozenset(values: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    if values is None:
        return None
    if isinstance(values, str):
        return frozenset([values])
    return frozenset(values)
