"""
Feature flags for f3.

A feature flag enables one category of FTP operation. The set of flags is
closed: anything outside of `Feature` is rejected when parsing, so an
unknown flag can never reach the drivers.
"""

import logging
from enum import Enum
from typing import FrozenSet, Iterable, Iterator

from f3.errors import InvalidFeatureSpec

logger = logging.getLogger(__name__)

DEFAULT_FEATURE_SET = "ls"


class Feature(str, Enum):
    """Operations that can be enabled."""
    
    CHANGE_DIR = "cd"
    LIST = "ls"
    REMOVE_DIR = "rmdir"
    REMOVE = "rm"
    MOVE = "mv"
    MAKE_DIR = "mkdir"
    GET = "get"
    PUT = "put"
    
    @property
    def operation(self) -> str:
        """Name used in error messages, e.g. 'GET'."""
        return self.value.upper()


class FeatureFlags:
    """Immutable set of enabled features."""
    
    __slots__ = ("_features",)
    
    def __init__(self, features: Iterable[Feature] = ()):
        object.__setattr__(self, "_features", frozenset(Feature(f) for f in features))
    
    def __setattr__(self, name, value):
        raise AttributeError("FeatureFlags is immutable")
    
    def has(self, feature: Feature) -> bool:
        return feature in self._features
    
    @property
    def features(self) -> FrozenSet[Feature]:
        return self._features
    
    def to_spec(self) -> str:
        """Render the flags as a canonical comma separated spec."""
        return ",".join(f.value for f in Feature if f in self._features)
    
    def __contains__(self, feature: object) -> bool:
        return feature in self._features
    
    def __iter__(self) -> Iterator[Feature]:
        return (f for f in Feature if f in self._features)
    
    def __len__(self) -> int:
        return len(self._features)
    
    def __bool__(self) -> bool:
        return bool(self._features)
    
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeatureFlags):
            return NotImplemented
        return self._features == other._features
    
    def __hash__(self) -> int:
        return hash(self._features)
    
    def __repr__(self) -> str:
        return f"FeatureFlags({self.to_spec()!r})"


def parse_feature_set(spec: str) -> FeatureFlags:
    """
    Parse a comma separated feature specification.
    
    Args:
        spec: e.g. "ls,get,put" (case-insensitive)
        
    Returns:
        The parsed FeatureFlags
        
    Raises:
        InvalidFeatureSpec: If the spec is blank or contains an unknown
            (or empty) token
    """
    if spec is None or not spec.strip():
        raise InvalidFeatureSpec(spec or "")
    
    logger.debug(f"Trying to parse feature set: {spec!r}")
    features = set()
    for token in spec.split(","):
        try:
            features.add(Feature(token.strip().lower()))
        except ValueError:
            raise InvalidFeatureSpec(spec, token) from None
    return FeatureFlags(features)
