"""Custom exceptions for patternlife.

Expected, data-dependent outcomes (unknown ids, invalid level transitions,
unmet graduation criteria) are returned as result values, not raised.
The exceptions below are reserved for configuration mistakes, malformed
input and contract violations.
"""

from __future__ import annotations


class PatternLifecycleError(Exception):
    """Base exception for patternlife."""

    pass


class ConfigError(PatternLifecycleError):
    """Raised when decay, clustering or graduation thresholds are malformed."""

    pass


class ValidationError(PatternLifecycleError):
    """Raised when input validation fails."""

    pass


class EmptyClusterError(PatternLifecycleError):
    """Raised when a pattern is requested from a cluster with no observations."""

    def __init__(self, cluster_id: str) -> None:
        self.cluster_id = cluster_id
        super().__init__(f"Cluster '{cluster_id}' has no observations")


class DatabaseError(PatternLifecycleError):
    """Raised when a database operation fails."""

    pass
