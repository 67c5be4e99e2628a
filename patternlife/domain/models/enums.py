"""Enumeration types for patternlife domain models."""

from enum import Enum, IntEnum


class PatternLevel(IntEnum):
    """Tenant-scoping level of a pattern.

    Levels are ordinal and a pattern's level never decreases:
        OBSERVATION: Minted from raw observations
        USER: Validated for a single user
        PROJECT: Validated across users of a project
        ORG: Validated across projects of an organization
        CROSS_ORG: Explicitly shared across organizations
        GLOBAL: Admin approved and anonymized
    """

    OBSERVATION = 0
    USER = 1
    PROJECT = 2
    ORG = 3
    CROSS_ORG = 4
    GLOBAL = 5


class PatternCategory(str, Enum):
    """Domain category of a pattern."""

    ASSESSMENT = "assessment"
    INCIDENT = "incident"
    PERMIT = "permit"
    AUDIT = "audit"
    ACTION = "action"


class RuleOperator(str, Enum):
    """Comparison operator of an applicability rule."""

    EQUALS = "equals"
    CONTAINS = "contains"
    MATCHES = "matches"


class ObservationOutcome(str, Enum):
    """What the user did with an offered pattern."""

    ACCEPTED = "accepted"
    MODIFIED = "modified"
    REJECTED = "rejected"


class ObservationSource(str, Enum):
    """How an observation entered the system."""

    LIVE = "live"  # Captured from a running session
    DIRECT = "direct"  # Created directly without a session


class ModificationType(str, Enum):
    """Kind of structural diff between offered and final structure."""

    ADD = "add"
    REMOVE = "remove"
    CHANGE = "change"


class GraduationFailure(str, Enum):
    """Why a graduation check or transition did not succeed."""

    NOT_FOUND = "not_found"
    MAX_LEVEL = "max_level"
    CRITERIA_NOT_MET = "criteria_not_met"
    INVALID_TRANSITION = "invalid_transition"
    APPROVAL_NOT_APPLICABLE = "approval_not_applicable"
