"""MCP Server for patternlife.

Exposes the pattern lifecycle to agents and admins: observation capture,
quality reports, decay previews, orphan clustering, graduation status and
the approval queue.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError as ModelValidationError

from .container import get_container
from .domain.exceptions import DatabaseError, ValidationError
from .domain.models import (
    CreateObservationRequest,
    ObservationOutcome,
    PatternLevel,
    SectionPrediction,
    StructurePrediction,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================


def _parse_level(value: str | int | None) -> PatternLevel | None:
    """Parse a level given by name ("project") or number (2).

    Raises:
        ValidationError: If the value names no level.
    """
    if value is None or value == "":
        return None
    if isinstance(value, int) or str(value).isdigit():
        try:
            return PatternLevel(int(value))
        except ValueError as e:
            raise ValidationError(f"Unknown pattern level: {value}") from e
    try:
        return PatternLevel[str(value).strip().upper()]
    except KeyError as e:
        raise ValidationError(f"Unknown pattern level: {value}") from e


def _parse_outcome(value: str) -> ObservationOutcome:
    try:
        return ObservationOutcome(value.strip().lower())
    except ValueError as e:
        raise ValidationError(
            f"Unknown outcome: {value} (expected accepted, modified or rejected)"
        ) from e


def _build_structure(
    module_type: str, sections: list[dict[str, Any]] | None, confidence: float
) -> StructurePrediction:
    return StructurePrediction(
        module_type=module_type,
        sections=[SectionPrediction.model_validate(s) for s in sections or []],
        confidence=confidence,
    )


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _not_found(pattern_id: str) -> dict[str, Any]:
    return {"success": False, "error": f"Pattern not found: {pattern_id}"}


def _releases_database(
    fn: Callable[..., dict[str, Any]],
) -> Callable[..., dict[str, Any]]:
    """Release the KùzuDB file lock once the tool returns.

    A detached or scheduled sweeper can then open the database between
    tool calls. Database failures are returned as a tool error.
    """

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return fn(*args, **kwargs)
        except DatabaseError as e:
            logger.error(f"{fn.__name__} failed: {e}")
            return {"success": False, "error": str(e), "status": "database_error"}
        finally:
            get_container().release_database()

    return wrapper


# =============================================================================
# Server Setup
# =============================================================================

SERVER_INSTRUCTIONS = """\
patternlife learns reusable structure patterns from observed outcomes.

- Record every offered structure and what the user did with it
  (`pl_record_observation`). Unmatched observations are clustered into
  new patterns automatically.
- Report each use of a pattern with `pl_record_usage`; check quality
  with `pl_quality_report` and `pl_decay_preview`.
- Follow graduation with `pl_graduation_status` and
  `pl_graduation_candidates`; admins approve global promotion with
  `pl_pending_approvals` and `pl_approve_graduation`.
- Run maintenance with `pl_run_sweep`.
"""

mcp = FastMCP(
    "patternlife",
    instructions=SERVER_INSTRUCTIONS,
)


# =============================================================================
# Health Check Tools
# =============================================================================


@mcp.tool(name="pl_ping")
def ping() -> dict[str, Any]:
    """Health check - verify patternlife is running."""
    return {"status": "ok", "message": "patternlife is operational"}


# =============================================================================
# Observation Tools
# =============================================================================


@mcp.tool(name="pl_record_observation")
@_releases_database
def record_observation(
    input: str,
    company: str,
    outcome: str,
    module_type: str = "unknown",
    sections: list[dict[str, Any]] | None = None,
    final_sections: list[dict[str, Any]] | None = None,
    project: str | None = None,
    user: str | None = None,
    pattern_id: str | None = None,
    pattern_name: str | None = None,
    feedback: str | None = None,
    confidence: float = 0.0,
) -> dict[str, Any]:
    """Record what a user did with an offered structure.

    Args:
        input: The request that triggered the offer.
        company: Tenant the observation belongs to.
        outcome: accepted, modified or rejected.
        module_type: Module type of the offered structure.
        sections: Offered sections, each {name, fields: [{name, type, required}], order}.
        final_sections: Sections after the user's edits (for modified outcomes).
        project: Project name.
        user: User id.
        pattern_id: Pattern the offer came from. Omit when no pattern matched.
        pattern_name: Display name of that pattern.
        feedback: Free-text feedback from the user.
        confidence: Confidence of the offer (0-1).

    Returns:
        The observation id, its modifications and any patterns created by clustering.
    """
    container = get_container()
    try:
        prediction = _build_structure(module_type, sections, confidence)
        final_structure = (
            _build_structure(module_type, final_sections, confidence)
            if final_sections is not None
            else None
        )
        request = CreateObservationRequest(
            input=input,
            company=company,
            project=project,
            user=user,
            pattern_id=pattern_id,
            pattern_name=pattern_name,
            prediction=prediction,
            outcome=_parse_outcome(outcome),
            final_structure=final_structure,
            feedback=feedback,
        )
        observation, created = container.lifecycle_service.record_direct(request)
    except (ValidationError, ModelValidationError) as e:
        return {"success": False, "error": str(e)}

    return {
        "success": True,
        "observation_id": observation.id,
        "pattern_id": observation.pattern_id,
        "modifications": [_dump(m) for m in observation.modifications],
        "created_patterns": [
            {"id": p.id, "name": p.name, "usage_count": p.metadata.usage_count}
            for p in created
        ],
    }


@mcp.tool(name="pl_cluster_orphans")
@_releases_database
def cluster_orphans(company: str, dry_run: bool = False) -> dict[str, Any]:
    """Cluster a company's unmatched observations into new patterns.

    Args:
        company: Tenant whose orphan observations are clustered.
        dry_run: Only report the clusters that would become patterns.

    Returns:
        The qualifying clusters, or the patterns that were created.
    """
    service = get_container().lifecycle_service
    if dry_run:
        clusters = service.find_clusters(company)
        return {
            "success": True,
            "clusters": [
                {
                    "size": len(c.observations),
                    "acceptance_rate": round(c.acceptance_rate, 3),
                    "suggested_pattern_name": c.suggested_pattern_name,
                    "centroid": c.centroid,
                }
                for c in clusters
            ],
        }

    created = service.cluster_orphans(company)
    return {
        "success": True,
        "created_patterns": [
            {"id": p.id, "name": p.name, "description": p.description}
            for p in created
        ],
    }


# =============================================================================
# Quality Tools
# =============================================================================


@mcp.tool(name="pl_quality_report")
@_releases_database
def quality_report(pattern_id: str, threshold: int | None = None) -> dict[str, Any]:
    """Get the quality score of a pattern with its factor breakdown.

    Args:
        pattern_id: Pattern to score.
        threshold: Low-quality threshold (default from configuration).
    """
    report = get_container().lifecycle_service.quality_report(pattern_id, threshold)
    if report is None:
        return _not_found(pattern_id)
    return {"success": True, **_dump(report)}


@mcp.tool(name="pl_record_usage")
@_releases_database
def record_usage(pattern_id: str) -> dict[str, Any]:
    """Reinforce a pattern after it was used.

    Raises the quality score by the usage boost, counts the use and
    refreshes the confidence grounding.
    """
    pattern = get_container().lifecycle_service.boost_pattern(pattern_id)
    if pattern is None:
        return _not_found(pattern_id)
    return {
        "success": True,
        "pattern_id": pattern.id,
        "quality_score": pattern.quality_score,
        "usage_count": pattern.metadata.usage_count,
    }


@mcp.tool(name="pl_decay_preview")
@_releases_database
def decay_preview(
    pattern_id: str | None = None, threshold: int | None = None
) -> dict[str, Any]:
    """Preview how decay would change quality scores, without applying it.

    Args:
        pattern_id: Pattern to preview. When omitted, lists every pattern
            that decay would push below the threshold.
        threshold: Low-quality threshold (default from configuration).
    """
    service = get_container().lifecycle_service
    if pattern_id:
        preview = service.decay_preview(pattern_id, threshold)
        if preview is None:
            return _not_found(pattern_id)
        return {"success": True, "preview": _dump(preview)}

    decaying = service.decaying_patterns(threshold)
    return {
        "success": True,
        "decaying": [
            {"pattern_id": d.pattern.id, "name": d.pattern.name, **_dump(d.preview)}
            for d in decaying
        ],
    }


# =============================================================================
# Graduation Tools
# =============================================================================


@mcp.tool(name="pl_check_graduation")
@_releases_database
def check_graduation(pattern_id: str) -> dict[str, Any]:
    """Check whether a pattern can graduate to its next level."""
    result = get_container().lifecycle_service.check_graduation(pattern_id)
    return _dump(result)


@mcp.tool(name="pl_graduation_status")
@_releases_database
def graduation_status(pattern_id: str) -> dict[str, Any]:
    """Get graduation progress and the criteria still missing for a pattern."""
    status = get_container().lifecycle_service.graduation_status(pattern_id)
    if status is None:
        return _not_found(pattern_id)
    return {"success": True, **_dump(status)}


@mcp.tool(name="pl_graduation_candidates")
@_releases_database
def graduation_candidates(target_level: str | None = None) -> dict[str, Any]:
    """List patterns eligible to graduate.

    Args:
        target_level: Only candidates for this level (name or number).
    """
    try:
        level = _parse_level(target_level)
    except ValidationError as e:
        return {"success": False, "error": str(e)}

    candidates = get_container().lifecycle_service.graduation_candidates(level)
    return {"success": True, "candidates": [_dump(c) for c in candidates]}


@mcp.tool(name="pl_pending_approvals")
@_releases_database
def pending_approvals() -> dict[str, Any]:
    """List patterns waiting for admin approval to become global."""
    pending = get_container().lifecycle_service.pending_approvals()
    return {"success": True, "pending": [_dump(c) for c in pending]}


@mcp.tool(name="pl_approve_graduation")
@_releases_database
def approve_graduation(
    pattern_id: str, admin_user_id: str, comment: str | None = None
) -> dict[str, Any]:
    """Approve the promotion of a project-level pattern to global (admin action).

    The pattern is anonymized and becomes visible to every company.
    """
    result = get_container().lifecycle_service.approve_graduation(
        pattern_id, admin_user_id, comment
    )
    return _dump(result)


# =============================================================================
# Maintenance Tools
# =============================================================================


@mcp.tool(name="pl_run_sweep")
@_releases_database
def run_sweep(background: bool = False, enable_logging: bool = False) -> dict[str, Any]:
    """Run decay, clustering and graduation over all patterns.

    Args:
        background: Spawn a detached sweep worker instead of sweeping
            in-process. Only available with persistent (kuzu) storage.
        enable_logging: Write background worker logs to the data directory.
    """
    from .worker.process import (
        get_default_log_path,
        is_sweeper_running,
        spawn_detached_sweeper,
    )
    from .worker.sweep import LifecycleSweeper

    container = get_container()
    config = container.config

    if is_sweeper_running(config.sweep_lock_path):
        return {
            "success": True,
            "message": "Sweep worker is already running",
            "status": "already_running",
        }

    if background:
        if config.storage != "kuzu":
            return {
                "success": False,
                "error": "Background sweeps need persistent storage (PATTERNLIFE_STORAGE=kuzu)",
            }
        log_path = get_default_log_path(config.data_dir) if enable_logging else None
        # The worker needs the database; KùzuDB admits one read-write process
        container.release_database()
        spawned = spawn_detached_sweeper(log_file=log_path)
        return {
            "success": spawned,
            "status": "spawned" if spawned else "failed",
            "log_file": str(log_path) if log_path else None,
        }

    report = LifecycleSweeper(container=container).run()
    if report is None:
        return {
            "success": True,
            "message": "Sweep worker is already running",
            "status": "already_running",
        }
    if report.error:
        return {"success": False, "status": "failed", **report.to_dict()}
    return {"success": True, "status": "completed", **report.to_dict()}
