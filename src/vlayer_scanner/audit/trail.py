"""Audit trail persistence and integrity verification."""

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..config import vlayer_dir
from ..errors import AuditIntegrityError, ReviewNotFoundError
from ..models import AuditTrail, ManualReviewStatus
from ..storage import atomic_write_text
from ..timestamps import to_iso, utc_now
from .evidence import compute_report_hash
from .review import transition

logger = logging.getLogger(__name__)

AUDIT_TRAIL_FILENAME = "audit-trail.json"


def audit_trail_path(project_path: str | Path) -> Path:
    return vlayer_dir(project_path) / AUDIT_TRAIL_FILENAME


def create_audit_trail(project_path: str | Path, now: Optional[datetime] = None) -> AuditTrail:
    project_path = Path(project_path).resolve()
    trail = AuditTrail(
        id=str(uuid.uuid4()),
        project_path=str(project_path),
        project_name=project_path.name,
        created_at=to_iso(now or utc_now()),
    )
    return finalize_audit_trail(trail)


def finalize_audit_trail(trail: AuditTrail) -> AuditTrail:
    """Refresh the derived counts and the report hash."""
    return trail.model_copy(update={
        "auto_fixed_count": len(trail.evidence),
        "manual_review_count": len(trail.manual_reviews),
        "report_hash": compute_report_hash(trail.evidence, trail.manual_reviews),
    })


def verify_audit_trail(trail: AuditTrail) -> None:
    """Recompute the report hash and compare it to the stored one.

    Raises:
        AuditIntegrityError: If the hashes differ or no hash is stored.
    """
    expected = compute_report_hash(trail.evidence, trail.manual_reviews)
    if trail.report_hash != expected:
        raise AuditIntegrityError(
            f"Audit trail {trail.id} failed integrity verification",
            {"stored": trail.report_hash, "computed": expected},
        )


def load_audit_trail(project_path: str | Path, verify: bool = True) -> Optional[AuditTrail]:
    """Load ``.vlayer/audit-trail.json``; None if it does not exist.

    Raises:
        AuditIntegrityError: If the file is unparseable, or ``verify`` is set
            and its hash does not match.
    """
    path = audit_trail_path(project_path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        trail = AuditTrail.model_validate(raw)
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, ValidationError) as e:
        raise AuditIntegrityError(f"Audit trail {path} is corrupt", {"path": str(path), "error": str(e)}) from e

    if verify:
        verify_audit_trail(trail)
    return trail


def save_audit_trail(trail: AuditTrail, project_path: str | Path) -> Path:
    """Write the trail atomically, all or nothing."""
    path = audit_trail_path(project_path)
    atomic_write_text(path, json.dumps(trail.model_dump(mode="json"), indent=2))
    logger.info(f"Saved audit trail to {path} ({len(trail.evidence)} evidence, {len(trail.manual_reviews)} reviews)")
    return path


def update_review_status(
    trail: AuditTrail,
    review_id: str,
    status: ManualReviewStatus,
    assigned_to: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AuditTrail:
    """Return a trail with one review transitioned and the hash recomputed.

    Raises:
        ReviewNotFoundError: If no review has ``review_id``.
        InvalidTransitionError: If the transition is not allowed.
    """
    now = now or utc_now()
    for position, review in enumerate(trail.manual_reviews):
        if review.id == review_id:
            break
    else:
        raise ReviewNotFoundError(f"No manual review with id {review_id}", {"review_id": review_id})

    reviews = list(trail.manual_reviews)
    reviews[position] = transition(review, status, assigned_to, notes, now)
    logger.info(f"Review {review_id}: {review.status.value} -> {status.value}")
    return finalize_audit_trail(trail.model_copy(update={
        "manual_reviews": reviews,
        "updated_at": to_iso(now),
    }))
