"""Fix evidence, the manual review queue and the persisted audit trail."""

from .evidence import compute_report_hash, hash_content
from .review import get_audit_summary, transition
from .trail import load_audit_trail, save_audit_trail, update_review_status, verify_audit_trail

__all__ = [
    "compute_report_hash",
    "get_audit_summary",
    "hash_content",
    "load_audit_trail",
    "save_audit_trail",
    "transition",
    "update_review_status",
    "verify_audit_trail",
]
