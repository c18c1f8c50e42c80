"""Data retention rules: premature deletion, bulk deletes, caching PHI."""

import re

from ..models import ComplianceCategory, Confidence, Severity
from .rules import CODE_EXTENSIONS, LineRule

RETENTION_REFERENCE = "§164.530(j)"

# Six years, the HIPAA documentation retention minimum
MIN_RETENTION_DAYS = 2190


def is_short_retention(match: re.Match, line: str) -> bool:
    value = int(match.group(1))
    unit = match.group(2).lower()
    if unit == "day":
        return value < MIN_RETENTION_DAYS
    return unit in ("hour", "minute")


def _retention_rule(**kwargs) -> LineRule:
    return LineRule(
        category=ComplianceCategory.data_retention,
        regulatory_reference=RETENTION_REFERENCE,
        extensions=CODE_EXTENSIONS + (".sql", ".yaml", ".yml"),
        **kwargs,
    )


RETENTION_RULES: tuple[LineRule, ...] = (
    _retention_rule(
        id="retention-short-retention",
        patterns=(r"deleteAfter\s*[:=]\s*(\d+)\s*(day|hour|minute)",),
        match_check=is_short_retention,
        severity=Severity.high,
        title="PHI retention period may be too short",
        description="Data deletion configured with period shorter than HIPAA requirements.",
        recommendation="HIPAA requires PHI retention for 6 years from creation or last effective date.",
    ),
    _retention_rule(
        id="retention-unlogged-delete",
        patterns=(r"\.delete\s*\(\s*\)(?!.*audit|.*log)",),
        severity=Severity.medium,
        confidence=Confidence.medium,
        title="Data deletion without apparent logging",
        description="Data deletion operation without visible audit logging.",
        recommendation="Log all PHI deletions with timestamp, user, and record identifiers.",
    ),
    _retention_rule(
        id="retention-bulk-delete",
        patterns=(r"truncate\s+table|drop\s+table",),
        severity=Severity.critical,
        title="Bulk data deletion operation",
        description="Bulk deletion (TRUNCATE/DROP) could delete PHI without proper retention.",
        recommendation="Implement soft-delete with retention periods before permanent deletion.",
    ),
    _retention_rule(
        id="retention-backup-disabled",
        patterns=(r"backup.*disable|disable.*backup",),
        severity=Severity.high,
        title="Backup may be disabled",
        description="Code pattern suggests backups might be disabled.",
        recommendation="Maintain encrypted backups with proper retention for disaster recovery.",
    ),
    _retention_rule(
        id="retention-phi-cache",
        patterns=(r"cache.*patient|patient.*cache",),
        severity=Severity.medium,
        confidence=Confidence.medium,
        title="PHI caching detected",
        description="Patient data may be cached, requiring retention policy consideration.",
        recommendation="Ensure cached PHI has appropriate TTL and is encrypted at rest.",
    ),
)
