"""Pydantic models for the vlayer compliance scanner."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Severity levels for findings."""

    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"
    info = "info"


class Confidence(str, Enum):
    """How certain a rule is that a match is a true violation."""

    high = "high"
    medium = "medium"
    low = "low"


class ComplianceCategory(str, Enum):
    """HIPAA compliance categories covered by the scanners."""

    phi_exposure = "phi-exposure"
    encryption = "encryption"
    audit_logging = "audit-logging"
    access_control = "access-control"
    data_retention = "data-retention"


class Granularity(str, Enum):
    """Scope a rule is evaluated at."""

    line = "line"
    file = "file"
    repository = "repository"


class FixType(str, Enum):
    """Built-in automated fix strategies."""

    sql_injection_template = "sql-injection-template"
    sql_injection_concat = "sql-injection-concat"
    hardcoded_password = "hardcoded-password"
    hardcoded_secret = "hardcoded-secret"
    api_key_exposed = "api-key-exposed"
    phi_console_log = "phi-console-log"
    http_url = "http-url"
    innerhtml_unsanitized = "innerhtml-unsanitized"
    backup_unencrypted = "backup-unencrypted"
    weak_hash_md5 = "weak-hash-md5"
    weak_hash_sha1 = "weak-hash-sha1"


class ManualReviewStatus(str, Enum):
    """Lifecycle of a manual review item."""

    pending_review = "pending_review"
    assigned = "assigned"
    in_progress = "in_progress"
    resolved = "resolved"
    accepted_risk = "accepted_risk"


class FixStatus(str, Enum):
    """Outcome of a single fix attempt."""

    fixed = "fixed"
    stale = "stale"
    unchanged = "unchanged"
    failed = "failed"
    write_error = "write_error"


SEVERITY_ORDER: dict[Severity, int] = {
    Severity.critical: 0,
    Severity.high: 1,
    Severity.medium: 2,
    Severity.low: 3,
    Severity.info: 4,
}

CONFIDENCE_RANK: dict[Confidence, int] = {
    Confidence.high: 3,
    Confidence.medium: 2,
    Confidence.low: 1,
}

TERMINAL_REVIEW_STATUSES = frozenset({
    ManualReviewStatus.resolved,
    ManualReviewStatus.accepted_risk,
})

# Location used by repository-scope findings that have no real file.
REPOSITORY_SENTINEL = "<repository>"


# --- Scan inputs ---


class SourceFile(BaseModel):
    """A readable source file from the scanned corpus."""

    path: str = Field(description="Absolute (or caller-supplied) path")
    relative_path: str = Field(description="Project-relative POSIX path")
    content: str = Field(description="UTF-8 decoded file content")
    extension: str = Field(default="", description="Lowercased suffix, e.g. '.ts'")
    name: str = Field(default="", description="Base file name")
    is_test: bool = Field(default=False, description="Whether the path looks like a test file")


# --- Findings ---


class ContextLine(BaseModel):
    """One line of source context around a finding."""

    line_number: int = Field(description="1-indexed line number")
    content: str
    is_match: bool = Field(default=False)


class Acknowledgment(BaseModel):
    """An accepted-risk acknowledgment attached to a finding."""

    reason: str
    acknowledged_by: str
    acknowledged_at: str
    ticket_url: Optional[str] = Field(default=None)
    expires_at: Optional[str] = Field(default=None)
    expired: bool = Field(default=False)


class Suppression(BaseModel):
    """An inline suppression comment that silenced a finding."""

    reason: str
    comment: str


class Finding(BaseModel):
    """A single rule-violation instance."""

    id: str = Field(description="Stable identifier: rule id, file and line")
    rule_id: str = Field(description="Identifier of the rule that fired")
    category: ComplianceCategory
    severity: Severity
    confidence: Confidence = Field(default=Confidence.high)
    title: str
    description: str
    file: str = Field(description="Project-relative path or the repository sentinel")
    line: Optional[int] = Field(default=None, description="1-indexed line, None for repository scope")
    recommendation: str
    regulatory_reference: Optional[str] = Field(default=None, description="HIPAA citation")
    fix_type: Optional[str] = Field(default=None, description="Automated fix strategy, if any")
    pattern: Optional[str] = Field(default=None, description="Source of the primary pattern that matched")
    pattern_flags: int = Field(default=0, description="re flags the pattern was compiled with")
    context: list[ContextLine] = Field(default_factory=list)
    suppressed: bool = Field(default=False)
    suppression: Optional[Suppression] = Field(default=None)
    acknowledged: bool = Field(default=False)
    acknowledgment: Optional[Acknowledgment] = Field(default=None)
    is_baseline: bool = Field(default=False)


class GroupedFinding(BaseModel):
    """Occurrences of one rule collapsed for reporting."""

    rule_id: str
    title: str
    category: ComplianceCategory
    severity: Severity
    occurrence_count: int
    file_count: int
    files: list[str] = Field(default_factory=list)
    finding_ids: list[str] = Field(default_factory=list)
    representative: Finding


class RuleLoadError(BaseModel):
    """A custom rule that failed validation and was excluded."""

    rule_id: Optional[str] = Field(default=None)
    source: str = Field(default="<inline>", description="Where the rule came from")
    error: str
    details: Optional[str] = Field(default=None)


class SkippedFile(BaseModel):
    """A file whose rule evaluation failed; it contributes no findings."""

    file: str
    rule_id: Optional[str] = Field(default=None, description="Rule that raised")
    reason: str


# --- Scoring ---


class SeverityBreakdown(BaseModel):
    """Active finding counts by severity."""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    acknowledged: int = 0


class PenaltyBreakdown(BaseModel):
    """Penalty points subtracted per severity."""

    critical: float = 0.0
    high: float = 0.0
    medium: float = 0.0
    low: float = 0.0
    total: float = 0.0


class ComplianceScore(BaseModel):
    """Compliance score derived from active findings."""

    score: int = Field(description="Score 0-100")
    grade: str = Field(description="Letter grade A-F")
    status: str = Field(description="compliant, at-risk or critical")
    breakdown: SeverityBreakdown
    penalties: PenaltyBreakdown
    recommendations: list[str] = Field(default_factory=list)


# --- Baseline & history ---


class BaselineEntry(BaseModel):
    """A finding signature captured in a baseline."""

    hash: str = Field(description="Stable signature hash of (rule_id, file)")
    rule_id: str
    file: str
    line: Optional[int] = Field(default=None)
    title: str
    severity: Severity
    category: ComplianceCategory


class Baseline(BaseModel):
    """A saved snapshot of known findings."""

    version: str = "1.0"
    created_at: str
    findings: list[BaselineEntry] = Field(default_factory=list)


class BaselineStats(BaseModel):
    """How many findings were already known."""

    total: int = 0
    baseline: int = 0
    new: int = 0


class SeverityCounts(BaseModel):
    """Compact severity counts stored in history."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class HistoryEntry(BaseModel):
    """A compact summary of one scan run."""

    timestamp: str = Field(description="ISO-8601 timestamp of the run")
    date: str = Field(description="YYYY-MM-DD-HHMMSS")
    score: int
    severity_counts: SeverityCounts = Field(default_factory=SeverityCounts)
    failed_rule_ids: list[str] = Field(default_factory=list)
    files_scanned: int = 0


class ScanComparison(BaseModel):
    """Difference between the current scan and the previous one."""

    previous_scan: Optional[HistoryEntry] = Field(default=None)
    score_change: int = 0
    severity_changes: SeverityCounts = Field(default_factory=SeverityCounts)
    new_issues: list[str] = Field(default_factory=list)
    resolved_issues: list[str] = Field(default_factory=list)


class HistoryTrend(BaseModel):
    """Trend statistics over the retained history."""

    entries: list[HistoryEntry] = Field(default_factory=list, description="Newest first")
    count: int = 0
    trend: int = Field(default=0, description="Latest score minus oldest retained score")
    best: Optional[int] = Field(default=None)
    worst: Optional[int] = Field(default=None)


# --- Scan output ---


class StackInfo(BaseModel):
    """Framework, database and auth provider inferred from dependency manifests."""

    framework: str = "unknown"
    database: str = "unknown"
    auth: str = "unknown"
    framework_display: str = "Unknown"
    database_display: str = "Unknown"
    auth_display: str = "Unknown"
    dependencies: list[str] = Field(default_factory=list)
    confidence: dict[str, float] = Field(
        default_factory=lambda: {"framework": 0.0, "database": 0.0, "auth": 0.0},
        description="0-1 per dimension",
    )
    versions: dict[str, str] = Field(default_factory=dict, description="Declared version per detected dimension")
    recommendations: list[str] = Field(default_factory=list)


class ScanResult(BaseModel):
    """Complete result of one scan run."""

    findings: list[Finding] = Field(default_factory=list, description="All raw findings with flags applied")
    active_findings: list[Finding] = Field(default_factory=list, description="Findings consumed by scoring and fixing")
    grouped_findings: list[GroupedFinding] = Field(default_factory=list)
    raw_findings_count: int = 0
    filtered_count: int = Field(default=0, description="Findings dropped below the confidence threshold")
    scanned_files: int = 0
    scan_duration: int = Field(default=0, description="Milliseconds")
    compliance_score: Optional[ComplianceScore] = Field(default=None)
    baseline_stats: BaselineStats = Field(default_factory=BaselineStats)
    rule_errors: list[RuleLoadError] = Field(default_factory=list)
    skipped_files: list[SkippedFile] = Field(default_factory=list)
    stack: StackInfo = Field(default_factory=StackInfo)


# --- Fixer & audit trail ---


class CodeSnapshot(BaseModel):
    """A line of code with surrounding context."""

    content: str
    line_number: int
    context: list[ContextLine] = Field(default_factory=list)


class AuditEvidence(BaseModel):
    """Hashed before/after record of one automated fix."""

    id: str
    finding_id: str
    rule_id: str
    description: str
    file_path: str
    line: int
    before: CodeSnapshot
    after: CodeSnapshot
    timestamp: str
    file_hash_before: str = Field(description="SHA-256 of the file before the edit")
    file_hash_after: str = Field(description="SHA-256 of the file after the edit")
    fix_type: str
    regulatory_reference: str


class ManualReviewItem(BaseModel):
    """A finding that needs human disposition."""

    id: str
    finding_id: str
    finding: Finding
    status: ManualReviewStatus = Field(default=ManualReviewStatus.pending_review)
    reason: str = Field(default="No automated fix available")
    suggested_deadline: str
    created_at: str
    updated_at: str
    assigned_to: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)


class AuditTrail(BaseModel):
    """Evidence and review queue for a project, with an integrity hash."""

    id: str
    project_path: str
    project_name: str
    created_at: str
    updated_at: Optional[str] = Field(default=None)
    scan_duration: int = 0
    scanned_files: int = 0
    total_findings: int = 0
    auto_fixed_count: int = 0
    manual_review_count: int = 0
    evidence: list[AuditEvidence] = Field(default_factory=list)
    manual_reviews: list[ManualReviewItem] = Field(default_factory=list)
    report_hash: Optional[str] = Field(default=None)


class FixResult(BaseModel):
    """Result of attempting to fix one finding."""

    finding: Finding
    fixed: bool
    status: FixStatus
    fix_type: str
    original_line: str = ""
    fixed_line: str = ""
    message: str = ""


class FixReport(BaseModel):
    """Overall outcome of a fixer run."""

    total_findings: int = 0
    fixed_count: int = 0
    skipped_count: int = 0
    fixes: list[FixResult] = Field(default_factory=list)
    audit_trail: AuditTrail
    audit_trail_path: Optional[str] = Field(default=None)


class AuditSummary(BaseModel):
    """Summary statistics queried from an audit trail."""

    total_findings: int = 0
    auto_fixed: int = 0
    pending_manual_review: int = 0
    reviews_by_status: dict[str, int] = Field(default_factory=dict)
    reviews_by_severity: dict[str, int] = Field(default_factory=dict)
    overdue_count: int = 0
    report_hash: Optional[str] = Field(default=None)
