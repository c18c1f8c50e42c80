"""Error handling rules (opt-in pack ``errors``).

Safe-usage indicators that describe the surrounding code (environment
checks, redaction helpers) are searched in a +-5 line window; the rest only
on the matched line.
"""

from ..models import ComplianceCategory, Severity
from .rules import JS_EXTENSIONS, LineRule, NegativeScope

UNSANITIZED_ERROR_RESPONSE = LineRule(
    id="ERROR-001",
    title="Unsanitized Error Details Sent to User",
    description=(
        "Response sends error.stack or error.message directly to user without "
        "sanitization, potentially exposing sensitive system information"
    ),
    category=ComplianceCategory.audit_logging,
    severity=Severity.high,
    regulatory_reference="45 CFR §164.312(b) - Audit Controls",
    recommendation=(
        "Never send error.stack or error.message directly to users. Use generic error "
        'messages for production. Example: res.status(500).json({ error: "An error '
        'occurred" }). Log detailed errors server-side only.'
    ),
    extensions=JS_EXTENSIONS,
    patterns=(
        r"res\.(?:send|json)\s*\([^)]*err(?:or)?\.stack",
        r"res\.(?:send|json)\s*\([^)]*err(?:or)?\.message",
        r"res\.(?:send|json)\s*\(\s*err(?:or)?\s*\)",
        r"response\.(?:send|json)\s*\([^)]*err(?:or)?\.(?:stack|message)",
        r"next\s*\(\s*err(?:or)?\s*\)",
        r"throw.*?err(?:or)?\.stack",
    ),
    negative_patterns=(
        r"safe.*?error",
        r"filterError",
        r"""['"](?:An error occurred|Internal server error|Something went wrong)""",
        r"console\.",
        r"logger\.",
        r"log\(",
    ),
    negative_scope=NegativeScope.line,
    window_negative_patterns=(
        r"sanitize",
        r"""process\.env\.NODE_ENV\s*===?\s*['"]development['"]""",
        r"isDevelopment",
    ),
    context_before=5,
    context_after=5,
)

_PHI_TERMS = r"(?:patient|ssn|dob|mrn|diagnosis|medication|health[-_]?record)"

PHI_IN_ERROR_LOGS = LineRule(
    id="ERROR-002",
    title="PHI Data in Error Logs or Thrown Errors",
    description=(
        "Protected Health Information (patient, ssn, dob, mrn, diagnosis, medication, "
        "healthRecord) exposed in console logs, logger, or thrown errors"
    ),
    category=ComplianceCategory.phi_exposure,
    severity=Severity.critical,
    regulatory_reference="45 CFR §164.312(c) - Integrity Controls",
    recommendation=(
        "Never log PHI in error messages. Redact sensitive data before logging. "
        'Example: logger.error("Error processing patient", { patientId: '
        "redact(patient.id) }). Use patient IDs only, never full PHI."
    ),
    extensions=JS_EXTENSIONS,
    skip_test_files=True,
    patterns=(
        r"console\.(?:log|error|warn|info|debug)\s*\([^)]*" + _PHI_TERMS,
        r"logger\.(?:error|warn|info|debug|log)\s*\([^)]*" + _PHI_TERMS,
        r"throw\s+(?:new\s+)?Error\s*\([^)]*" + _PHI_TERMS,
        r"log\.(?:error|warn|info|debug)\s*\([^)]*" + _PHI_TERMS,
    ),
    negative_patterns=(
        r"""['"]Patient not found['"]""",
        r"""['"]Invalid patient ID['"]""",
        r"""['"]Health record""",
        r"patient[-_]?id\b",
        r"describe\(",
    ),
    negative_scope=NegativeScope.line,
    window_negative_patterns=(
        r"redact",
        r"mask",
        r"sanitize",
        r"obfuscate",
    ),
    context_before=5,
    context_after=5,
)

ERROR_PACK_RULES: tuple[LineRule, ...] = (
    UNSANITIZED_ERROR_RESPONSE,
    PHI_IN_ERROR_LOGS,
)
